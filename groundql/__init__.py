"""GroundQL: grounded natural-language answers over relational CRM data."""

__version__ = "0.1.0"
