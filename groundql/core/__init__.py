"""Core query planning for GroundQL."""
