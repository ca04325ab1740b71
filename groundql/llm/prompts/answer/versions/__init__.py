"""Answer prompt versions. Importing this package registers them."""

from . import v1  # noqa: F401
