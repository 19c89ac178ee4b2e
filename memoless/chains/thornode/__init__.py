"""THORNode REST client and response parsing."""
from .client import NodeHTTPError, ThornodeClient

__all__ = ["NodeHTTPError", "ThornodeClient"]
