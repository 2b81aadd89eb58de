"""tokengate - session tokens, cookie transport and request authorization."""

__version__ = "0.1.0"
