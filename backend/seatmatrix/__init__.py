"""Bangladesh Railway seat and fare matrix service."""

__version__ = "0.1.0"
