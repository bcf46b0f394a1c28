"""Version information for zklock."""

__version__ = "0.3.0"
