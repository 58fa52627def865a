"""myhealth - personal health tracking storage."""

__version__ = "0.1.0"
