"""Fork synchronization protection engine."""

__version__ = "0.1.0"
