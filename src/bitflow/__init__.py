"""BitFlow: time-bound payment tags with a strict lifecycle."""

__version__ = "1.0.0"
