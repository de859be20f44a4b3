"""Apply versioned migrations from a source to a database through pluggable drivers."""

__version__ = "0.1.0"

__all__ = ["cli", "drivers", "errors", "migrate", "migration", "reader", "urls"]