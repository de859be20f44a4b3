"""Command helpers: a stderr logger and the functions behind each sub-command."""

__all__ = ["commands", "log"]