"""Interfaces for loggers, migration sources and databases."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, BinaryIO

NIL_VERSION = -1
"""Version reported by a database on which no migration has been applied."""


class Logger(ABC):
    """Receives log output from a migration run."""

    @abstractmethod
    def printf(self, format: str, *args: Any) -> None:
        """Write a message built from a %-style format and its arguments."""

    @abstractmethod
    def verbose(self) -> bool:
        """Return True when verbose output is wanted."""


class _Closing:
    """Context-manager support for objects that define a ``close`` method."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SourceDriver(_Closing, ABC):
    """Reads migrations from a location.

    Missing versions are reported by raising ``FileNotFoundError``.
    """

    @abstractmethod
    def first(self) -> int:
        """Return the first available version."""

    @abstractmethod
    def next(self, version: int) -> int:
        """Return the version following ``version``."""

    @abstractmethod
    def prev(self, version: int) -> int:
        """Return the version preceding ``version``."""

    @abstractmethod
    def read_up(self, version: int) -> tuple[BinaryIO, str]:
        """Return the body and identifier of the up migration for ``version``."""

    @abstractmethod
    def read_down(self, version: int) -> tuple[BinaryIO, str]:
        """Return the body and identifier of the down migration for ``version``."""

    @abstractmethod
    def close(self) -> None:
        """Release the source."""


class DatabaseDriver(_Closing, ABC):
    """Applies migrations to a database and keeps track of its version."""

    @abstractmethod
    def lock(self) -> None:
        """Acquire the database lock."""

    @abstractmethod
    def unlock(self) -> None:
        """Release the database lock."""

    @abstractmethod
    def run(self, migration: BinaryIO) -> None:
        """Execute the migration read from ``migration``."""

    @abstractmethod
    def set_version(self, version: int, dirty: bool) -> None:
        """Record the current version and dirty state."""

    @abstractmethod
    def version(self) -> tuple[int, bool]:
        """Return the current version (NIL_VERSION if none) and dirty state."""

    @abstractmethod
    def drop(self) -> None:
        """Delete everything in the database."""

    @abstractmethod
    def close(self) -> None:
        """Release the database connection."""