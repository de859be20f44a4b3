"""Exceptions raised while reading and applying migrations."""

from __future__ import annotations


class MigrateError(Exception):
    """Base class for all migration errors."""

    default_message = "migration error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class NoChangeError(MigrateError):
    """Nothing had to be done: the database is already at the requested state."""

    default_message = "no change"


class NilVersionError(MigrateError):
    """No migration has been applied to the database yet."""

    default_message = "no migration"


class InvalidVersionError(MigrateError):
    """A version below the nil version (-1) was requested."""

    default_message = "version must be >= -1"


class LockedError(MigrateError):
    """The database is already locked by this instance."""

    default_message = "database locked"


class LockTimeoutError(MigrateError):
    """The database lock could not be acquired in time."""

    default_message = "timeout: can't acquire database lock"


class ShortLimitError(MigrateError):
    """The source ran out of migrations before the requested limit was reached."""

    def __init__(self, short: int) -> None:
        self.short = short
        super().__init__(f"limit {short} short")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShortLimitError):
            return NotImplemented
        return self.short == other.short

    def __hash__(self) -> int:
        return hash((ShortLimitError, self.short))


class DirtyError(MigrateError):
    """The database is in a dirty state and has to be forced to a version."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Dirty database version {version}. Fix and force version.")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirtyError):
            return NotImplemented
        return self.version == other.version

    def __hash__(self) -> int:
        return hash((DirtyError, self.version))