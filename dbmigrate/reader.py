"""Reads migration steps from a source in the order they have to be applied."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator

from .drivers import NIL_VERSION, Logger, SourceDriver
from .errors import NoChangeError, ShortLimitError
from .migration import Migration, new_migration

DEFAULT_PREFETCH_MIGRATIONS = 10
"""Number of migrations to pre-read from the source."""


def _never_stop() -> bool:
    return False


class MigrationReader:
    """Produces the migrations leading from one version to another.

    Each reading method is a generator: it yields migrations in the order
    they have to be run and raises once something goes wrong. Every
    yielded migration with a body is already being buffered in a
    background thread. ``should_stop`` is polled before each step; once
    it returns True the generator ends quietly.
    """

    def __init__(
        self,
        source: SourceDriver,
        logger: Logger | None = None,
        prefetch_migrations: int = DEFAULT_PREFETCH_MIGRATIONS,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self.source = source
        self.logger = logger
        self.prefetch_migrations = prefetch_migrations
        self.should_stop = should_stop or _never_stop

    def read(self, from_version: int, to_version: int) -> Iterator[Migration]:
        """Yield the up or down migrations leading from one version to another."""
        if from_version >= 0:
            self.version_exists(from_version)
        if to_version >= 0:
            self.version_exists(to_version)
        if from_version == to_version:
            raise NoChangeError()

        current = from_version
        if current < to_version:
            if current == NIL_VERSION:
                first = self.source.first()
                yield self._schedule(first, first)
                current = first
            while current < to_version:
                if self.should_stop():
                    return
                following = self.source.next(current)
                yield self._schedule(following, following)
                current = following
            return

        while current > to_version and current >= 0:
            if self.should_stop():
                return
            try:
                previous = self.source.prev(current)
            except FileNotFoundError:
                if to_version != NIL_VERSION:
                    raise
                yield self._schedule(current, NIL_VERSION)
                return
            yield self._schedule(current, previous)
            current = previous

    def read_up(self, from_version: int, limit: int) -> Iterator[Migration]:
        """Yield up to ``limit`` up migrations after ``from_version``; -1 means all."""
        if from_version >= 0:
            self.version_exists(from_version)
        if limit == 0:
            raise NoChangeError()

        current = from_version
        count = 0
        while count < limit or limit == -1:
            if self.should_stop():
                return

            if current == NIL_VERSION:
                first = self.source.first()
                yield self._schedule(first, first)
                current = first
                count += 1
                continue

            try:
                following = self.source.next(current)
            except FileNotFoundError:
                if limit == -1 and count == 0:
                    raise NoChangeError() from None
                if limit == -1:
                    return
                if count == 0:
                    raise
                raise ShortLimitError(limit - count) from None

            yield self._schedule(following, following)
            current = following
            count += 1

    def read_down(self, from_version: int, limit: int) -> Iterator[Migration]:
        """Yield up to ``limit`` down migrations from ``from_version``; -1 means all."""
        if from_version >= 0:
            self.version_exists(from_version)
        if limit == 0:
            raise NoChangeError()
        if from_version == NIL_VERSION and limit == -1:
            raise NoChangeError()
        if from_version == NIL_VERSION and limit > 0:
            raise FileNotFoundError("no migration below the nil version")

        current = from_version
        count = 0
        while count < limit or limit == -1:
            if self.should_stop():
                return

            try:
                previous = self.source.prev(current)
            except FileNotFoundError:
                if limit == -1 or limit - count > 0:
                    first = self.source.first()
                    yield self._schedule(first, NIL_VERSION)
                    count += 1
                if count < limit:
                    raise ShortLimitError(limit - count) from None
                return

            yield self._schedule(current, previous)
            current = previous
            count += 1

    def version_exists(self, version: int) -> None:
        """Raise ``FileNotFoundError`` unless the source has an up or down migration."""
        readers = (self.source.read_up, self.source.read_down)
        for read in readers:
            try:
                body, _identifier = read(version)
            except FileExistsError:
                return
            except FileNotFoundError as exc:
                missing = exc
                continue
            body.close()
            return

        error = FileNotFoundError(f"no migration found for version {version}")
        error.__cause__ = missing
        self._log_error(error)
        raise error

    def new_migration(self, version: int, target_version: int) -> Migration:
        """Build the migration for ``version``; empty if the source has no body for it."""
        read = self.source.read_up if target_version >= version else self.source.read_down
        try:
            body, identifier = read(version)
        except FileNotFoundError:
            migration = new_migration(None, "", version, target_version)
        else:
            migration = new_migration(body, identifier, version, target_version)

        if self.prefetch_migrations > 0 and migration.body is not None:
            self._log_verbose("Start buffering %s\n", migration.log_string())
        else:
            self._log_verbose("Scheduled %s\n", migration.log_string())
        return migration

    def _schedule(self, version: int, target_version: int) -> Migration:
        migration = self.new_migration(version, target_version)
        if migration.body is not None:
            thread = threading.Thread(target=self._buffer, args=(migration,), daemon=True)
            thread.start()
        return migration

    def _buffer(self, migration: Migration) -> None:
        try:
            migration.buffer()
        except Exception as exc:  # reported to the log; the reader sees it too
            self._log_error(exc)

    def _log_verbose(self, format: str, *args: object) -> None:
        if self.logger is not None and self.logger.verbose():
            self.logger.printf(format, *args)

    def _log_error(self, error: BaseException) -> None:
        if self.logger is not None:
            self.logger.printf("error: %s", error)