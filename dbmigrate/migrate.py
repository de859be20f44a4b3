"""Runs migrations from a source against a database."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import closing, contextmanager

from .drivers import NIL_VERSION, DatabaseDriver, Logger, SourceDriver
from .errors import (
    DirtyError,
    InvalidVersionError,
    LockedError,
    LockTimeoutError,
    NilVersionError,
    NoChangeError,
)
from .migration import Migration
from .reader import DEFAULT_PREFETCH_MIGRATIONS, MigrationReader

DEFAULT_LOCK_TIMEOUT = 15.0
"""Seconds a database driver has to acquire its lock."""

_QUEUE_POLL_SECONDS = 0.05


def _format_duration(seconds: float) -> str:
    seconds = max(seconds, 0.0)
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1.0:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


class Migrate:
    """Moves a database between the versions offered by a migration source.

    ``source_name`` and ``database_name`` are identifiers used for logging.
    The caller stays responsible for the drivers until :meth:`close`.
    """

    def __init__(
        self,
        source: SourceDriver,
        database: DatabaseDriver,
        *,
        source_name: str = "",
        database_name: str = "",
        logger: Logger | None = None,
        prefetch_migrations: int = DEFAULT_PREFETCH_MIGRATIONS,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self.source = source
        self.database = database
        self.source_name = source_name
        self.database_name = database_name
        self.logger = logger
        self.prefetch_migrations = prefetch_migrations
        self.lock_timeout = lock_timeout
        self._stop_event = threading.Event()
        self._state_mutex = threading.Lock()
        self._locked = False

    def __enter__(self) -> Migrate:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the source and the database; failures are raised together."""
        self._log_verbose("Closing source and database\n")
        errors: list[Exception] = []
        for driver in (self.source, self.database):
            try:
                driver.close()
            except Exception as exc:
                errors.append(exc)
        if errors:
            raise ExceptionGroup("closing source and database failed", errors)

    def migrate(self, version: int) -> None:
        """Migrate up or down from the current version to ``version``."""
        with self._holding_lock():
            current = self._clean_version()
            self._run_migrations(self._reader().read(current, version))

    def steps(self, n: int) -> None:
        """Apply ``n`` up migrations if positive, ``-n`` down migrations if negative."""
        if n == 0:
            raise NoChangeError()
        with self._holding_lock():
            current = self._clean_version()
            reader = self._reader()
            if n > 0:
                migrations = reader.read_up(current, n)
            else:
                migrations = reader.read_down(current, -n)
            self._run_migrations(migrations)

    def up(self) -> None:
        """Apply all remaining up migrations."""
        with self._holding_lock():
            current = self._clean_version()
            self._run_migrations(self._reader().read_up(current, -1))

    def down(self) -> None:
        """Apply all down migrations."""
        with self._holding_lock():
            current = self._clean_version()
            self._run_migrations(self._reader().read_down(current, -1))

    def drop(self) -> None:
        """Delete everything in the database."""
        with self._holding_lock():
            self.database.drop()

    def run(self, *migrations: Migration) -> None:
        """Run the given migrations without consulting the source."""
        if not migrations:
            raise NoChangeError()
        with self._holding_lock():
            self._clean_version()
            self._run_migrations(self._schedule_given(migrations))

    def force(self, version: int) -> None:
        """Record ``version`` as current and clear the dirty state."""
        if version < NIL_VERSION:
            raise InvalidVersionError()
        with self._holding_lock():
            self.database.set_version(version, False)

    def version(self) -> tuple[int, bool]:
        """Return the current version and dirty state.

        Raises ``NilVersionError`` if no migration has been applied.
        """
        version, dirty = self.database.version()
        if version == NIL_VERSION:
            raise NilVersionError()
        return version, dirty

    def request_stop(self) -> None:
        """Stop at the next safe point between two migrations."""
        self._stop_event.set()

    def _should_stop(self) -> bool:
        return self._stop_event.is_set()

    def _reader(self) -> MigrationReader:
        return MigrationReader(
            self.source,
            logger=self.logger,
            prefetch_migrations=self.prefetch_migrations,
            should_stop=self._should_stop,
        )

    def _clean_version(self) -> int:
        version, dirty = self.database.version()
        if dirty:
            raise DirtyError(version)
        return version

    def _schedule_given(self, migrations: Iterable[Migration]) -> Iterator[Migration]:
        for migration in migrations:
            if self.prefetch_migrations > 0 and migration.body is not None:
                self._log_verbose("Start buffering %s\n", migration.log_string())
            else:
                self._log_verbose("Scheduled %s\n", migration.log_string())
            if migration.body is not None:
                threading.Thread(target=self._buffer, args=(migration,), daemon=True).start()
            yield migration

    def _buffer(self, migration: Migration) -> None:
        try:
            migration.buffer()
        except Exception as exc:
            self._log_error(exc)

    def _prefetch(self, migrations: Iterator[Migration]) -> Iterator[Migration]:
        """Read ``migrations`` ahead in a background thread."""
        if self.prefetch_migrations <= 0:
            yield from migrations
            return

        pending: queue.Queue = queue.Queue(maxsize=self.prefetch_migrations)
        cancelled = threading.Event()

        def put(entry: tuple[str, object]) -> bool:
            while not cancelled.is_set():
                try:
                    pending.put(entry, timeout=_QUEUE_POLL_SECONDS)
                    return True
                except queue.Full:
                    continue
            return False

        def produce() -> None:
            try:
                for migration in migrations:
                    if not put(("migration", migration)):
                        return
            except BaseException as exc:
                put(("error", exc))
                return
            put(("done", None))

        threading.Thread(target=produce, daemon=True).start()
        try:
            while True:
                kind, value = pending.get()
                if kind == "done":
                    return
                if kind == "error":
                    raise value
                yield value
        finally:
            cancelled.set()

    def _run_migrations(self, migrations: Iterator[Migration]) -> None:
        with closing(self._prefetch(migrations)) as queued:
            for migration in queued:
                if self._should_stop():
                    return

                self.database.set_version(migration.target_version, True)
                if migration.body is not None:
                    self._log_verbose("Read and execute %s\n", migration.log_string())
                    self.database.run(migration.buffered_body)
                self.database.set_version(migration.target_version, False)

                end = time.monotonic()
                read_time = migration.finished_reading - migration.started_buffering
                run_time = end - migration.finished_reading
                if self.logger is not None:
                    if self.logger.verbose():
                        self.logger.printf(
                            "Finished %s (read %s, ran %s)\n",
                            migration.log_string(),
                            _format_duration(read_time),
                            _format_duration(run_time),
                        )
                    else:
                        self.logger.printf(
                            "%s (%s)\n",
                            migration.log_string(),
                            _format_duration(read_time + run_time),
                        )

    @contextmanager
    def _holding_lock(self) -> Iterator[None]:
        self._lock()
        try:
            yield
        except Exception as exc:
            try:
                self._unlock()
            except Exception as unlock_exc:
                raise ExceptionGroup(
                    "migration failed and the database could not be unlocked",
                    [exc, unlock_exc],
                ) from None
            raise
        except BaseException:
            self._unlock()
            raise
        self._unlock()

    def _lock(self) -> None:
        with self._state_mutex:
            if self._locked:
                raise LockedError()

            outcome: dict[str, BaseException] = {}
            done = threading.Event()

            def acquire() -> None:
                try:
                    self.database.lock()
                except BaseException as exc:
                    outcome["error"] = exc
                finally:
                    done.set()

            threading.Thread(target=acquire, daemon=True).start()
            if not done.wait(self.lock_timeout):
                raise LockTimeoutError()
            if "error" in outcome:
                raise outcome["error"]
            self._locked = True

    def _unlock(self) -> None:
        with self._state_mutex:
            self.database.unlock()
            self._locked = False

    def _log_verbose(self, format: str, *args: object) -> None:
        if self.logger is not None and self.logger.verbose():
            self.logger.printf(format, *args)

    def _log_error(self, error: BaseException) -> None:
        if self.logger is not None:
            self.logger.printf("error: %s", error)