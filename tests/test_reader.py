import io

import pytest

from dbmigrate.drivers import Logger, SourceDriver
from dbmigrate.errors import NoChangeError, ShortLimitError
from dbmigrate.reader import MigrationReader

# | 1 | - | 3 | 4 | 5 | - | 7 |
# |u d| - |u  |u d|  d| - |u d|
STUB_MIGRATIONS = {
    1: {"up": "CREATE 1", "down": "DROP 1"},
    3: {"up": "CREATE 3"},
    4: {"up": "CREATE 4", "down": "DROP 4"},
    5: {"down": "DROP 5"},
    7: {"up": "CREATE 7", "down": "DROP 7"},
}


class StubSource(SourceDriver):
    def __init__(self, migrations=None):
        self.migrations = STUB_MIGRATIONS if migrations is None else migrations
        self.versions = sorted(self.migrations)
        self.closed_bodies = 0

    def first(self):
        if not self.versions:
            raise FileNotFoundError("no migrations")
        return self.versions[0]

    def _position(self, version):
        if version not in self.migrations:
            raise FileNotFoundError(version)
        return self.versions.index(version)

    def next(self, version):
        pos = self._position(version)
        if pos + 1 >= len(self.versions):
            raise FileNotFoundError(version)
        return self.versions[pos + 1]

    def prev(self, version):
        pos = self._position(version)
        if pos == 0:
            raise FileNotFoundError(version)
        return self.versions[pos - 1]

    def _read(self, version, direction):
        identifier = self.migrations.get(version, {}).get(direction)
        if identifier is None:
            raise FileNotFoundError(version)
        return io.BytesIO(identifier.encode()), identifier

    def read_up(self, version):
        return self._read(version, "up")

    def read_down(self, version):
        return self._read(version, "down")

    def close(self):
        pass


class RecordingLogger(Logger):
    def __init__(self, verbose=True):
        self._verbose = verbose
        self.lines = []

    def printf(self, format, *args):
        self.lines.append(format % args)

    def verbose(self):
        return self._verbose


def collect(generator):
    migrations = []
    try:
        for migration in generator:
            migrations.append(migration)
    except Exception as exc:
        return migrations, exc
    return migrations, None


def check_error(error, expected):
    if expected is None:
        assert error is None
    elif isinstance(expected, type):
        assert isinstance(error, expected)
    else:
        assert error == expected


def pairs(migrations):
    return [(m.version, m.target_version) for m in migrations]


NC = NoChangeError
NF = FileNotFoundError

READ_CASES = [
    (-1, -1, NC, []),
    (-1, 0, NF, []),
    (-1, 1, None, [(1, 1)]),
    (-1, 2, NF, []),
    (-1, 3, None, [(1, 1), (3, 3)]),
    (-1, 4, None, [(1, 1), (3, 3), (4, 4)]),
    (-1, 5, None, [(1, 1), (3, 3), (4, 4), (5, 5)]),
    (-1, 6, NF, []),
    (-1, 7, None, [(1, 1), (3, 3), (4, 4), (5, 5), (7, 7)]),
    (-1, 8, NF, []),
    (1, -1, None, [(1, -1)]),
    (1, 0, NF, []),
    (1, 1, NC, []),
    (1, 2, NF, []),
    (1, 3, None, [(3, 3)]),
    (1, 4, None, [(3, 3), (4, 4)]),
    (1, 5, None, [(3, 3), (4, 4), (5, 5)]),
    (1, 6, NF, []),
    (1, 7, None, [(3, 3), (4, 4), (5, 5), (7, 7)]),
    (1, 8, NF, []),
    (3, -1, None, [(3, 1), (1, -1)]),
    (3, 0, NF, []),
    (3, 1, None, [(3, 1)]),
    (3, 2, NF, []),
    (3, 3, NC, []),
    (3, 4, None, [(4, 4)]),
    (3, 5, None, [(4, 4), (5, 5)]),
    (3, 6, NF, []),
    (3, 7, None, [(4, 4), (5, 5), (7, 7)]),
    (3, 8, NF, []),
    (4, -1, None, [(4, 3), (3, 1), (1, -1)]),
    (4, 0, NF, []),
    (4, 1, None, [(4, 3), (3, 1)]),
    (4, 2, NF, []),
    (4, 3, None, [(4, 3)]),
    (4, 4, NC, []),
    (4, 5, None, [(5, 5)]),
    (4, 6, NF, []),
    (4, 7, None, [(5, 5), (7, 7)]),
    (4, 8, NF, []),
    (5, -1, None, [(5, 4), (4, 3), (3, 1), (1, -1)]),
    (5, 0, NF, []),
    (5, 1, None, [(5, 4), (4, 3), (3, 1)]),
    (5, 2, NF, []),
    (5, 3, None, [(5, 4), (4, 3)]),
    (5, 4, None, [(5, 4)]),
    (5, 5, NC, []),
    (5, 6, NF, []),
    (5, 7, None, [(7, 7)]),
    (5, 8, NF, []),
    (7, -1, None, [(7, 5), (5, 4), (4, 3), (3, 1), (1, -1)]),
    (7, 0, NF, []),
    (7, 1, None, [(7, 5), (5, 4), (4, 3), (3, 1)]),
    (7, 2, NF, []),
    (7, 3, None, [(7, 5), (5, 4), (4, 3)]),
    (7, 4, None, [(7, 5), (5, 4)]),
    (7, 5, None, [(7, 5)]),
    (7, 6, NF, []),
    (7, 7, NC, []),
    (7, 8, NF, []),
] + [(f, t, NF, []) for f in (0, 2, 6, 8) for t in range(-1, 9)]

READ_UP_CASES = [
    (-1, -1, None, [(1, 1), (3, 3), (4, 4), (5, 5), (7, 7)]),
    (-1, 0, NC, []),
    (-1, 1, None, [(1, 1)]),
    (-1, 2, None, [(1, 1), (3, 3)]),
    (1, -1, None, [(3, 3), (4, 4), (5, 5), (7, 7)]),
    (1, 0, NC, []),
    (1, 1, None, [(3, 3)]),
    (1, 2, None, [(3, 3), (4, 4)]),
    (3, -1, None, [(4, 4), (5, 5), (7, 7)]),
    (3, 0, NC, []),
    (3, 1, None, [(4, 4)]),
    (3, 2, None, [(4, 4), (5, 5)]),
    (4, -1, None, [(5, 5), (7, 7)]),
    (4, 0, NC, []),
    (4, 1, None, [(5, 5)]),
    (4, 2, None, [(5, 5), (7, 7)]),
    (5, -1, None, [(7, 7)]),
    (5, 0, NC, []),
    (5, 1, None, [(7, 7)]),
    (5, 2, ShortLimitError(1), [(7, 7)]),
    (7, -1, NC, []),
    (7, 0, NC, []),
    (7, 1, NF, []),
    (7, 2, NF, []),
] + [(f, limit, NF, []) for f in (0, 2, 6, 8) for limit in (-1, 0, 1, 2)]

READ_DOWN_CASES = [
    (-1, -1, NC, []),
    (-1, 0, NC, []),
    (-1, 1, NF, []),
    (-1, 2, NF, []),
    (1, -1, None, [(1, -1)]),
    (1, 0, NC, []),
    (1, 1, None, [(1, -1)]),
    (1, 2, ShortLimitError(1), [(1, -1)]),
    (3, -1, None, [(3, 1), (1, -1)]),
    (3, 0, NC, []),
    (3, 1, None, [(3, 1)]),
    (3, 2, None, [(3, 1), (1, -1)]),
    (4, -1, None, [(4, 3), (3, 1), (1, -1)]),
    (4, 0, NC, []),
    (4, 1, None, [(4, 3)]),
    (4, 2, None, [(4, 3), (3, 1)]),
    (5, -1, None, [(5, 4), (4, 3), (3, 1), (1, -1)]),
    (5, 0, NC, []),
    (5, 1, None, [(5, 4)]),
    (5, 2, None, [(5, 4), (4, 3)]),
    (7, -1, None, [(7, 5), (5, 4), (4, 3), (3, 1), (1, -1)]),
    (7, 0, NC, []),
    (7, 1, None, [(7, 5)]),
    (7, 2, None, [(7, 5), (5, 4)]),
] + [(f, limit, NF, []) for f in (0, 2, 6, 8) for limit in (-1, 0, 1, 2)]


@pytest.fixture
def reader():
    return MigrationReader(StubSource())


@pytest.mark.parametrize("from_version,to_version,expected_error,expected", READ_CASES)
def test_read(reader, from_version, to_version, expected_error, expected):
    migrations, error = collect(reader.read(from_version, to_version))
    check_error(error, expected_error)
    assert pairs(migrations) == expected


@pytest.mark.parametrize("from_version,limit,expected_error,expected", READ_UP_CASES)
def test_read_up(reader, from_version, limit, expected_error, expected):
    migrations, error = collect(reader.read_up(from_version, limit))
    check_error(error, expected_error)
    assert pairs(migrations) == expected


@pytest.mark.parametrize("from_version,limit,expected_error,expected", READ_DOWN_CASES)
def test_read_down(reader, from_version, limit, expected_error, expected):
    migrations, error = collect(reader.read_down(from_version, limit))
    check_error(error, expected_error)
    assert pairs(migrations) == expected


def test_read_up_bodies_are_buffered(reader):
    migrations, error = collect(reader.read_up(-1, -1))
    assert error is None
    bodies = [m.buffered_body.read() if m.body is not None else None for m in migrations]
    assert bodies == [b"CREATE 1", b"CREATE 3", b"CREATE 4", None, b"CREATE 7"]


def test_read_down_uses_down_bodies(reader):
    migrations, error = collect(reader.read_down(7, -1))
    assert error is None
    identifiers = [m.identifier for m in migrations]
    assert identifiers == ["DROP 7", "DROP 5", "DROP 4", "<empty>", "DROP 1"]


def test_new_migration_without_up_body_is_empty(reader):
    migration = reader.new_migration(5, 5)
    assert migration.body is None
    assert migration.log_string() == "5/u <empty>"


def test_new_migration_down(reader):
    migration = reader.new_migration(4, 3)
    assert migration.identifier == "DROP 4"
    assert migration.log_string() == "4/d DROP 4"


def test_version_exists_accepts_down_only_version(reader):
    reader.version_exists(5)
    with pytest.raises(FileNotFoundError, match="no migration found for version 6"):
        reader.version_exists(6)


def test_version_exists_logs_error():
    logger = RecordingLogger(verbose=False)
    reader = MigrationReader(StubSource(), logger=logger)
    with pytest.raises(FileNotFoundError):
        reader.version_exists(2)
    assert logger.lines == ["error: no migration found for version 2"]


def test_verbose_log_for_buffered_and_empty_migrations():
    logger = RecordingLogger()
    reader = MigrationReader(StubSource(), logger=logger)
    reader.new_migration(1, 1)
    reader.new_migration(5, 5)
    assert logger.lines == ["Start buffering 1/u CREATE 1\n", "Scheduled 5/u <empty>\n"]


def test_without_prefetch_migrations_are_scheduled():
    logger = RecordingLogger()
    reader = MigrationReader(StubSource(), logger=logger, prefetch_migrations=0)
    reader.new_migration(1, 1)
    assert logger.lines == ["Scheduled 1/u CREATE 1\n"]


def test_non_verbose_logger_gets_no_schedule_lines():
    logger = RecordingLogger(verbose=False)
    reader = MigrationReader(StubSource(), logger=logger)
    migrations, error = collect(reader.read_up(-1, 2))
    assert error is None
    assert len(migrations) == 2
    assert logger.lines == []


def test_stop_ends_reading_quietly():
    reader = MigrationReader(StubSource(), should_stop=lambda: True)
    migrations, error = collect(reader.read_up(-1, -1))
    assert error is None
    assert migrations == []


def test_stop_after_first_step():
    calls = []

    def should_stop():
        calls.append(None)
        return len(calls) > 1

    reader = MigrationReader(StubSource(), should_stop=should_stop)
    migrations, error = collect(reader.read_down(7, -1))
    assert error is None
    assert pairs(migrations) == [(7, 5)]