# dbmigrate

`dbmigrate` reads versioned migrations from a *source* and applies them to a
*database*. All migration logic lives in the package: working out which
migrations lie between the current version and the target, in which
direction, and keeping track of a "dirty" state while one runs. The drivers
you supply stay simple.

## Concepts

* **Versions** are non-negative integers. A database that has never been
  migrated is at the *nil version*, `dbmigrate.drivers.NIL_VERSION` (-1).
* Each version may have an **up** migration, a **down** migration, or both.
  A version with only one of them is still applied; the missing side runs as
  an empty migration that only moves the recorded version.
* Before a migration runs the database is marked **dirty**, and marked clean
  once it has finished. If a run is interrupted the version stays dirty and
  further migrations are refused with `DirtyError` until you fix the
  database by hand and call `force`.

## Drivers

Write two small classes:

* a subclass of `dbmigrate.drivers.SourceDriver`, which knows the available
  versions (`first`, `next`, `prev`) and hands out a binary body and an
  identifier for a version (`read_up`, `read_down`). A version or body that
  does not exist is reported by raising `FileNotFoundError`;
* a subclass of `dbmigrate.drivers.DatabaseDriver`, which takes and releases
  a lock (`lock`, `unlock`), runs a migration body read from a binary stream
  (`run`), stores and reports the version and dirty flag (`set_version`,
  `version`), drops everything (`drop`) and closes its connection (`close`).

Both drivers can be used as context managers; leaving the block calls
`close`.

Progress output goes to a `dbmigrate.drivers.Logger`: any object with
`printf(format, *args)` (a %-style format) and `verbose()`.
`dbmigrate.cli.log.CliLog` is a ready-made one that writes to standard error
(or a stream you pass in) and, when verbose, prefixes every line with the
local date and time.

## Running migrations

```python
from dbmigrate.cli.log import CliLog
from dbmigrate.errors import NoChangeError
from dbmigrate.migrate import Migrate

with Migrate(
    source,                      # your SourceDriver
    database,                    # your DatabaseDriver
    source_name="files",
    database_name="app",
    logger=CliLog(verbose=True),
    prefetch_migrations=10,      # migrations read ahead in the background
    lock_timeout=15.0,           # seconds to wait for the database lock
) as m:
    try:
        m.up()                   # apply every pending up migration
    except NoChangeError:
        pass                     # already at the newest version

    m.steps(-2)                  # two migrations down
    m.steps(1)                   # one migration up
    m.migrate(20240101)          # go up or down to an exact version
    m.force(3)                   # record version 3 as clean, run nothing

    version, dirty = m.version()
```

Other methods:

* `down()` applies every down migration, ending at the nil version.
* `drop()` asks the database driver to delete everything.
* `run(*migrations)` runs `dbmigrate.migration.Migration` objects you built
  yourself (see `dbmigrate.migration.new_migration`) without consulting the
  source.
* `request_stop()`, called from another thread, lets the running migration
  finish and then stops.
* `close()` closes the source and the database; if either fails, the
  failures are raised together as an `ExceptionGroup`.

Every operation except `version` holds the database lock while it works.
If an operation fails and releasing the lock fails as well, both errors are
raised together as an `ExceptionGroup`.

`steps(n)` with more migrations than exist applies those that do and then
raises `ShortLimitError`, whose `short` attribute says how many were
missing. Asking for a version the source does not have raises
`FileNotFoundError`.

For lower-level use, `dbmigrate.reader.MigrationReader` yields the
migrations between two versions (`read`), or up to a limit in one direction
(`read_up`, `read_down`), without touching a database.

## Errors

All errors below derive from `dbmigrate.errors.MigrateError`:

| Error                 | Raised when                                          |
|-----------------------|------------------------------------------------------|
| `NoChangeError`       | there is nothing to do                               |
| `NilVersionError`     | no migration has been applied yet                    |
| `InvalidVersionError` | a forced version is below -1                         |
| `LockedError`         | this instance already holds the database lock        |
| `LockTimeoutError`    | the database lock could not be taken in time         |
| `ShortLimitError`     | fewer migrations were available than asked for       |
| `DirtyError`          | the database is dirty and must be forced first       |

## Creating migration files

`dbmigrate.cli.commands.create_cmd(directory, start_time, time_format, name,
ext, seq, seq_digits, print_paths)` writes an empty pair of
`<version>_<name>.up.<ext>` and `<version>_<name>.down.<ext>` files, creating
the directory if needed, and returns their paths.

* Without `seq`, the version comes from `start_time` (a `datetime`; naive
  values are taken as UTC) and `time_format`: `"unix"` for seconds,
  `"unixNano"` for nanoseconds since the epoch, or a reference-time layout
  such as `DEFAULT_TIME_FORMAT` (`"20060102150405"`, giving
  `YYYYMMDDhhmmss`).
* With `seq`, the version is the next number after the last existing file,
  zero-padded to `seq_digits`; `time_format` must then be left at
  `DEFAULT_TIME_FORMAT`.

An existing file with the same version raises `FileExistsError`; invalid
options, malformed file names and sequence overflow raise `ValueError`.

`dbmigrate.cli.commands` also holds `goto_cmd`, `up_cmd`, `down_cmd`,
`drop_cmd`, `force_cmd` and `version_cmd`, which call the matching `Migrate`
methods and only report `NoChangeError` instead of raising it, and
`num_down_migrations_from_args`, which turns `down` arguments into a count
and a flag saying whether to ask for confirmation.
`dbmigrate.urls.scheme_from_url` returns the scheme part of a driver URL.

## What this package does not do

* It ships no source or database drivers: there is no way to read
  migrations from a directory or to talk to any particular database until
  you write the two driver classes yourself.
* It does not open drivers from URLs; `Migrate` is always built from driver
  objects.
* It installs no `migrate` command. The functions in `dbmigrate.cli` are the
  building blocks of one, but there is no entry point that parses a command
  line.