"""Sub-commands of the migration command line tool."""

from __future__ import annotations

import glob
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from ..errors import NoChangeError
from .log import CliLog

DEFAULT_TIME_FORMAT = "20060102150405"
"""Layout (year, month, day, hour, minute, second) for timestamped versions."""

_MAX_UINT64 = 2**64 - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_OFFSET_TOKENS = ("070000", "07:00:00", "0700", "07:00", "07")

_log = CliLog()


def _parse_uint(text: str) -> int:
    if not text or any(ch not in "0123456789" for ch in text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    value = int(text)
    if value > _MAX_UINT64:
        raise ValueError(f'parsing "{text}": value out of range')
    return value


def _base_name(path: str) -> str:
    stripped = path.rstrip("/" + os.sep)
    if not stripped:
        return os.sep if path else "."
    return os.path.basename(stripped)


def next_seq_version(matches: list[str], seq_digits: int) -> str:
    """Return the zero-padded sequence number following the last match."""
    if seq_digits <= 0:
        raise ValueError("Digits must be positive")

    next_seq = 1
    if matches:
        filename = matches[-1]
        base = _base_name(filename)
        index = base.find("_")
        if index < 1:
            raise ValueError(f"Malformed migration filename: {filename}")
        next_seq = _parse_uint(base[:index]) + 1

    version = str(next_seq).zfill(seq_digits)
    if len(version) > seq_digits:
        raise ValueError(
            f"Next sequence number {version} too large. At most {seq_digits} digits are allowed"
        )
    return version


def _chunk(layout: str, i: int) -> str | None:
    rest = layout[i:]
    c = rest[0]
    if c == "J":
        for token in ("January", "Jan"):
            if rest.startswith(token):
                return token
    elif c == "M":
        for token in ("Monday", "Mon", "MST"):
            if rest.startswith(token):
                return token
    elif c == "0":
        if len(rest) >= 2 and "1" <= rest[1] <= "6":
            return rest[:2]
        if rest.startswith("002"):
            return "002"
    elif c == "1":
        return "15" if rest.startswith("15") else "1"
    elif c == "2":
        return "2006" if rest.startswith("2006") else "2"
    elif c == "_":
        if rest.startswith("_2") and not rest.startswith("_2006"):
            return "_2"
        if rest.startswith("__2"):
            return "__2"
    elif c in "345":
        return c
    elif c == "P":
        if rest.startswith("PM"):
            return "PM"
    elif c == "p":
        if rest.startswith("pm"):
            return "pm"
    elif c in "-Z":
        for tail in _OFFSET_TOKENS:
            if rest.startswith(c + tail):
                return c + tail
    elif c in ".,":
        if len(rest) >= 2 and rest[1] in "09":
            end = 1
            while end < len(rest) and rest[end] == rest[1]:
                end += 1
            if end >= len(rest) or rest[end] not in "0123456789":
                return rest[:end]
    return None


def _render_offset(moment: datetime, token: str) -> str:
    offset = moment.utcoffset() or timedelta(0)
    seconds = int(offset.total_seconds())
    if token[0] == "Z" and seconds == 0:
        return "Z"
    sign = "-" if seconds < 0 else "+"
    seconds = abs(seconds)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    shape = token[1:]
    if shape == "07":
        return f"{sign}{hours:02d}"
    if shape == "0700":
        return f"{sign}{hours:02d}{minutes:02d}"
    if shape == "07:00":
        return f"{sign}{hours:02d}:{minutes:02d}"
    if shape == "070000":
        return f"{sign}{hours:02d}{minutes:02d}{secs:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def _render(moment: datetime, token: str) -> str:
    hour12 = moment.hour % 12 or 12
    yday = moment.timetuple().tm_yday
    simple = {
        "January": _MONTHS[moment.month - 1],
        "Jan": _MONTHS[moment.month - 1][:3],
        "Monday": _DAYS[moment.weekday()],
        "Mon": _DAYS[moment.weekday()][:3],
        "2006": f"{moment.year:04d}",
        "06": f"{moment.year % 100:02d}",
        "01": f"{moment.month:02d}",
        "1": str(moment.month),
        "02": f"{moment.day:02d}",
        "2": str(moment.day),
        "_2": f"{moment.day:2d}",
        "002": f"{yday:03d}",
        "__2": f"{yday:3d}",
        "15": f"{moment.hour:02d}",
        "03": f"{hour12:02d}",
        "3": str(hour12),
        "04": f"{moment.minute:02d}",
        "4": str(moment.minute),
        "05": f"{moment.second:02d}",
        "5": str(moment.second),
        "PM": "PM" if moment.hour >= 12 else "AM",
        "pm": "pm" if moment.hour >= 12 else "am",
    }
    if token in simple:
        return simple[token]
    if token == "MST":
        return moment.tzname() or _render_offset(moment, "-0700")
    if token[0] in "-Z":
        return _render_offset(moment, token)
    digits = min(len(token) - 1, 9)
    fraction = f"{moment.microsecond * 1000:09d}"[:digits]
    if token[1] == "9":
        fraction = fraction.rstrip("0")
        return token[0] + fraction if fraction else ""
    return token[0] + fraction


def _format_layout(moment: datetime, layout: str) -> str:
    parts: list[str] = []
    i = 0
    while i < len(layout):
        token = _chunk(layout, i)
        if token is None:
            parts.append(layout[i])
            i += 1
        else:
            parts.append(_render(moment, token))
            i += len(token)
    return "".join(parts)


def time_version(start_time: datetime, time_format: str) -> str:
    """Return a version string for ``start_time``.

    ``time_format`` is ``unix``, ``unixNano`` or a reference-time layout
    such as ``20060102150405``. Naive times are taken as UTC.
    """
    if time_format == "":
        raise ValueError("Time format may not be empty")
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    delta = start_time - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    if time_format == "unix":
        return str(seconds)
    if time_format == "unixNano":
        return str(seconds * 10**9 + delta.microseconds * 1000)
    return _format_layout(start_time, time_format)


def _glob_sorted(directory: str, pattern: str) -> list[str]:
    full = os.path.normpath(os.path.join(directory, pattern))
    return sorted(glob.glob(full, include_hidden=True))


def create_cmd(
    directory: str,
    start_time: datetime,
    time_format: str,
    name: str,
    ext: str,
    seq: bool,
    seq_digits: int,
    print_paths: bool,
) -> list[str]:
    """Create an up and a down migration file; return their paths."""
    if seq and time_format != DEFAULT_TIME_FORMAT:
        raise ValueError("The seq and format options are mutually exclusive")

    directory = os.path.normpath(directory)
    ext = "." + ext.removeprefix(".")

    if seq:
        version = next_seq_version(_glob_sorted(directory, "*" + ext), seq_digits)
    else:
        version = time_version(start_time, time_format)

    if _glob_sorted(directory, version + "_*" + ext):
        raise FileExistsError(f"duplicate migration version: {version}")

    os.makedirs(directory, exist_ok=True)

    created = []
    for direction in ("up", "down"):
        filename = os.path.join(directory, f"{version}_{name}.{direction}{ext}")
        with open(filename, "x"):
            pass
        created.append(filename)
        if print_paths:
            _log.println(os.path.abspath(filename))
    return created


def goto_cmd(migrater: Any, version: int) -> None:
    """Migrate to ``version``; having nothing to do is only reported."""
    try:
        migrater.migrate(version)
    except NoChangeError as exc:
        _log.println(exc)


def up_cmd(migrater: Any, limit: int) -> None:
    """Apply ``limit`` up migrations, or all of them when ``limit`` is negative."""
    try:
        if limit >= 0:
            migrater.steps(limit)
        else:
            migrater.up()
    except NoChangeError as exc:
        _log.println(exc)


def down_cmd(migrater: Any, limit: int) -> None:
    """Apply ``limit`` down migrations, or all of them when ``limit`` is negative."""
    try:
        if limit >= 0:
            migrater.steps(-limit)
        else:
            migrater.down()
    except NoChangeError as exc:
        _log.println(exc)


def drop_cmd(migrater: Any) -> None:
    """Drop everything in the database."""
    migrater.drop()


def force_cmd(migrater: Any, version: int) -> None:
    """Set ``version`` without running any migration."""
    migrater.force(version)


def version_cmd(migrater: Any) -> None:
    """Report the current migration version."""
    version, dirty = migrater.version()
    if dirty:
        _log.printf("%s (dirty)\n", version)
    else:
        _log.println(version)


def num_down_migrations_from_args(apply_all: bool, args: list[str]) -> tuple[int, bool]:
    """Return the number of down migrations (-1 for all) and whether to confirm."""
    if apply_all:
        if args:
            raise ValueError("-all cannot be used with other arguments")
        return -1, False

    if not args:
        return -1, True
    if len(args) == 1:
        try:
            return _parse_uint(args[0]), False
        except ValueError:
            raise ValueError("can't read limit argument N") from None
    raise ValueError("too many arguments")