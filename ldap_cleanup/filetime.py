"""
Conversion of Active Directory FileTime values.

Active Directory stores timestamps such as lastLogon or accountExpires as the
number of 100-nanosecond intervals since 1601-01-01T00:00:00Z, serialized as
a decimal string.
"""

import re
from datetime import datetime, timedelta, timezone

# Seconds between 1601-01-01 and 1970-01-01
WINDOWS_EPOCH_OFFSET = 11644473600
HUNDRED_NANOSECONDS_PER_SECOND = 10000000

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# accountExpires values meaning "never expires"
NEVER_EXPIRES = (0, INT64_MAX)

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DECIMAL = re.compile(r"[+-]?[0-9]+")


class FileTimeParseError(ValueError):
    """Raised when a FileTime string cannot be converted."""
    pass


def parse_filetime(raw: str) -> int:
    """
    Parse a FileTime string into a signed 64-bit integer.

    Raises:
        FileTimeParseError: If the value is empty, not a plain decimal
            integer or outside the signed 64-bit range
    """
    if raw is None or not _DECIMAL.fullmatch(raw):
        raise FileTimeParseError(f"invalid fileTime: {raw!r}")

    value = int(raw)
    if value < INT64_MIN or value > INT64_MAX:
        raise FileTimeParseError(f"invalid fileTime: {raw!r} out of range")
    return value


def filetime_to_datetime(raw: str) -> datetime:
    """
    Convert a FileTime string to a UTC datetime with whole-second precision.

    Args:
        raw: Decimal string of 100ns intervals since 1601-01-01

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        FileTimeParseError: If the string is not a valid FileTime or the
            resulting time cannot be represented
    """
    value = parse_filetime(raw)

    # Integer division truncating toward zero
    seconds = abs(value) // HUNDRED_NANOSECONDS_PER_SECOND
    if value < 0:
        seconds = -seconds

    unix_timestamp = seconds - WINDOWS_EPOCH_OFFSET
    try:
        return UNIX_EPOCH + timedelta(seconds=unix_timestamp)
    except OverflowError as e:
        raise FileTimeParseError(f"fileTime {raw!r} is outside the supported date range: {e}")


def is_never_expires(raw: str) -> bool:
    """Check whether an accountExpires value is one of the "never" sentinels."""
    try:
        return parse_filetime(raw) in NEVER_EXPIRES
    except FileTimeParseError:
        return False
