"""
Bit-packed datetime codec.

Packs a UTC datetime plus a 16-bit tenant tag into one positive 63-bit integer
so that, for equal tags, integer order equals chronological order. Range
filters can therefore run directly on the packed column.

Bit layout (most significant first):

    bits 47-62  tenant tag      16 bits
    bits 36-46  year - 2000     11 bits
    bits 32-35  month            4 bits
    bits 27-31  day              5 bits
    bits 22-26  hour             5 bits
    bits 16-21  minute           6 bits
    bits 10-15  second           6 bits
    bits  0-9   millisecond     10 bits

Both directions are total: `encode` clamps its input into the supported range
and `decode` clamps every extracted field, caps the day to the month's length
and, if reconstruction still fails, logs a CodecCorruption warning and
returns DECODE_SENTINEL.

Usage:
    packed = encode(datetime(2024, 3, 15, 10, 30, 45, 123000, tzinfo=UTC), 42)
    decode(packed)  # 2024-03-15 10:30:45.123000+00:00
"""

import logging
from calendar import monthrange
from datetime import UTC, datetime, timedelta

from packbench.core.errors import CodecCorruption

logger = logging.getLogger(__name__)

EPOCH_YEAR = 2000

MILLI_SHIFT, MILLI_BITS = 0, 10
SECOND_SHIFT, SECOND_BITS = 10, 6
MINUTE_SHIFT, MINUTE_BITS = 16, 6
HOUR_SHIFT, HOUR_BITS = 22, 5
DAY_SHIFT, DAY_BITS = 27, 5
MONTH_SHIFT, MONTH_BITS = 32, 4
YEAR_SHIFT, YEAR_BITS = 36, 11
TAG_SHIFT, TAG_BITS = 47, 16

TAG_MASK = (1 << TAG_BITS) - 1
VALUE_MASK = (1 << (TAG_SHIFT + TAG_BITS)) - 1

MAX_YEAR = EPOCH_YEAR + (1 << YEAR_BITS) - 1
MIN_DATETIME = datetime(EPOCH_YEAR, 1, 1, tzinfo=UTC)
MAX_DATETIME = datetime(MAX_YEAR, 12, 31, 23, 59, 59, 999_000, tzinfo=UTC)

# Returned by decode() when a value cannot be rebuilt into a datetime.
DECODE_SENTINEL = datetime(2020, 1, 1, tzinfo=UTC)

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _mask(bits: int) -> int:
    return (1 << bits) - 1


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def _to_utc(ts: datetime) -> datetime:
    """Normalize to UTC; naive datetimes are taken as UTC already."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    try:
        return ts.astimezone(UTC)
    except OverflowError:
        # Offsets can push datetime.min/max outside the representable range.
        return MIN_DATETIME if ts.year <= EPOCH_YEAR else MAX_DATETIME


def pack_fields(
    tag: int,
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    millisecond: int = 0,
) -> int:
    """
    Pack raw field values into their bit positions.

    Each field is masked to its width and nothing is clamped, so callers can
    build deliberately invalid values (e.g. February 30th).
    """
    value = millisecond & _mask(MILLI_BITS)
    value |= (second & _mask(SECOND_BITS)) << SECOND_SHIFT
    value |= (minute & _mask(MINUTE_BITS)) << MINUTE_SHIFT
    value |= (hour & _mask(HOUR_BITS)) << HOUR_SHIFT
    value |= (day & _mask(DAY_BITS)) << DAY_SHIFT
    value |= (month & _mask(MONTH_BITS)) << MONTH_SHIFT
    value |= ((year - EPOCH_YEAR) & _mask(YEAR_BITS)) << YEAR_SHIFT
    value |= (tag & TAG_MASK) << TAG_SHIFT
    return value


def encode(ts: datetime, tag: int) -> int:
    """
    Encode a datetime and tenant tag into a packed integer.

    Never raises: the instant is clamped to [MIN_DATETIME, MAX_DATETIME], every
    field is clamped to its valid range and the tag is truncated to 16 bits.
    Precision is one millisecond.
    """
    utc = min(max(_to_utc(ts), MIN_DATETIME), MAX_DATETIME)

    year = _clamp(utc.year, EPOCH_YEAR, MAX_YEAR)
    month = _clamp(utc.month, 1, 12)
    day = _clamp(utc.day, 1, monthrange(year, month)[1])
    hour = _clamp(utc.hour, 0, 23)
    minute = _clamp(utc.minute, 0, 59)
    second = _clamp(utc.second, 0, 59)
    millisecond = _clamp(utc.microsecond // 1000, 0, 999)

    return pack_fields(tag, year, month, day, hour, minute, second, millisecond)


def unpack_fields(value: int) -> dict[str, int]:
    """Extract the raw (unclamped) fields of a packed value."""
    value = int(value) & VALUE_MASK
    return {
        "tag": (value >> TAG_SHIFT) & TAG_MASK,
        "year": ((value >> YEAR_SHIFT) & _mask(YEAR_BITS)) + EPOCH_YEAR,
        "month": (value >> MONTH_SHIFT) & _mask(MONTH_BITS),
        "day": (value >> DAY_SHIFT) & _mask(DAY_BITS),
        "hour": (value >> HOUR_SHIFT) & _mask(HOUR_BITS),
        "minute": (value >> MINUTE_SHIFT) & _mask(MINUTE_BITS),
        "second": (value >> SECOND_SHIFT) & _mask(SECOND_BITS),
        "millisecond": value & _mask(MILLI_BITS),
    }


def _build_datetime(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
    millisecond: int,
) -> datetime:
    return datetime(
        year, month, day, hour, minute, second, millisecond * 1000, tzinfo=UTC
    )


def decode(value: int, *, strict: bool = False) -> datetime:
    """
    Decode a packed integer into a UTC datetime.

    Out-of-range fields are clamped and impossible days are capped to the
    month's last day. When the value is not an integer or reconstruction still
    fails, the value is logged as corrupt and DECODE_SENTINEL is returned.

    With strict=True nothing is repaired: any field outside its range, an
    impossible day, a non-integer value or a failed reconstruction raises
    CodecCorruption.
    """
    try:
        raw = unpack_fields(value)
    except (TypeError, ValueError) as exc:
        if strict:
            raise CodecCorruption(value, f"not an integer: {exc}") from exc
        logger.warning(
            "CodecCorruption: packed value %r is not an integer (%s); returning sentinel %s",
            value,
            exc,
            DECODE_SENTINEL.isoformat(),
        )
        return DECODE_SENTINEL

    year = _clamp(raw["year"], EPOCH_YEAR, MAX_YEAR)
    month = _clamp(raw["month"], 1, 12)
    hour = _clamp(raw["hour"], 0, 23)
    minute = _clamp(raw["minute"], 0, 59)
    second = _clamp(raw["second"], 0, 59)
    millisecond = _clamp(raw["millisecond"], 0, 999)
    day = _clamp(raw["day"], 1, 31)

    try:
        last_day = monthrange(year, month)[1]
        if day > last_day:
            logger.debug(
                "Capping day %d to %d for %04d-%02d (value=%d)",
                day,
                last_day,
                year,
                month,
                value,
            )
            day = last_day

        if strict:
            repaired = {
                "month": month,
                "day": day,
                "hour": hour,
                "minute": minute,
                "second": second,
                "millisecond": millisecond,
            }
            changed = [k for k, v in repaired.items() if raw[k] != v]
            if changed:
                raise CodecCorruption(value, f"out-of-range fields: {', '.join(changed)}")

        return _build_datetime(year, month, day, hour, minute, second, millisecond)
    except (ValueError, OverflowError) as exc:
        if strict:
            raise CodecCorruption(value, str(exc)) from exc
        logger.warning(
            "CodecCorruption: packed value %d could not be decoded (%s); "
            "returning sentinel %s",
            value,
            exc,
            DECODE_SENTINEL.isoformat(),
        )
        return DECODE_SENTINEL


def decode_tag(value: int) -> int:
    """Return the tenant tag stored in a packed value."""
    return (int(value) >> TAG_SHIFT) & TAG_MASK


def year_of(value: int) -> int:
    """Year of a packed value, computed the same way the SQL extract does."""
    return ((int(value) >> YEAR_SHIFT) & _mask(YEAR_BITS)) + EPOCH_YEAR


def to_epoch_millis(ts: datetime) -> int:
    """Epoch milliseconds of a datetime (naive values are taken as UTC)."""
    return (_to_utc(ts) - _UNIX_EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    """UTC datetime for epoch milliseconds; raises OverflowError when out of range."""
    return _UNIX_EPOCH + timedelta(milliseconds=int(millis))
