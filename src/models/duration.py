"""Duration parsing for delay nodes."""

import re

_MS_PER_UNIT = {
    "ms": 1,
    "millisecond": 1,
    "s": 1000,
    "sec": 1000,
    "second": 1000,
    "m": 60_000,
    "min": 60_000,
    "minute": 60_000,
    "h": 3_600_000,
    "hr": 3_600_000,
    "hour": 3_600_000,
    "d": 86_400_000,
    "day": 86_400_000,
    "w": 604_800_000,
    "week": 604_800_000,
}

# ISO 8601 durations without years/months (calendar-dependent lengths).
_ISO_PATTERN = re.compile(
    r"^P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)

_HUMAN_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    def __init__(self, value: str, reason: str = "unrecognized duration"):
        self.value = value
        super().__init__(f"Invalid duration {value!r}: {reason}")


def _parse_iso(value: str) -> int | None:
    match = _ISO_PATTERN.match(value)
    if match is None or value.endswith("T"):
        return None

    parts = match.groupdict()
    if not any(parts.values()):
        return None

    total = 0.0
    total += int(parts["weeks"] or 0) * _MS_PER_UNIT["week"]
    total += int(parts["days"] or 0) * _MS_PER_UNIT["day"]
    total += int(parts["hours"] or 0) * _MS_PER_UNIT["hour"]
    total += int(parts["minutes"] or 0) * _MS_PER_UNIT["minute"]
    total += float(parts["seconds"] or 0) * _MS_PER_UNIT["second"]
    return int(total)


def _unit_ms(unit: str) -> int | None:
    if unit in _MS_PER_UNIT:
        return _MS_PER_UNIT[unit]
    # plural forms: "days", "hours", "mins"
    if unit.endswith("s") and unit[:-1] in _MS_PER_UNIT:
        return _MS_PER_UNIT[unit[:-1]]
    return None


def _parse_human(value: str) -> int | None:
    text = value.lower().replace(",", " ").replace(" and ", " ")
    matches = list(_HUMAN_PATTERN.finditer(text))
    if not matches:
        return None

    # Everything in the string must be consumed by "<number> <unit>" pairs.
    leftover = _HUMAN_PATTERN.sub("", text).strip()
    if leftover:
        return None

    total = 0.0
    for match in matches:
        unit_ms = _unit_ms(match.group(2))
        if unit_ms is None:
            return None
        total += float(match.group(1)) * unit_ms
    return int(total)


def parse_duration_ms(value: str) -> int:
    """Convert a duration value to milliseconds.

    Accepts ISO 8601 durations ("PT1M", "P3D", "P1DT12H") and short human
    phrases ("3 days", "90 minutes", "1h 30m", "500ms").
    """
    if value is None or not str(value).strip():
        raise DurationParseError(str(value), "duration is required")

    text = str(value).strip()
    millis = _parse_iso(text.upper()) if text[:1] in ("P", "p") else None
    if millis is None:
        millis = _parse_human(text)
    if millis is None:
        raise DurationParseError(text)
    if millis < 0:
        raise DurationParseError(text, "duration must be non-negative")
    return millis
