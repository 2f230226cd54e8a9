"""
Date format handling.

Understands the built-in named date formats of the search engine and
Joda-style patterns (``yyyy-MM-dd'T'HH:mm:ss.SSSZ``), and converts them to
``strptime``/``strftime`` directives.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

from feature_query.core.errors import InvalidDateFormatError

ISO = "iso"

NAMED_FORMATS: Dict[str, str] = {
    "date_optional_time": ISO,
    "date_time": "yyyy-MM-dd'T'HH:mm:ss.SSSZ",
    "date_time_no_millis": "yyyy-MM-dd'T'HH:mm:ssZ",
    "basic_date": "yyyyMMdd",
    "basic_date_time": "yyyyMMdd'T'HHmmss.SSSZ",
    "basic_date_time_no_millis": "yyyyMMdd'T'HHmmssZ",
    "date": "yyyy-MM-dd",
    "date_hour": "yyyy-MM-dd'T'HH",
    "date_hour_minute": "yyyy-MM-dd'T'HH:mm",
    "date_hour_minute_second": "yyyy-MM-dd'T'HH:mm:ss",
    "date_hour_minute_second_millis": "yyyy-MM-dd'T'HH:mm:ss.SSS",
    "hour_minute": "HH:mm",
    "hour_minute_second": "HH:mm:ss",
    "ordinal_date": "yyyy-DDD",
    "year": "yyyy",
    "year_month": "yyyy-MM",
    "year_month_day": "yyyy-MM-dd",
}

_NAMED_FORMAT_RE = re.compile(r"[a-z]+(_[a-z]+)+")

# Token = (directive or literal, pattern letter, run length)
Token = Tuple[str, str, int]


def _directive(letter: str, count: int) -> str:
    if letter in ("y", "u"):
        return "%y" if count == 2 else "%Y"
    if letter == "M":
        if count <= 2:
            return "%m"
        return "%b" if count == 3 else "%B"
    if letter == "E":
        return "%a" if count <= 3 else "%A"
    simple = {
        "d": "%d",
        "D": "%j",
        "H": "%H",
        "h": "%I",
        "m": "%M",
        "s": "%S",
        "S": "%f",
        "a": "%p",
        "Z": "%z",
        "X": "%z",
        "z": "%Z",
    }
    if letter not in simple:
        raise InvalidDateFormatError(f"Unsupported pattern letter '{letter}'")
    return simple[letter]


def _tokenize(pattern: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "'":
            end = pattern.find("'", i + 1)
            if end < 0:
                raise InvalidDateFormatError(f"Unterminated quote in '{pattern}'")
            literal = pattern[i + 1:end] or "'"
            tokens.append((literal, "", 0))
            i = end + 1
        elif char.isalpha():
            j = i
            while j < len(pattern) and pattern[j] == char:
                j += 1
            tokens.append((_directive(char, j - i), char, j - i))
            i = j
        else:
            tokens.append((char, "", 0))
            i += 1
    if not any(letter for _, letter, _ in tokens):
        raise InvalidDateFormatError(f"No date fields in '{pattern}'")
    return tokens


class DateFormat:
    """A validated date format."""

    _cache: Dict[str, "DateFormat"] = {}

    def __init__(self, name: str, tokens: Optional[List[Token]] = None):
        self.name = name
        self.tokens = tokens
        self._strptime = None
        if tokens is not None:
            self._strptime = "".join(
                text if letter else text.replace("%", "%%") for text, letter, _ in tokens
            )

    @classmethod
    def for_format(cls, fmt: str) -> "DateFormat":
        """
        Validate a format string and return its converter.

        Raises:
            InvalidDateFormatError: If the format is not understood
        """
        if not fmt or not fmt.strip():
            raise InvalidDateFormatError("Empty date format")
        if fmt in cls._cache:
            return cls._cache[fmt]

        name = fmt[len("strict_"):] if fmt.startswith("strict_") else fmt
        if name in NAMED_FORMATS:
            pattern = NAMED_FORMATS[name]
            date_format = cls(fmt) if pattern == ISO else cls(fmt, _tokenize(pattern))
        elif _NAMED_FORMAT_RE.fullmatch(fmt):
            raise InvalidDateFormatError(f"Unknown named date format '{fmt}'")
        else:
            date_format = cls(fmt, _tokenize(fmt))

        cls._cache[fmt] = date_format
        return date_format

    @property
    def is_iso(self) -> bool:
        return self.tokens is None

    def parse(self, text: str) -> datetime:
        if self.is_iso:
            return _parse_iso(text)
        return datetime.strptime(text, self._strptime)

    def format(self, value: datetime) -> str:
        if self.is_iso:
            return value.isoformat()
        parts = []
        for text, letter, count in self.tokens:
            if not letter:
                parts.append(text)
            elif letter == "S":
                parts.append(f"{value.microsecond:06d}"[:count].ljust(count, "0"))
            elif letter in ("Z", "X") and value.tzinfo is None:
                parts.append("Z")
            else:
                parts.append(value.strftime(text))
        return "".join(parts)


def _parse_iso(text: str) -> datetime:
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        for fallback in ("%Y-%m", "%Y"):
            try:
                return datetime.strptime(value, fallback)
            except ValueError:
                continue
        raise


def parse_date(value: Union[str, int, float, datetime], formats: Sequence[str]) -> datetime:
    """
    Parse a date value using the first format that accepts it.

    Numbers are epoch milliseconds.

    Raises:
        ValueError: If no format accepts the value
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    text = str(value)
    for fmt in formats:
        try:
            return DateFormat.for_format(fmt).parse(text)
        except ValueError:
            continue
    if text.lstrip("-").isdigit():
        return datetime.fromtimestamp(int(text) / 1000.0, tz=timezone.utc)
    return _parse_iso(text)


def format_date(value: datetime, formats: Sequence[str]) -> Tuple[str, Optional[str]]:
    """Format a date with the first valid format; returns (text, format)."""
    for fmt in formats:
        try:
            return DateFormat.for_format(fmt).format(value), fmt
        except ValueError:
            continue
    return value.isoformat(), None
