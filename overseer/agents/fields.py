"""Tolerant field extraction for labeled model replies.

Agents ask the model for replies shaped like::

    ANSWER: The config lives in settings.py
    CONFIDENCE: 85
    SOURCES: settings.py:12, TK-7

A FieldSchema pulls the labeled values out, converts them, and reports
which fields were missing or defaulted instead of raising.

Usage:
    >>> schema = FieldSchema([FieldSpec("SCORE", parse_int(0, 100), 50)])
    >>> parsed = schema.parse("SCORE: 92")
    >>> parsed.values["SCORE"], parsed.missing
    (92, [])
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

_INTEGER = re.compile(r"-?\d+")
_TRUE_WORDS = frozenset({"true", "yes", "y", "1"})
_FALSE_WORDS = frozenset({"false", "no", "n", "0"})
_EMPTY_LIST_WORDS = frozenset({"none", "n/a", "na", "-"})


def parse_text(value: str) -> str:
    """Stripped text; empty text counts as missing."""
    value = value.strip()
    if not value:
        raise ValueError("empty value")
    return value


def parse_int(low: Optional[int] = None, high: Optional[int] = None) -> Callable[[str], int]:
    """Build a parser for the first integer in a value, clamped to [low, high].

    Accepts values like ``85``, ``85%`` or ``85/100``.
    """
    def _parse(value: str) -> int:
        match = _INTEGER.search(value)
        if not match:
            raise ValueError(f"no integer in {value!r}")
        number = int(match.group())
        if low is not None:
            number = max(low, number)
        if high is not None:
            number = min(high, number)
        return number

    return _parse


def parse_bool(value: str) -> bool:
    """Parse true/false style words."""
    words = value.strip().lower().split()
    word = words[0].strip(".,;") if words else ""
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_list(value: str) -> list[str]:
    """Parse a comma separated list, dropping blanks and 'none'."""
    items = [item.strip() for item in value.replace("\n", ",").split(",")]
    return [item for item in items if item and item.lower() not in _EMPTY_LIST_WORDS]


@dataclass(frozen=True)
class FieldSpec:
    """One labeled field.

    Attributes:
        name: Label as it appears before the colon (case-insensitive)
        parse: Converts the raw text; raising ValueError or TypeError marks
            the field missing
        default: Value used when the field is missing
    """

    name: str
    parse: Callable[[str], Any] = parse_text
    default: Any = None


@dataclass
class ParsedFields:
    """Partial parse result.

    Attributes:
        values: Converted value (or default) for every field in the schema
        found: Fields that were present and converted
        missing: Fields that were absent or failed to convert
        defaulted: Missing fields that received a non-None default
        raw: Raw text captured for each present label
    """

    values: dict[str, Any] = field(default_factory=dict)
    found: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    defaulted: list[str] = field(default_factory=list)
    raw: dict[str, str] = field(default_factory=dict)

    @property
    def recovered(self) -> bool:
        """Whether at least one field was recovered."""
        return bool(self.found)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name.upper(), default)


class FieldSchema:
    """Extracts a fixed set of labeled fields from free text.

    A label is recognized at the start of a line in any case, optionally
    wrapped in markdown bold or list markers. Uppercase labels are also
    recognized mid-line, so single-line replies such as
    ``ANSWER: x CONFIDENCE: 10`` still split. A value runs until the next
    known label or the end of the text. The first occurrence of a label wins.
    """

    def __init__(self, specs: list[FieldSpec]):
        self.specs = {spec.name.upper(): spec for spec in specs}
        labels = "|".join(re.escape(name) for name in sorted(self.specs, key=len, reverse=True))
        self._label_pattern = re.compile(
            r"^[ \t]*(?:[-*>#]+[ \t]*)?\**[ \t]*(" + labels + r")[ \t]*\**[ \t]*:[ \t]*\**",
            re.IGNORECASE | re.MULTILINE,
        )
        self._inline_pattern = re.compile(
            r"(?<![\w-])\**(" + labels + r")\**[ \t]*:[ \t]*\**"
        )

    def _find_labels(self, text: str) -> list[re.Match]:
        candidates = sorted(
            list(self._label_pattern.finditer(text)) + list(self._inline_pattern.finditer(text)),
            key=lambda m: (m.start(), -m.end()),
        )
        matches = []
        last_end = -1
        for match in candidates:
            if match.start() < last_end:
                continue
            matches.append(match)
            last_end = match.end()
        return matches

    def parse(self, text: Optional[str]) -> ParsedFields:
        """Parse labeled fields out of text. Never raises."""
        result = ParsedFields()
        if not isinstance(text, str):
            text = ""

        matches = self._find_labels(text)
        for i, match in enumerate(matches):
            name = match.group(1).upper()
            if name in result.raw:
                continue
            end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
            result.raw[name] = text[match.end():end].strip().strip("*").strip()

        for name, spec in self.specs.items():
            if name in result.raw:
                try:
                    result.values[name] = spec.parse(result.raw[name])
                    result.found.append(name)
                    continue
                except (ValueError, TypeError):
                    pass
            result.values[name] = spec.default
            result.missing.append(name)
            if spec.default is not None:
                result.defaulted.append(name)

        return result
