"""Metadata extraction for work items.

Derives the structured signals the decomposition rules run on: referenced
files, keyword categories, component and property counts, and a complexity
tier. Extraction is a pure function of the work item and never raises;
absent or malformed fields degrade to empty/zero values.

Usage:
    >>> from overseer.planning.metadata import extract_metadata
    >>> metadata = extract_metadata(item)
    >>> if metadata.is_design_task and metadata.component_count > 10:
    ...     # split by component
"""

import json
import math
import re
from typing import Any, Optional

from overseer.core.models import ComplexityTier, TaskMetadata, WorkItem


# Keyword dictionaries for task type detection
# Matched on word boundaries (with an optional plural "s")
_DESIGN_KEYWORDS = (
    "component", "layout", "canvas", "style", "responsive",
    "drag", "drop", "visual", "ui", "page",
)

_SYNC_KEYWORDS = (
    "sync", "conflict", "device", "merge", "lock",
    "p2p", "nas", "cloud",
)

_ETHICS_KEYWORDS = (
    "ethics", "freedom", "guard", "sensitivity", "audit",
    "block", "allow", "rule",
)

_TESTING_KEYWORDS = (
    "test", "jest", "coverage", "assert", "mock", "spec",
)

_UI_KEYWORDS = (
    "button", "input", "modal", "dialog", "panel",
    "sidebar", "header", "footer", "menu", "tooltip",
)

# A category is present only once this many distinct keywords match
MIN_CATEGORY_MATCHES = 2

_DOCS_PATTERN = re.compile(
    r"\b(doc|readme|changelog|documentation|jsdoc|comment)\b", re.IGNORECASE
)

# Widget words counted as components
_WIDGET_KEYWORDS = (
    "button", "input", "modal", "dialog", "card", "sidebar", "header",
    "footer", "nav", "panel", "form", "table", "list", "menu", "tab",
    "tooltip", "dropdown", "checkbox", "radio", "select", "toggle",
    "slider", "accordion", "carousel", "badge", "avatar", "breadcrumb",
    "pagination", "stepper", "chip", "alert", "toast", "snackbar",
)

# Property groups, in the order subtasks are generated
PROPERTY_GROUPS: dict[str, tuple[str, ...]] = {
    "position": ("x", "y", "z", "top", "left", "right", "bottom", "position", "zIndex", "offset"),
    "sizing": ("width", "height", "minWidth", "minHeight", "maxWidth", "maxHeight", "size"),
    "style": ("color", "backgroundColor", "background", "opacity", "shadow", "boxShadow", "border", "borderRadius"),
    "typography": ("font", "fontSize", "fontWeight", "fontFamily", "lineHeight", "letterSpacing", "textAlign", "text"),
    "layout": ("display", "flex", "flexDirection", "justifyContent", "alignItems", "gap", "grid", "padding", "margin"),
    "behavior": ("onClick", "onHover", "onDrag", "onDrop", "onScroll", "event", "handler", "callback", "listener"),
    "data": ("value", "data", "state", "props", "content", "label", "placeholder", "name", "id"),
    "responsive": ("responsive", "breakpoint", "tablet", "mobile", "desktop", "media"),
}

FILE_PATH_PATTERN = re.compile(
    r"(?:[a-zA-Z]:\\|\./|\.\./|/)?(?:[\w\-.]+[/\\])*[\w\-.]+\.\w{1,10}"
)
_SHORT_EXTENSION = re.compile(r"\.\w{1,5}$")
_VERSION_LIKE = re.compile(r"^v?\d+(?:\.\d+)+$")
_MIN_FILE_TOKEN_LENGTH = 4


def _compile_keywords(keywords) -> dict[str, re.Pattern]:
    """Compile one word-boundary pattern per keyword."""
    return {
        kw: re.compile(r"\b" + re.escape(kw.lower()) + r"s?\b", re.IGNORECASE)
        for kw in keywords
    }


def _coerce_minutes(value: Any) -> int:
    """Estimated minutes as a non-negative int, 0 when absent or invalid."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, str) and v]


def gather_text(item: WorkItem) -> str:
    """Concatenate every free-text source of a work item into one corpus.

    The context blob is parsed best-effort: JSON text is decoded (a decoded
    string is used as is, anything else re-serialized) and unparsable text
    is used raw.
    """
    parts: list[str] = []
    for text in (item.title, item.description, item.acceptance_criteria):
        if isinstance(text, str) and text:
            parts.append(text)

    context = item.context
    if isinstance(context, str) and context:
        try:
            parsed = json.loads(context)
        except ValueError:
            parts.append(context)
        else:
            parts.append(parsed if isinstance(parsed, str) else json.dumps(parsed))
    elif isinstance(context, dict) and context:
        parts.append(json.dumps(context, default=str))

    files = _string_list(item.files)
    if files:
        parts.append(" ".join(files))

    return " ".join(parts)


def _context_dict(item: WorkItem) -> Optional[dict]:
    """The context blob as a dict, if it is one."""
    context = item.context
    if isinstance(context, dict):
        return context
    if isinstance(context, str) and context:
        try:
            parsed = json.loads(context)
        except ValueError:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def derive_complexity(minutes: int, file_count: int, component_count: int) -> ComplexityTier:
    """Derive the four-level complexity tier.

    A first pass flags very_high on any large signal and grades the rest.
    A refinement pass may only pull small items down to low or medium.

    Args:
        minutes: Estimated minutes (0 when unknown)
        file_count: Number of resolved files
        component_count: Number of distinct component references

    Returns:
        ComplexityTier
    """
    if minutes > 45 or file_count > 5 or component_count > 10:
        tier = ComplexityTier.VERY_HIGH
    elif file_count > 3 or minutes > 35:
        tier = ComplexityTier.HIGH
    elif minutes > 20 or file_count > 1:
        tier = ComplexityTier.MEDIUM
    else:
        tier = ComplexityTier.LOW

    if minutes <= 20 and file_count <= 1:
        tier = ComplexityTier.LOW
    elif minutes <= 35 and file_count <= 3 and tier != ComplexityTier.VERY_HIGH:
        tier = ComplexityTier.MEDIUM

    return tier


class MetadataExtractor:
    """Extracts TaskMetadata from work items.

    Patterns are compiled once per extractor; extraction itself holds no
    state, so one instance can be shared across threads.
    """

    def __init__(self):
        """Initialize the extractor with keyword patterns."""
        self._categories = {
            "design": _compile_keywords(_DESIGN_KEYWORDS),
            "sync": _compile_keywords(_SYNC_KEYWORDS),
            "ethics": _compile_keywords(_ETHICS_KEYWORDS),
            "testing": _compile_keywords(_TESTING_KEYWORDS),
            "ui": _compile_keywords(_UI_KEYWORDS),
        }
        self._property_patterns = {
            group: _compile_keywords(keywords)
            for group, keywords in PROPERTY_GROUPS.items()
        }
        widgets = "|".join(re.escape(w) for w in sorted(_WIDGET_KEYWORDS, key=len, reverse=True))
        self._component_patterns = [
            re.compile(r"\bcomponent\b"),
            re.compile(r"\b\w+component\b"),
            re.compile(r"\b(?:" + widgets + r")\b"),
        ]

    def extract(self, item: Optional[WorkItem]) -> TaskMetadata:
        """Derive metadata for a work item.

        Args:
            item: Work item to analyze (None yields empty metadata)

        Returns:
            TaskMetadata
        """
        if item is None:
            return TaskMetadata()

        text = gather_text(item)
        text_lower = text.lower()

        files: list[str] = []
        for path in _string_list(item.files) + self.extract_file_paths(text):
            if path not in files:
                files.append(path)

        component_count = self.count_components(text_lower)
        property_count = self.count_properties(text_lower)
        dependency_count = len(_string_list(item.dependencies))

        signals: list[str] = []
        present = {
            category: self._has_keywords(text_lower, patterns, category, signals)
            for category, patterns in self._categories.items()
        }

        minutes = _coerce_minutes(item.estimated_minutes)

        files_to_create: list[str] = []
        context = _context_dict(item)
        if context:
            files_to_create = _string_list(
                context.get("files_to_create", context.get("filesToCreate"))
            )

        return TaskMetadata(
            file_count=len(files),
            files=files,
            files_to_create=files_to_create,
            component_count=component_count,
            property_count=property_count,
            dependency_count=dependency_count,
            is_design_task=present["design"],
            is_sync_task=present["sync"],
            is_ethics_task=present["ethics"],
            has_tests=present["testing"],
            has_docs=bool(_DOCS_PATTERN.search(text)),
            has_ui=present["design"] or present["ui"],
            complexity=derive_complexity(minutes, len(files), component_count),
            keyword_signals=signals,
        )

    def extract_file_paths(self, text: str) -> list[str]:
        """Extract file-like tokens from text, de-duplicated in order.

        A token is kept when it contains a path separator or ends in a short
        extension, is not version or number shaped, and is at least four
        characters long.
        """
        if not text:
            return []

        paths: list[str] = []
        for match in FILE_PATH_PATTERN.findall(text):
            if not ("/" in match or "\\" in match or _SHORT_EXTENSION.search(match)):
                continue
            if _VERSION_LIKE.match(match):
                continue
            if len(match) < _MIN_FILE_TOKEN_LENGTH:
                continue
            if match not in paths:
                paths.append(match)
        return paths

    def count_components(self, text_lower: str) -> int:
        """Count distinct component references in lowercased text."""
        matches: set[str] = set()
        for pattern in self._component_patterns:
            matches.update(pattern.findall(text_lower))
        return len(matches)

    def count_properties(self, text_lower: str) -> int:
        """Count distinct property keywords across all property groups."""
        return sum(len(props) for _, props in self.property_groups(text_lower))

    def property_groups(self, text: str) -> list[tuple[str, list[str]]]:
        """Property groups mentioned in text, in dictionary order.

        Returns:
            (group name, matched property keywords) for every group with at
            least one match
        """
        groups = []
        for group, patterns in self._property_patterns.items():
            matched = [kw for kw, pattern in patterns.items() if pattern.search(text)]
            if matched:
                groups.append((group, matched))
        return groups

    def _has_keywords(
        self,
        text_lower: str,
        patterns: dict[str, re.Pattern],
        category: str,
        signals: list[str],
    ) -> bool:
        """Record matched keywords as signals and report category presence."""
        matched = 0
        for kw, pattern in patterns.items():
            if pattern.search(text_lower):
                matched += 1
                signals.append(f"{category}:{kw}")
        return matched >= MIN_CATEGORY_MATCHES


_default_extractor = MetadataExtractor()


def extract_metadata(item: Optional[WorkItem]) -> TaskMetadata:
    """Extract metadata using the shared default extractor."""
    return _default_extractor.extract(item)
