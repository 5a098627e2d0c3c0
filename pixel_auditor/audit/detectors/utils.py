"""Pattern matching and object-literal parsing helpers shared by the detectors."""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Pattern, Tuple, Union

from ..errors import DetectorParseFailure

logger = logging.getLogger(__name__)


class MatchRecord(NamedTuple):
    """One fully materialized regex match."""
    text: str
    groups: Tuple[Optional[str], ...]
    start: int

    @property
    def end(self) -> int:
        return self.start + len(self.text)

    def group(self, index: int) -> Optional[str]:
        """Capture group by 1-based index, None when absent or unmatched."""
        if index == 0:
            return self.text
        if 0 < index <= len(self.groups):
            return self.groups[index - 1]
        return None


def find_all_matches(text: str, pattern: Union[str, Pattern[str]], flags: int = 0) -> List[MatchRecord]:
    """Return every match of ``pattern`` in ``text`` in order.

    A fresh iterator is built on each call so repeated calls with the same
    compiled pattern never share a cursor.
    """
    if not text:
        return []
    compiled = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    return [MatchRecord(m.group(0), m.groups(), m.start()) for m in compiled.finditer(text)]


def count_matches(text: str, pattern: Union[str, Pattern[str]], flags: int = 0) -> int:
    """Number of non-overlapping matches of ``pattern`` in ``text``."""
    return len(find_all_matches(text, pattern, flags))


class PatternLibrary:
    """Ordered table of named extraction rules for one platform.

    Each rule is a compiled regex whose capture ``group`` holds the
    identifier. Rules are evaluated independently; ``extract`` unions the
    raw candidates in rule order.
    """

    def __init__(self, platform: str):
        self.platform = platform
        self._patterns: Dict[str, Pattern[str]] = {}
        self._groups: Dict[str, int] = {}
        self._descriptions: Dict[str, str] = {}

    def add_pattern(self, name: str, pattern: str, flags: int = re.IGNORECASE,
                    group: int = 1, description: str = "") -> None:
        """Register an extraction rule. Invalid regexes fail at import time."""
        self._patterns[name] = re.compile(pattern, flags)
        self._groups[name] = group
        self._descriptions[name] = description

    def get_pattern(self, name: str) -> Pattern[str]:
        return self._patterns[name]

    def names(self) -> List[str]:
        return list(self._patterns)

    def find_all(self, name: str, text: str) -> List[MatchRecord]:
        return find_all_matches(text, self._patterns[name])

    def search(self, name: str, text: str) -> Optional[re.Match]:
        return self._patterns[name].search(text or "")

    def candidates(self, name: str, text: str) -> List[str]:
        """Raw identifier candidates captured by one rule."""
        group = self._groups[name]
        found = []
        for match in self.find_all(name, text):
            value = match.group(group)
            if value:
                found.append(value)
        return found

    def extract(self, text: str, names: Optional[Iterable[str]] = None) -> List[str]:
        """Union of candidates from the given rules (all rules by default)."""
        found: List[str] = []
        for name in (names if names is not None else self._patterns):
            found.extend(self.candidates(name, text))
        return found


def unique(values: Iterable[str]) -> List[str]:
    """Deduplicate while keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


# Object literal handling -----------------------------------------------------

_UNQUOTED_KEY = re.compile(r'([{,]\s*)([A-Za-z_$][\w$]*)\s*:')
_TRAILING_COMMA = re.compile(r',\s*([}\]])')
_SINGLE_QUOTED = re.compile(r"'((?:[^'\\]|\\.)*)'")
_MANUAL_PAIR = re.compile(r"""['"]?([\w$]+)['"]?\s*:\s*['"]?([^,}'"]+)['"]?""")
_INTEGER = re.compile(r'^-?\d+$')
_NUMBER = re.compile(r'^-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?$')


def extract_object_literal(text: str, start: int = 0) -> Optional[str]:
    """Return the brace-balanced ``{...}`` beginning at or after ``start``.

    Braces inside quoted strings are ignored and backslash escapes are
    honoured. Returns None when there is no opening brace or it never closes.
    """
    return extract_balanced(text, start, "{", "}")


def extract_balanced(text: str, start: int = 0, opener: str = "{", closer: str = "}") -> Optional[str]:
    """Return the balanced ``opener ... closer`` span beginning at or after ``start``."""
    open_at = text.find(opener, start)
    if open_at < 0:
        return None

    depth = 0
    quote: Optional[str] = None
    escaped = False
    for index in range(open_at, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if quote:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"', "`"):
            quote = char
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[open_at:index + 1]
    return None


def normalize_object_literal(literal: str) -> str:
    """Rewrite a JavaScript object literal into JSON text.

    Handles single-quoted strings, unquoted keys and trailing commas. Values
    that JSON cannot express (functions, variables) are left alone and make
    the later ``json.loads`` fail, which is what routes the caller to the
    manual scan.
    """
    def requote(match: re.Match) -> str:
        inner = match.group(1).replace('\\"', '"').replace("\\'", "'")
        return json.dumps(inner)

    normalized = literal.replace('\\"', '"')
    normalized = _SINGLE_QUOTED.sub(requote, normalized)
    normalized = _UNQUOTED_KEY.sub(r'\1"\2":', normalized)
    normalized = _TRAILING_COMMA.sub(r'\1', normalized)
    return normalized


def parse_object_literal_json(literal: str) -> Dict[str, Any]:
    """Structured path: normalize then ``json.loads``.

    Raises:
        DetectorParseFailure: The literal is not an object after normalization
    """
    try:
        parsed = json.loads(normalize_object_literal(literal))
    except (ValueError, TypeError):
        raise DetectorParseFailure("object literal", literal)
    if not isinstance(parsed, dict):
        raise DetectorParseFailure("object literal", literal)
    return parsed


def _coerce_scalar(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if _INTEGER.match(value):
        return int(value)
    if _NUMBER.match(value):
        return float(value)
    return value


def parse_object_literal_manual(literal: str) -> Dict[str, Any]:
    """Fallback path: scan ``key: value`` pairs with a permissive regex."""
    params: Dict[str, Any] = {}
    for match in find_all_matches(literal or "", _MANUAL_PAIR):
        key = match.group(1)
        value = (match.group(2) or "").strip()
        params[key] = _coerce_scalar(value)
    return params


def parse_object_literal(literal: Optional[str]) -> Optional[Dict[str, Any]]:
    """Tolerant object-literal parse: structured first, manual scan second."""
    if not literal:
        return None
    try:
        return parse_object_literal_json(literal)
    except DetectorParseFailure as e:
        logger.debug(f"{e}; falling back to manual scan")
    return parse_object_literal_manual(literal)


def object_after(text: str, match_end: int, max_gap: int = 200) -> Optional[str]:
    """Object literal passed as the next call argument after ``match_end``.

    Only a comma and whitespace may separate the match from the brace;
    anything else means the call has no object argument.
    """
    tail = text[match_end:match_end + max_gap]
    stripped = tail.lstrip()
    if not stripped.startswith(","):
        return None
    after_comma = stripped[1:].lstrip()
    if not after_comma.startswith("{"):
        return None
    return extract_object_literal(text, match_end + (len(tail) - len(after_comma)))


def read_config_flags(config: Optional[Dict[str, Any]], keys: Iterable[str]) -> Dict[str, Any]:
    """Pick the known configuration keys out of a parsed config object."""
    if not config:
        return {}
    return {key: config[key] for key in keys if key in config}
