# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Similarity suggestions for misspelled node types, resources and operations.

Node types use plain ``difflib`` matching. Resources and operations are scored
with a Levenshtein-based similarity tuned for short identifiers, plus tables
of well-known mistakes per node family (``files`` for ``file``,
``sendMessage`` for ``send`` ...). Both services degrade to an empty list on
any internal error so a suggestion failure never blocks validation.
"""

import difflib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..capabilities import CapabilityProvider
from ..constants import DEFAULT_MAX_SUGGESTIONS, DEFAULT_MIN_CONFIDENCE, DEFAULT_SUGGESTION_CACHE_SIZE

LOGGER = logging.getLogger(__name__)

VERY_HIGH_CONFIDENCE = 0.95
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6
MIN_SUBSTRING_CONFIDENCE = 0.7
PLURAL_FORM_CONFIDENCE = 0.9
COMMON_VARIATION_BOOST = 0.2

_COMMON_PREFIXES = ("get", "set", "create", "delete", "update", "send", "fetch")
_COMMON_SUFFIXES = ("data", "item", "record", "message", "file", "folder")


@dataclass(frozen=True)
class Suggestion:
    value: str
    confidence: float
    reason: str


def close_matches(ref: str, candidates: List[str], n: int = 3, cutoff: float = 0.6) -> List[Tuple[str, float]]:
    """Best *candidates* for *ref* with their ``difflib`` ratio, best first."""
    matches = difflib.get_close_matches(ref, list(dict.fromkeys(candidates)), n=n, cutoff=cutoff)
    return [(m, difflib.SequenceMatcher(None, ref, m).ratio()) for m in matches]


def suggest(ref: str, candidates: List[str], n: int = 3, cutoff: float = 0.6) -> Optional[str]:
    """Return a human-readable suggestion string for *ref*, or None if no close match."""
    matches = [m for m, _ in close_matches(ref, candidates, n=n, cutoff=cutoff)]
    return ", ".join(f"'{m}'" for m in matches) if matches else None


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + (ca != cb),  # substitution
                )
            )
        previous = current
    return previous[-1]


def similarity(first: str, second: str) -> float:
    """Case-insensitive similarity in [0, 1]."""
    s1, s2 = first.lower(), second.lower()
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        ratio = min(len(s1), len(s2)) / max(len(s1), len(s2))
        return max(MIN_SUBSTRING_CONFIDENCE, ratio)

    distance = levenshtein(s1, s2)
    max_len = max(len(s1), len(s2))
    score = 1 - distance / max_len
    # Short identifiers: one typo or a transposition is still a strong hint
    if distance == 1 and max_len <= 5:
        score = max(score, 0.75)
    elif distance == 2 and max_len <= 5:
        score = max(score, 0.72)
    return score


def operation_similarity(first: str, second: str) -> float:
    """Like ``similarity`` but rewards verb-prefix and noun-suffix variations."""
    score = similarity(first, second)
    s1, s2 = first.lower(), second.lower()
    if s1 == s2 or s1 in s2 or s2 in s1:
        return score
    if are_common_variations(s1, s2):
        return min(1.0, score + COMMON_VARIATION_BOOST)
    return score


def _strip_affix(first: str, second: str, affix: str, prefix: bool) -> Optional[Tuple[str, str]]:
    has = (lambda s: s.startswith(affix)) if prefix else (lambda s: s.endswith(affix))
    if has(first) == has(second):
        return None
    strip = (lambda s: s[len(affix):]) if prefix else (lambda s: s[: -len(affix)])
    return (strip(first) if has(first) else first, strip(second) if has(second) else second)


def are_common_variations(first: str, second: str) -> bool:
    """True when the two differ only by a common verb prefix or noun suffix."""
    if not first or not second or first == second:
        return False
    candidates = [(p, True) for p in _COMMON_PREFIXES] + [(s, False) for s in _COMMON_SUFFIXES]
    for affix, prefix in candidates:
        stripped = _strip_affix(first, second, affix, prefix)
        if stripped is None:
            continue
        left, right = stripped
        if left == right or levenshtein(left, right) <= 2:
            return True
    return False


def to_singular(word: str) -> str:
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("es") and word[:-2].endswith(("s", "x", "z", "ch", "sh")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def to_plural(word: str) -> str:
    if word.endswith("y") and word[-2:] not in ("ay", "ey", "iy", "oy", "uy"):
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def _reason(confidence: float, invalid: str, valid: str, noun: str) -> str:
    if confidence >= VERY_HIGH_CONFIDENCE:
        return "Almost exact match - likely a typo"
    if confidence >= HIGH_CONFIDENCE:
        return "Very similar - common variation"
    if confidence >= MEDIUM_CONFIDENCE:
        return "Similar resource name" if noun == "resource" else "Similar operation"
    if invalid in valid or valid in invalid:
        return "Partial match"
    return f"Possibly related {noun}"


# ── Known mistakes per node family ────────────────────────────────────────────

# (wrong value, correction, confidence, reason)
Pattern = Tuple[str, str, float, str]

RESOURCE_PATTERNS: Dict[str, Sequence[Pattern]] = {
    "googleDrive": (
        ("files", "file", 0.95, 'Use singular "file" not plural'),
        ("folders", "folder", 0.95, 'Use singular "folder" not plural'),
        ("permissions", "permission", 0.9, "Use singular form"),
        ("fileAndFolder", "fileFolder", 0.9, 'Use "fileFolder" for combined operations'),
        ("driveFiles", "file", 0.8, 'Use "file" for file operations'),
        ("sharedDrives", "drive", 0.85, 'Use "drive" for shared drive operations'),
    ),
    "slack": (
        ("messages", "message", 0.95, 'Use singular "message" not plural'),
        ("channels", "channel", 0.95, 'Use singular "channel" not plural'),
        ("users", "user", 0.95, 'Use singular "user" not plural'),
        ("msg", "message", 0.85, 'Use full "message" not abbreviation'),
        ("dm", "message", 0.7, 'Use "message" for direct messages'),
        ("conversation", "channel", 0.7, 'Use "channel" for conversations'),
    ),
    "database": (
        ("tables", "table", 0.95, 'Use singular "table" not plural'),
        ("queries", "query", 0.95, 'Use singular "query" not plural'),
        ("collections", "collection", 0.95, 'Use singular "collection" not plural'),
        ("documents", "document", 0.95, 'Use singular "document" not plural'),
        ("records", "record", 0.85, 'Use "record" or "document"'),
        ("rows", "row", 0.9, 'Use singular "row"'),
    ),
    "googleSheets": (
        ("sheets", "sheet", 0.95, 'Use singular "sheet" not plural'),
        ("spreadsheets", "spreadsheet", 0.95, 'Use singular "spreadsheet"'),
        ("cells", "cell", 0.9, 'Use singular "cell"'),
        ("ranges", "range", 0.9, 'Use singular "range"'),
        ("worksheets", "sheet", 0.8, 'Use "sheet" for worksheet operations'),
    ),
    "email": (
        ("emails", "email", 0.95, 'Use singular "email" not plural'),
        ("messages", "message", 0.9, 'Use "message" for email operations'),
        ("mails", "email", 0.9, 'Use "email" not "mail"'),
        ("attachments", "attachment", 0.95, 'Use singular "attachment"'),
    ),
    "generic": (
        ("items", "item", 0.9, "Use singular form"),
        ("objects", "object", 0.9, "Use singular form"),
        ("entities", "entity", 0.9, "Use singular form"),
        ("resources", "resource", 0.9, "Use singular form"),
        ("elements", "element", 0.9, "Use singular form"),
    ),
}

OPERATION_PATTERNS: Dict[str, Sequence[Pattern]] = {
    "googleDrive": (
        ("listFiles", "search", 0.85, 'Use "search" with resource: "fileFolder" to list files'),
        ("uploadFile", "upload", 0.95, 'Use "upload" instead of "uploadFile"'),
        ("downloadFile", "download", 0.95, 'Use "download" instead of "downloadFile"'),
        ("getFile", "download", 0.8, 'Use "download" to retrieve file content'),
        ("listFolders", "search", 0.85, 'Use "search" with resource: "fileFolder"'),
    ),
    "slack": (
        ("sendMessage", "send", 0.95, 'Use "send" instead of "sendMessage"'),
        ("getMessage", "get", 0.9, 'Use "get" to retrieve messages'),
        ("postMessage", "send", 0.9, 'Use "send" to post messages'),
        ("deleteMessage", "delete", 0.95, 'Use "delete" instead of "deleteMessage"'),
        ("createChannel", "create", 0.9, 'Use "create" with resource: "channel"'),
    ),
    "database": (
        ("selectData", "select", 0.95, 'Use "select" instead of "selectData"'),
        ("insertData", "insert", 0.95, 'Use "insert" instead of "insertData"'),
        ("updateData", "update", 0.95, 'Use "update" instead of "updateData"'),
        ("deleteData", "delete", 0.95, 'Use "delete" instead of "deleteData"'),
        ("query", "select", 0.7, 'Use "select" for queries'),
        ("fetch", "select", 0.7, 'Use "select" to fetch data'),
    ),
    "httpRequest": (
        ("fetch", "GET", 0.8, 'Use "GET" method for fetching data'),
        ("send", "POST", 0.7, 'Use "POST" method for sending data'),
        ("create", "POST", 0.8, 'Use "POST" method for creating resources'),
        ("update", "PUT", 0.8, 'Use "PUT" method for updating resources'),
        ("delete", "DELETE", 0.9, 'Use "DELETE" method'),
    ),
    "generic": (
        ("list", "get", 0.6, 'Consider using "get" or "search"'),
        ("retrieve", "get", 0.8, 'Use "get" to retrieve data'),
        ("fetch", "get", 0.8, 'Use "get" to fetch data'),
        ("remove", "delete", 0.85, 'Use "delete" to remove items'),
        ("add", "create", 0.7, 'Use "create" to add new items'),
    ),
}


def node_family(node_type: str) -> Optional[str]:
    """The pattern-table family of *node_type*, or None for the generic table only."""
    if "googleDrive" in node_type:
        return "googleDrive"
    if "slack" in node_type:
        return "slack"
    lowered = node_type.lower()
    if any(db in lowered for db in ("postgres", "mysql", "mongodb")):
        return "database"
    if "googleSheets" in node_type:
        return "googleSheets"
    if "gmail" in lowered or "email" in lowered:
        return "email"
    if "httpRequest" in node_type:
        return "httpRequest"
    return None


def _case_correction(invalid: str, valid: List[str]) -> Optional[Suggestion]:
    for value in valid:
        if value.lower() == invalid.lower():
            return Suggestion(value, VERY_HIGH_CONFIDENCE, f'Use "{value}" (values are case-sensitive)')
    return None


def _patterns_for(table: Dict[str, Sequence[Pattern]], node_type: str) -> List[Pattern]:
    family = node_family(node_type)
    patterns = list(table.get(family, ())) if family else []
    return patterns + list(table["generic"])


# ── Services ──────────────────────────────────────────────────────────────────


class _SimilarityService:
    """Shared memoization and failure handling for the two services.

    Results are kept in a least-recently-used cache of at most *cache_size*
    lookups.
    """

    def __init__(
        self,
        provider: CapabilityProvider,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        cache_size: int = DEFAULT_SUGGESTION_CACHE_SIZE,
    ):
        if cache_size < 1:
            raise ValueError(f"cache_size must be at least 1, got {cache_size}")
        self.provider = provider
        self.min_confidence = min_confidence
        self.max_suggestions = max_suggestions
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, str, str], List[Suggestion]]" = OrderedDict()

    def clear_cache(self):
        self._cache.clear()

    def _cached(self, key: Tuple[str, str, str], limit: Optional[int], compute) -> List[Suggestion]:
        limit = self.max_suggestions if limit is None else limit
        if key in self._cache:
            self._cache.move_to_end(key)
        else:
            try:
                self._cache[key] = compute()
            except Exception:
                LOGGER.debug("Similarity lookup failed for %s", key, exc_info=True)
                return []
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return list(self._cache[key][: max(limit, 0)])

    @staticmethod
    def _ranked(suggestions: List[Suggestion]) -> List[Suggestion]:
        # Stable sort keeps pattern suggestions ahead of equal-score lexical ones
        return sorted(suggestions, key=lambda s: -s.confidence)


class ResourceSimilarityService(_SimilarityService):
    def suggest_resource(
        self, node_type: str, invalid_value: str, limit: Optional[int] = None
    ) -> List[Suggestion]:
        """Ranked corrections for an unknown ``resource`` value of *node_type*."""
        key = (node_type, invalid_value, "")
        return self._cached(key, limit, lambda: self._compute(node_type, invalid_value))

    def _compute(self, node_type: str, invalid: str) -> List[Suggestion]:
        if not invalid:
            return []
        descriptor = self.provider.get_capability(node_type)
        if descriptor is None:
            return []
        valid = list(descriptor.known_resources)
        if invalid in valid:
            return []
        cased = _case_correction(invalid, valid)
        if cased is not None:
            return [cased]

        found: Dict[str, Suggestion] = {}
        for wrong, correction, confidence, reason in _patterns_for(RESOURCE_PATTERNS, node_type):
            if wrong.lower() == invalid.lower() and correction in valid and correction not in found:
                found[correction] = Suggestion(correction, confidence, reason)

        singular, plural = to_singular(invalid), to_plural(invalid)
        for value in valid:
            if value in found:
                continue
            if value in (singular, plural):
                reason = (
                    "Use singular form for resources"
                    if invalid.endswith("s")
                    else "Incorrect plural/singular form"
                )
                found[value] = Suggestion(value, PLURAL_FORM_CONFIDENCE, reason)
                continue
            score = similarity(invalid, value)
            if score >= self.min_confidence:
                found[value] = Suggestion(value, score, _reason(score, invalid, value, "resource"))

        return self._ranked(list(found.values()))


class OperationSimilarityService(_SimilarityService):
    def suggest_operation(
        self,
        node_type: str,
        invalid_value: str,
        resource: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Suggestion]:
        """Ranked corrections for an unknown ``operation`` value.

        When *resource* is a known resource of the node type only its
        operations are considered; otherwise every operation of the type is.
        """
        key = (node_type, invalid_value, resource or "")
        return self._cached(key, limit, lambda: self._compute(node_type, invalid_value, resource))

    def _compute(self, node_type: str, invalid: str, resource: Optional[str]) -> List[Suggestion]:
        if not invalid:
            return []
        descriptor = self.provider.get_capability(node_type)
        if descriptor is None:
            return []
        valid = descriptor.operations_for(resource)
        if invalid in valid:
            return []
        cased = _case_correction(invalid, valid)
        if cased is not None:
            return [cased]

        found: Dict[str, Suggestion] = {}
        for wrong, correction, confidence, reason in _patterns_for(OPERATION_PATTERNS, node_type):
            if wrong.lower() == invalid.lower() and correction in valid and correction not in found:
                found[correction] = Suggestion(correction, confidence, reason)

        for value in valid:
            if value in found:
                continue
            score = operation_similarity(invalid, value)
            if score >= self.min_confidence:
                found[value] = Suggestion(value, score, _reason(score, invalid, value, "operation"))

        return self._ranked(list(found.values()))
