"""Metadata filter model for vector index queries.

A ``Filter`` is a boolean query tree over payload fields made of three clause
lists: ``must`` (AND), ``must_not`` (AND NOT) and ``should`` (OR). Clauses are
a closed set of variants so that merging and rewriting rules can match on
them explicitly instead of poking at nested dicts.

Wire form (as accepted by ``Filter.from_dict`` and produced by ``to_dict``)::

    {"must": [{"key": "user_id", "match": {"value": "u1"}}],
     "should": [{"key": "lang", "match": {"any": ["de", "en"]}}]}

An empty filter means "no restriction"; use ``as_query_filter`` before handing
a filter to an index so it is sent as ``None``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .base import InvalidFilter

FieldValue = Union[str, int, bool]


@dataclass(frozen=True)
class MatchValue:
    """Exact value match on ``key``."""
    key: str
    value: FieldValue

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "match": {"value": self.value}}


@dataclass(frozen=True)
class MatchAny:
    """Any-of match on ``key``."""
    key: str
    values: Tuple[FieldValue, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "match": {"any": list(self.values)}}


@dataclass(frozen=True)
class MatchText:
    """Full-text substring match on ``key`` (requires a text index)."""
    key: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "match": {"text": self.text}}


@dataclass(frozen=True)
class Range:
    """Numeric range on ``key``; at least one bound must be set."""
    key: str
    gte: Optional[float] = None
    lte: Optional[float] = None
    gt: Optional[float] = None
    lt: Optional[float] = None

    def __post_init__(self):
        if all(b is None for b in (self.gte, self.lte, self.gt, self.lt)):
            raise InvalidFilter(f"Range clause on '{self.key}' has no bounds")

    def to_dict(self) -> Dict[str, Any]:
        bounds = {
            name: getattr(self, name)
            for name in ("gte", "lte", "gt", "lt")
            if getattr(self, name) is not None
        }
        return {"key": self.key, "range": bounds}


Clause = Union[MatchValue, MatchAny, MatchText, Range]


@dataclass(frozen=True)
class Filter:
    """Boolean filter over payload fields."""
    must: Tuple[Clause, ...] = field(default_factory=tuple)
    must_not: Tuple[Clause, ...] = field(default_factory=tuple)
    should: Tuple[Clause, ...] = field(default_factory=tuple)

    def is_empty(self) -> bool:
        return not (self.must or self.must_not or self.should)

    def with_must(self, *clauses: Clause) -> "Filter":
        """Return a copy with ``clauses`` appended to ``must``."""
        return Filter(self.must + tuple(clauses), self.must_not, self.should)

    def without_should(self) -> "Filter":
        return Filter(self.must, self.must_not, ())

    def to_dict(self) -> Dict[str, Any]:
        """Render the wire form, omitting empty clause lists."""
        out: Dict[str, Any] = {}
        for name in ("must", "must_not", "should"):
            clauses = getattr(self, name)
            if clauses:
                out[name] = [c.to_dict() for c in clauses]
        return out

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Filter":
        """Parse the wire form.

        ``None`` and ``{}`` both yield the empty filter. Unknown top-level keys
        or clauses that are neither a match nor a range raise ``InvalidFilter``.
        """
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise InvalidFilter(f"Filter must be a mapping, got {type(data).__name__}")

        unknown = set(data) - {"must", "must_not", "should"}
        if unknown:
            raise InvalidFilter(f"Unknown filter sections: {sorted(unknown)}")

        parsed = {}
        for name in ("must", "must_not", "should"):
            raw = data.get(name) or []
            if not isinstance(raw, list):
                raise InvalidFilter(f"Filter section '{name}' must be a list")
            parsed[name] = tuple(parse_clause(c) for c in raw)
        return cls(**parsed)


def parse_clause(raw: Any) -> Clause:
    """Parse a single wire-form clause."""
    if not isinstance(raw, dict) or not isinstance(raw.get("key"), str):
        raise InvalidFilter(f"Clause must be a mapping with a string 'key': {raw!r}")

    key = raw["key"]
    if "match" in raw:
        match = raw["match"]
        if not isinstance(match, dict):
            raise InvalidFilter(f"Clause '{key}' has a non-mapping match")
        if "value" in match:
            return MatchValue(key, match["value"])
        if "any" in match:
            values = match["any"]
            if not isinstance(values, (list, tuple)):
                raise InvalidFilter(f"Clause '{key}' match.any must be a list")
            return MatchAny(key, tuple(values))
        if "text" in match:
            return MatchText(key, str(match["text"]))
        raise InvalidFilter(f"Clause '{key}' has an unsupported match: {match!r}")

    if "range" in raw:
        bounds = raw["range"]
        if not isinstance(bounds, dict):
            raise InvalidFilter(f"Clause '{key}' has a non-mapping range")
        unknown = set(bounds) - {"gte", "lte", "gt", "lt"}
        if unknown:
            raise InvalidFilter(f"Clause '{key}' has unknown range bounds {sorted(unknown)}")
        return Range(key, **bounds)

    raise InvalidFilter(f"Clause '{key}' has neither match nor range")


def merge_filters(a: Optional[Filter] = None, b: Optional[Filter] = None) -> Filter:
    """Structurally merge two filters by concatenating their clause lists.

    The empty filter is the identity element: ``merge_filters(f, Filter())``
    and ``merge_filters(Filter(), f)`` are both equal to ``f``.
    """
    a = a or Filter()
    b = b or Filter()
    return Filter(
        must=a.must + b.must,
        must_not=a.must_not + b.must_not,
        should=a.should + b.should,
    )


def coerce_filter(value: Union[Filter, Dict[str, Any], None]) -> Filter:
    """Accept either a ``Filter`` or its wire form."""
    if isinstance(value, Filter):
        return value
    return Filter.from_dict(value)


def as_query_filter(flt: Optional[Filter]) -> Optional[Filter]:
    """Map the empty filter to ``None`` (no restriction)."""
    if flt is None or flt.is_empty():
        return None
    return flt


# Payload fields whose ``should`` clauses only express a soft preference.
SOFT_PREFERENCE_FIELDS = frozenset({"content_type", "lang", "language"})


def strip_soft_should_clauses(flt: Filter) -> Tuple[Filter, List[Clause]]:
    """Drop ``should`` when every clause targets a soft-preference field.

    Combined with ``must``, a non-empty ``should`` requires at least one of its
    clauses to match, which turns a guessed content type or language into a
    hard restriction. Clauses on any other field are the caller's intent and
    keep the whole list untouched.

    Returns the (possibly rewritten) filter and the clauses that were removed.
    """
    if not flt.should:
        return flt, []
    if all(clause.key in SOFT_PREFERENCE_FIELDS for clause in flt.should):
        return flt.without_should(), list(flt.should)
    return flt, []
