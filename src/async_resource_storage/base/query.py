# src/async_resource_storage/base/query.py
"""
Database-agnostic query model consumed by storage handlers.

A `Query` is made of a predicate (a list of expressions that must all match),
a sort list, a projection and an optional pagination window. Expressions form
a tree of immutable nodes; storages translate them and never mutate them.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

log = logging.getLogger(__name__)

# Window limit meaning "no limit". A limit of 0 means "return nothing".
NO_LIMIT = -1

# Projection field name selecting every field.
STAR_PROJECTION = "*"


# --- Expression Nodes ---
class Expression:
    """Base class for predicate nodes."""

    def __and__(self, other: "Expression") -> "And":
        log.debug(f"Combining expressions with AND: {self!r} & {other!r}")
        return And([self, other])

    def __or__(self, other: "Expression") -> "Or":
        log.debug(f"Combining expressions with OR: {self!r} | {other!r}")
        return Or([self, other])


# A predicate is a list of expressions, implicitly AND-ed.
Predicate = List[Union[Expression, "Predicate"]]


@dataclass(frozen=True)
class And(Expression):
    """Matches when every sub-expression matches."""

    expressions: Sequence[Union[Expression, Predicate]] = field(default_factory=list)


@dataclass(frozen=True)
class Or(Expression):
    """Matches when at least one sub-expression matches."""

    expressions: Sequence[Union[Expression, Predicate]] = field(default_factory=list)


@dataclass(frozen=True)
class ElemMatch(Expression):
    """Matches when one element of the array `field` satisfies all `expressions`."""

    field: str
    expressions: Sequence[Union[Expression, Predicate]] = field(default_factory=list)


@dataclass(frozen=True)
class In(Expression):
    field: str
    values: Sequence[Any] = field(default_factory=list)


@dataclass(frozen=True)
class NotIn(Expression):
    field: str
    values: Sequence[Any] = field(default_factory=list)


@dataclass(frozen=True)
class Exist(Expression):
    field: str


@dataclass(frozen=True)
class NotExist(Expression):
    field: str


@dataclass(frozen=True)
class Equal(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class NotEqual(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class GreaterThan(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class GreaterOrEqual(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class LowerThan(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class LowerOrEqual(Expression):
    field: str
    value: Any


@dataclass(frozen=True)
class Regex(Expression):
    """Matches string values against a pattern, or values not matching it when negated."""

    field: str
    value: Union[re.Pattern, str]
    negated: bool = False

    @property
    def pattern(self) -> str:
        if isinstance(self.value, re.Pattern):
            return self.value.pattern
        return str(self.value)


# --- Sort, Projection and Window ---
@dataclass(frozen=True)
class SortField:
    name: str
    reversed: bool = False


@dataclass(frozen=True)
class ProjectionField:
    name: str


@dataclass
class Window:
    """Pagination window. `limit` is NO_LIMIT (-1) for unbounded pages."""

    offset: int = 0
    limit: int = NO_LIMIT

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError("Window offset must be a non-negative integer.")
        if self.limit < NO_LIMIT:
            raise ValueError("Window limit must be -1 (no limit) or non-negative.")


# --- Query ---
@dataclass
class Query:
    """A complete query: predicate, sort, projection and optional window."""

    predicate: Predicate = field(default_factory=list)
    sort: List[SortField] = field(default_factory=list)
    projection: List[Union[ProjectionField, str]] = field(default_factory=list)
    window: Optional[Window] = None

    def projection_names(self) -> List[str]:
        """Returns projected field names, accepting both ProjectionField and str."""
        return [
            p.name if isinstance(p, ProjectionField) else str(p)
            for p in self.projection
        ]

    def __repr__(self) -> str:
        parts = []
        if self.predicate:
            parts.append(f"predicate={self.predicate!r}")
        if self.sort:
            parts.append(f"sort={self.sort!r}")
        if self.projection:
            parts.append(f"projection={self.projection_names()!r}")
        if self.window is not None:
            parts.append(f"window={self.window!r}")
        return f"Query({', '.join(parts)})"
