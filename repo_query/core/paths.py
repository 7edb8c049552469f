"""Navigation path resolution for eager loading.

An include path names the related data to load with an entity, e.g.
``"posts.comments"``. Paths can be written as dotted strings, built with
:class:`IncludePath`, given as SQLAlchemy instrumented attributes, or as a
sequence of steps where each step selects a member from the elements of the
previous (possibly collection-typed) step.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import QueryableAttribute

from repo_query.core.exceptions import ContractViolationError


@dataclass(frozen=True)
class IncludePath:
    """Typed builder for dot-separated navigation paths.

    Example:
        IncludePath.of(Blog.posts).then(Post.comments)  # "posts.comments"
    """

    segments: tuple[str, ...]

    @classmethod
    def of(cls, step: Any) -> IncludePath:
        path = try_parse_path(step)
        if path is None:
            raise ContractViolationError("step", f"Cannot resolve navigation step {step!r}")
        return cls(tuple(path.split(".")))

    def then(self, step: Any) -> IncludePath:
        """Select a member from the elements of this path."""
        return IncludePath(self.segments + IncludePath.of(step).segments)

    def __str__(self) -> str:
        return ".".join(self.segments)


def _parse_string(value: str) -> str | None:
    segments = [part.strip() for part in value.strip().split(".")]
    if not all(part.isidentifier() for part in segments):
        return None
    return ".".join(segments)


def try_parse_path(expression: Any) -> str | None:
    """Resolve ``expression`` to a dotted path.

    Returns None instead of raising when the expression cannot be resolved,
    so callers can fall back to another strategy.
    """
    if expression is None:
        return None

    if isinstance(expression, IncludePath):
        return str(expression) if expression.segments else None

    if isinstance(expression, str):
        return _parse_string(expression)

    if isinstance(expression, QueryableAttribute):
        return expression.key

    # Sequence of steps: parent step first, then the member selected from it
    if isinstance(expression, (tuple, list)):
        parts: list[str] = []
        for step in expression:
            part = try_parse_path(step)
            if part is None:
                return None
            parts.append(part)
        return ".".join(parts) if parts else None

    return None


def resolve_includes(includes: Iterable[Any] | None) -> tuple[str, ...]:
    """Resolve caller includes in order, rejecting unresolvable paths."""
    if includes is None:
        return ()
    if isinstance(includes, (str, IncludePath, QueryableAttribute)):
        includes = (includes,)

    resolved: list[str] = []
    for include in includes:
        path = try_parse_path(include)
        if path is None:
            raise ContractViolationError(
                "includes", f"Include {include!r} is not a resolvable navigation path"
            )
        resolved.append(path)
    return tuple(resolved)
