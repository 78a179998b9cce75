"""Pin numbering within a scope."""

from typing import Iterable

from .models import Comment, ScopeKey
from .scope import in_scope


def next_pin_number(comments: Iterable[Comment], scope: ScopeKey) -> int:
    """
    Next pin number for a scope: highest existing number plus one.

    Recomputed from the current comments on every call. Deleted numbers
    are never reused while a higher number exists, and siblings are never
    renumbered.
    """
    return max((c.pin_number for c in comments if in_scope(c, scope)), default=0) + 1


def pin_numbers(comments: Iterable[Comment], scope: ScopeKey) -> list[int]:
    """Pin numbers in use in a scope, ascending. Duplicates from concurrent writers are kept."""
    return sorted(c.pin_number for c in comments if in_scope(c, scope))
