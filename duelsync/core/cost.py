"""Cost payment checks."""

from __future__ import annotations

from itertools import combinations
from typing import Iterable

from duelsync.protocol.models import Cost, CostProvider


def is_satisfied(
    cost: Cost, providers: Iterable[CostProvider], selected: Iterable[int]
) -> bool:
    """True when `selected` provider entities pay `cost` exactly.

    Overpayment is rejected, as is any entity that isn't one of `providers`
    or appears twice in the selection.
    """
    by_entity = {p.entity: p for p in providers}
    seen: set[int] = set()
    total = 0
    for entity in selected:
        provider = by_entity.get(entity)
        if provider is None or entity in seen:
            return False
        seen.add(entity)
        total += provider.provided.any
    return total == cost.any


def find_payment(cost: Cost, providers: Iterable[CostProvider]) -> tuple[int, ...] | None:
    """Smallest selection of providers that pays `cost` exactly, if any."""
    candidates = [p for p in providers if p.provided.any > 0]
    if cost.any == 0:
        return ()
    for size in range(1, len(candidates) + 1):
        for combo in combinations(candidates, size):
            if sum(p.provided.any for p in combo) == cost.any:
                return tuple(p.entity for p in combo)
    return None
