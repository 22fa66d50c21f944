from __future__ import annotations

from typing import Dict, Iterator, Sequence, Tuple

from contracts.access_types import Classification
from engine.errors import UnknownClassification

DEFAULT_LEVELS: Tuple[str, ...] = (
    "UNCLASSIFIED",
    "RESTRICTED",
    "CONFIDENTIAL",
    "SECRET",
    "TOP_SECRET",
)


class ClassificationLattice:
    """
    Closed, totally ordered set of classification levels.

    Levels are given lowest first; rank is the position in that sequence.
    The set is fixed once built and handed to the decision engine as a
    snapshot.
    """

    def __init__(self, names: Sequence[str] = DEFAULT_LEVELS) -> None:
        cleaned = [str(n).strip().upper() for n in names if str(n).strip()]
        if not cleaned:
            raise ValueError("classification lattice needs at least one level")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("classification levels must be unique")

        self._levels: Tuple[Classification, ...] = tuple(
            Classification(name=name, rank=rank) for rank, name in enumerate(cleaned)
        )
        self._by_name: Dict[str, Classification] = {c.name: c for c in self._levels}

    def get(self, name: str) -> Classification:
        key = str(name or "").strip().upper()
        try:
            return self._by_name[key]
        except KeyError:
            raise UnknownClassification(str(name)) from None

    def levels(self) -> Tuple[Classification, ...]:
        return self._levels

    @property
    def lowest(self) -> Classification:
        return self._levels[0]

    @property
    def highest(self) -> Classification:
        return self._levels[-1]

    def at_least_as_restrictive(self, a: Classification, b: Classification) -> bool:
        return a.rank >= b.rank

    def max(self, a: Classification, b: Classification) -> Classification:
        return a if self.at_least_as_restrictive(a, b) else b

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Classification):
            return self._by_name.get(item.name) == item
        return str(item).strip().upper() in self._by_name

    def __iter__(self) -> Iterator[Classification]:
        return iter(self._levels)

    def __len__(self) -> int:
        return len(self._levels)
