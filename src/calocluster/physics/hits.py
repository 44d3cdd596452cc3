from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..errors import InvalidConfiguration, InvalidGeometry

@dataclass(slots=True)
class CaloHit:
    """
    Reconstructed crystal hit (one per crystal per event).

    element_index: crystal index within its calorimeter section
    t_ns: hit time [ns]
    amplitude: energy-like measure (e.g. MeV after calibration)
    extras: arbitrary per-hit fields preserved from input (raw columns, ...)
    """
    element_index: int
    t_ns: float
    amplitude: float = 0.0

    extras: Dict[str, Any] = field(default_factory=dict)


class HitMap:
    """
    Per-event crystal -> hit lookup.

    Holds references to the caller's hit objects; valid only while the
    event that produced them is being processed.
    """

    def __init__(self, element_count: int):
        self._element_count = int(element_count)
        self._slots: List[Optional[CaloHit]] = [None] * self._element_count
        self._n = 0

    @classmethod
    def from_hits(cls, hits: Iterable[CaloHit], element_count: int) -> "HitMap":
        hm = cls(element_count)
        for h in hits:
            hm.add(h)
        return hm

    def add(self, hit: CaloHit) -> None:
        i = hit.element_index
        if i < 0 or i >= self._element_count:
            raise InvalidGeometry(f"hit on crystal {i} outside [0, {self._element_count})")
        if self._slots[i] is not None:
            raise InvalidConfiguration(f"crystal {i} already has a hit in this event")
        self._slots[i] = hit
        self._n += 1

    def hit_at(self, index: int) -> Optional[CaloHit]:
        if index < 0 or index >= self._element_count:
            return None
        return self._slots[index]

    def by_amplitude(self) -> List[CaloHit]:
        """Hits sorted by decreasing amplitude, ties broken by crystal index."""
        return sorted(self, key=lambda h: (-h.amplitude, h.element_index))

    @property
    def element_count(self) -> int:
        return self._element_count

    def __iter__(self) -> Iterator[CaloHit]:
        return (h for h in self._slots if h is not None)

    def __len__(self) -> int:
        return self._n

    def __contains__(self, index: int) -> bool:
        return self.hit_at(index) is not None
