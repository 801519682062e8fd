"""Work out which patients and nurses a batch of appointments actually needs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Sequence, TypeVar

from homecare_sync.schemas.records import AppointmentRecord

T = TypeVar("T")


@dataclass
class ReferenceSet:
    patient_ids: list[str] = field(default_factory=list)
    nurse_ids: list[str] = field(default_factory=list)


def _distinct(values: Iterable[str | None]) -> list[str]:
    # dict keeps first-seen order
    return list(dict.fromkeys(v for v in values if v))


def resolve_references(appointments: Iterable[AppointmentRecord]) -> ReferenceSet:
    """Distinct, non-empty patient and nurse ids referenced by ``appointments``."""
    appointments = list(appointments)
    return ReferenceSet(
        patient_ids=_distinct(a.patient_id for a in appointments),
        nurse_ids=_distinct(a.nurse_id for a in appointments),
    )


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])
