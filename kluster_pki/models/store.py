"""
In-memory value of a cluster's certificate store.
"""
from typing import Dict, Iterator, List, Optional

from .hierarchy import DEFAULT_HIERARCHY, Hierarchy


class CertificateStore:
    """
    Flat mapping of named slots to PEM text.

    The slot set is fixed by the hierarchy; an empty string marks an empty
    slot. Entries that are not certificate slots (other secret fields) are
    kept aside and returned unchanged by ``to_dict``.
    """

    def __init__(self, hierarchy: Hierarchy = DEFAULT_HIERARCHY, data: Optional[Dict[str, str]] = None):
        self.hierarchy = hierarchy
        self._slots: Dict[str, str] = {name: "" for name in hierarchy.slot_names()}
        self._extra: Dict[str, str] = {}
        for key, value in (data or {}).items():
            if key in self._slots:
                self._slots[key] = value or ""
            else:
                self._extra[key] = value

    @classmethod
    def from_dict(cls, data: Dict[str, str], hierarchy: Hierarchy = DEFAULT_HIERARCHY) -> 'CertificateStore':
        return cls(hierarchy=hierarchy, data=data)

    def to_dict(self) -> Dict[str, str]:
        """Slots in hierarchy order followed by untouched extra entries."""
        result = dict(self._slots)
        result.update(self._extra)
        return result

    def copy(self) -> 'CertificateStore':
        return CertificateStore(hierarchy=self.hierarchy, data=self.to_dict())

    def get(self, slot: str) -> str:
        return self._slots[slot]

    def set(self, slot: str, value: str) -> None:
        if slot not in self._slots:
            raise KeyError(f"Unknown certificate slot: {slot}")
        self._slots[slot] = value

    def has(self, *slots: str) -> bool:
        """True when all given slots hold data."""
        return all(self._slots[slot] for slot in slots)

    def slot_names(self) -> List[str]:
        return list(self._slots)

    def empty_slots(self) -> List[str]:
        return [name for name, value in self._slots.items() if not value]

    def __getitem__(self, slot: str) -> str:
        return self.get(slot)

    def __setitem__(self, slot: str, value: str) -> None:
        self.set(slot, value)

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CertificateStore):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        filled = len(self._slots) - len(self.empty_slots())
        return f"<CertificateStore(slots={len(self._slots)}, filled={filled})>"
