"""
services/fact_store.py
Per-child memory: the gift wish list and a learned first name.

Lives for the process only (nothing is written to disk). One lock per child so
overlapping turns for the same child never lose an append or a name, while
different children never wait on each other.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class GiftRecord:
    item: str
    details: Optional[Dict[str, Any]] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "details": dict(self.details) if self.details is not None else None,
            "at": self.recorded_at.isoformat(),
        }


@dataclass
class ChildProfile:
    name: Optional[str] = None


@dataclass(frozen=True)
class KnownFacts:
    """What the prompt builder is allowed to know about a child."""
    name: Optional[str] = None
    gift_items: Tuple[str, ...] = ()


@dataclass
class _ChildFacts:
    gifts: List[GiftRecord] = field(default_factory=list)
    profile: ChildProfile = field(default_factory=ChildProfile)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class FactStore:
    def __init__(self):
        self._children: Dict[str, _ChildFacts] = {}
        self._registry_lock = threading.Lock()

    def _entry(self, child_id: str) -> _ChildFacts:
        # dict.get is enough on the hot path; creation is serialized
        entry = self._children.get(child_id)
        if entry is None:
            with self._registry_lock:
                entry = self._children.setdefault(child_id, _ChildFacts())
        return entry

    # ---- reads ----
    def get_profile(self, child_id: str) -> ChildProfile:
        """Snapshot of the child's profile; creates an empty one on first use."""
        entry = self._entry(child_id)
        with entry.lock:
            return ChildProfile(name=entry.profile.name)

    def gifts(self, child_id: str) -> List[GiftRecord]:
        entry = self._entry(child_id)
        with entry.lock:
            return list(entry.gifts)

    def known_facts(self, child_id: str) -> KnownFacts:
        entry = self._entry(child_id)
        with entry.lock:
            return KnownFacts(
                name=entry.profile.name,
                gift_items=tuple(g.item for g in entry.gifts),
            )

    def child_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._children)

    # ---- writes ----
    def append_gift(self, child_id: str, item: str,
                    details: Optional[Dict[str, Any]] = None) -> None:
        item = (item or "").strip()
        if not item:
            return
        record = GiftRecord(item=item, details=dict(details) if details else None)
        entry = self._entry(child_id)
        with entry.lock:
            entry.gifts.append(record)

    def set_name(self, child_id: str, name: str) -> None:
        name = (name or "").strip()
        if not name:
            return
        entry = self._entry(child_id)
        with entry.lock:
            entry.profile.name = name

    def clear(self) -> None:
        with self._registry_lock:
            self._children.clear()
