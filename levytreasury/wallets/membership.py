"""Mini README: Group membership sources for bulk levy passes.

Structure:
    * Member - entity id plus the name shown in history records.
    * MembershipSource - abstract ``list_entities(group_id)`` contract.
    * StaticMembership - in-memory groups, editable at runtime.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional


@dataclass(frozen=True, slots=True)
class Member:
    entity_id: int
    display_name: str


class MembershipSource(ABC):
    """Enumerates the entities of a group."""

    @abstractmethod
    def list_entities(self, group_id: int) -> List[Member]:
        """Return the group's members; unknown groups yield an empty list."""


class StaticMembership(MembershipSource):
    def __init__(self, groups: Optional[Mapping[int, Iterable[Member]]] = None) -> None:
        self._groups: Dict[int, Dict[int, Member]] = {}
        self._lock = threading.Lock()
        for group_id, members in (groups or {}).items():
            for member in members:
                self.add_member(group_id, member.entity_id, member.display_name)

    def add_member(self, group_id: int, entity_id: int, display_name: str = "") -> Member:
        member = Member(entity_id=entity_id, display_name=display_name or str(entity_id))
        with self._lock:
            self._groups.setdefault(group_id, {})[entity_id] = member
        return member

    def remove_member(self, group_id: int, entity_id: int) -> None:
        with self._lock:
            self._groups.get(group_id, {}).pop(entity_id, None)

    def display_name(self, group_id: int, entity_id: int) -> str:
        with self._lock:
            member = self._groups.get(group_id, {}).get(entity_id)
        return member.display_name if member else str(entity_id)

    def list_entities(self, group_id: int) -> List[Member]:
        with self._lock:
            return list(self._groups.get(group_id, {}).values())
