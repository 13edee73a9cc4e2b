"""Selection Set: course ids marked for bulk operations.

Selection is independent of placement and never persisted.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class Selection:
    """Ordered set of selected course ids (first selection first)."""

    def __init__(self, course_ids: Iterable[str] = ()) -> None:
        self._ids: dict[str, None] = dict.fromkeys(course_ids)

    def __contains__(self, course_id: object) -> bool:
        return course_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def ids(self) -> list[str]:
        return list(self._ids)

    def toggle(self, course_id: str) -> bool:
        """Flip membership and return True if the course is now selected."""

        if course_id in self._ids:
            del self._ids[course_id]
            return False
        self._ids[course_id] = None
        return True

    def add(self, course_id: str) -> None:
        self._ids.setdefault(course_id, None)

    def remove(self, course_id: str) -> None:
        self._ids.pop(course_id, None)

    def clear(self) -> None:
        self._ids.clear()

    def select_all(self, course_ids: Iterable[str]) -> None:
        """Replace the selection with exactly the given ids."""

        self._ids = dict.fromkeys(course_ids)

    def prune(self, known_ids: Iterable[str]) -> None:
        """Drop ids that no longer exist in the pool."""

        known = set(known_ids)
        self._ids = {cid: None for cid in self._ids if cid in known}
