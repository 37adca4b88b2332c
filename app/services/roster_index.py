"""
app/services/roster_index.py

Identifier -> display name lookup built from the roster sheet.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from app.domain.classroom import RawRow, RosterEntry
from app.mappers.field_extractor import FieldExtractor

logger = logging.getLogger(__name__)


class RosterIndex:
    """
    Immutable roster lookup. The roster is the source of truth for names.
    """

    def __init__(self, entries: Iterable[RosterEntry] = ()) -> None:
        names: dict[str, str] = {}
        positions: dict[str, int] = {}
        for entry in entries:
            if entry.id not in positions:
                positions[entry.id] = len(positions)
            names[entry.id] = entry.display_name
        self._names = names
        self._positions = positions

    @classmethod
    def build(
        cls,
        rows: Iterable[RawRow],
        *,
        extractor: FieldExtractor | None = None,
    ) -> "RosterIndex":
        """
        Build the index from roster rows, skipping rows without id or name.

        Blank and partial rows are normal in hand-edited roster sheets and
        are not treated as errors. A repeated id keeps its first position
        and takes the latest name.
        """

        resolved_extractor = extractor or FieldExtractor()
        entries: list[RosterEntry] = []
        skipped = 0
        for row in rows:
            entity_id = resolved_extractor.extract_id(row)
            display_name = resolved_extractor.extract_display_name(row)
            if not entity_id or not display_name:
                skipped += 1
                continue
            entries.append(RosterEntry(id=entity_id, display_name=display_name))

        index = cls(entries)
        logger.debug("Roster index built: %d entries, %d rows skipped", index.size(), skipped)
        return index

    def size(self) -> int:
        return len(self._names)

    def lookup(self, entity_id: str | None) -> str | None:
        if entity_id is None:
            return None
        return self._names.get(entity_id)

    def position(self, entity_id: str) -> int | None:
        return self._positions.get(entity_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._positions.keys())

    def entries(self) -> tuple[RosterEntry, ...]:
        return tuple(
            RosterEntry(id=entity_id, display_name=self._names[entity_id])
            for entity_id in self._positions
        )

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._names

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[RosterEntry]:
        return iter(self.entries())
