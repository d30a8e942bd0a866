"""
Dirty paths to change notifications.

The backend describes every push as a tree of what changed, keyed by record
id::

    {
        "records_by_id": {
            "rec1": {"cell_values_by_field_id": {"fld1": True}},
            "rec2": {"_is_dirty": True},
        }
    }

An entry with ``_is_dirty`` is structural: the record was added or removed,
and which one is read off the post-change record set. Every other entry is an
in-place change of that record's cells or comment count.

:class:`DirtyPathTranslator` turns such a tree into the ordered notifications
the record store fires. It never touches the store: evicting row wrappers
and forwarding in-place diffs are left to the caller, driven by the
``removed_record_ids`` and ``in_place`` fields of the translation.
"""

from __future__ import annotations

from collections.abc import Container, Mapping
from dataclasses import dataclass, field
from typing import Any

from cellcache.store.keys import (
    CellValuesChange,
    CellValuesInField,
    CellValuesInFieldChange,
    RecordsChange,
    RecordStoreKey,
    WatchKey,
)

__all__ = [
    "RecordDirtyPath",
    "DirtyPaths",
    "Notification",
    "DirtyPathTranslation",
    "DirtyPathTranslator",
]


@dataclass
class RecordDirtyPath:
    """What changed on one record."""

    is_dirty: bool = False
    cell_values_by_field_id: dict[str, Any] = field(default_factory=dict)
    comment_count: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> RecordDirtyPath:
        return cls(
            is_dirty=bool(raw.get("_is_dirty", False)),
            cell_values_by_field_id=dict(raw.get("cell_values_by_field_id") or {}),
            comment_count=bool(raw.get("comment_count", False)),
        )


@dataclass
class DirtyPaths:
    """Dirty-path tree for one table."""

    records_by_id: dict[str, RecordDirtyPath] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> DirtyPaths:
        records = raw.get("records_by_id") or {}
        return cls(
            records_by_id={
                record_id: RecordDirtyPath.from_dict(paths)
                for record_id, paths in records.items()
            }
        )


@dataclass(frozen=True)
class Notification:
    key: WatchKey
    payload: Any = None


@dataclass
class DirtyPathTranslation:
    added_record_ids: list[str] = field(default_factory=list)
    removed_record_ids: list[str] = field(default_factory=list)
    in_place: dict[str, RecordDirtyPath] = field(default_factory=dict)
    notifications: list[Notification] = field(default_factory=list)


class DirtyPathTranslator:
    """Derives store notifications from a dirty-path tree."""

    def translate(
        self,
        dirty_paths: DirtyPaths,
        known_record_ids: Container[str] | None,
    ) -> DirtyPathTranslation:
        """Translate ``dirty_paths`` against the post-change record ids.

        Args:
            dirty_paths: The pushed diff.
            known_record_ids: Record ids after the change was applied, or
                ``None`` when record metadata is not loaded, in which case
                nothing is translated.
        """
        translation = DirtyPathTranslation()
        if known_record_ids is None or not dirty_paths.records_by_id:
            return translation

        touched_field_ids: dict[str, None] = {}
        affected_record_ids: list[str] = []

        for record_id, record_paths in dirty_paths.records_by_id.items():
            exists = record_id in known_record_ids
            if record_paths.is_dirty:
                if exists:
                    translation.added_record_ids.append(record_id)
                else:
                    translation.removed_record_ids.append(record_id)
            else:
                translation.in_place[record_id] = record_paths

            if record_paths.cell_values_by_field_id and exists:
                affected_record_ids.append(record_id)
                for field_id in record_paths.cell_values_by_field_id:
                    touched_field_ids.setdefault(field_id, None)

        if translation.added_record_ids or translation.removed_record_ids:
            change = RecordsChange(
                added_record_ids=tuple(translation.added_record_ids),
                removed_record_ids=tuple(translation.removed_record_ids),
            )
            translation.notifications.append(Notification(RecordStoreKey.RECORDS, change))
            translation.notifications.append(Notification(RecordStoreKey.RECORD_IDS, change))

        field_ids = tuple(touched_field_ids)
        record_ids = tuple(affected_record_ids)
        if field_ids and record_ids:
            translation.notifications.append(
                Notification(
                    RecordStoreKey.CELL_VALUES,
                    CellValuesChange(record_ids=record_ids, field_ids=field_ids),
                )
            )
            for field_id in field_ids:
                translation.notifications.append(
                    Notification(
                        CellValuesInField(field_id),
                        CellValuesInFieldChange(record_ids=record_ids, field_id=field_id),
                    )
                )

        return translation
