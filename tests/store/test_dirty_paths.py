"""Tests for cellcache.store.dirty_paths."""

from cellcache.store.dirty_paths import (
    DirtyPaths,
    DirtyPathTranslator,
    Notification,
    RecordDirtyPath,
)
from cellcache.store.keys import (
    CellValuesChange,
    CellValuesInField,
    CellValuesInFieldChange,
    RecordsChange,
    RecordStoreKey,
)


def _paths(**records: RecordDirtyPath) -> DirtyPaths:
    return DirtyPaths(records_by_id=dict(records))


class TestFromDict:
    def test_parses_nested_tree(self):
        paths = DirtyPaths.from_dict(
            {
                "records_by_id": {
                    "rec1": {"cell_values_by_field_id": {"fld1": True}},
                    "rec2": {"_is_dirty": True},
                    "rec3": {"comment_count": True},
                }
            }
        )
        assert paths.records_by_id["rec1"].cell_values_by_field_id == {"fld1": True}
        assert paths.records_by_id["rec2"].is_dirty
        assert paths.records_by_id["rec3"].comment_count
        assert not paths.records_by_id["rec3"].is_dirty

    def test_empty_tree(self):
        assert DirtyPaths.from_dict({}).records_by_id == {}


class TestTranslate:
    def test_remove_one_and_change_another(self):
        paths = _paths(
            rec2=RecordDirtyPath(is_dirty=True),
            rec1=RecordDirtyPath(cell_values_by_field_id={"fld1": True}),
        )
        translation = DirtyPathTranslator().translate(paths, {"rec1"})

        removed = RecordsChange(removed_record_ids=("rec2",))
        assert translation.notifications == [
            Notification(RecordStoreKey.RECORDS, removed),
            Notification(RecordStoreKey.RECORD_IDS, removed),
            Notification(
                RecordStoreKey.CELL_VALUES,
                CellValuesChange(record_ids=("rec1",), field_ids=("fld1",)),
            ),
            Notification(
                CellValuesInField("fld1"),
                CellValuesInFieldChange(record_ids=("rec1",), field_id="fld1"),
            ),
        ]
        assert translation.removed_record_ids == ["rec2"]
        assert list(translation.in_place) == ["rec1"]

    def test_added_record_with_values(self):
        paths = _paths(
            rec3=RecordDirtyPath(is_dirty=True, cell_values_by_field_id={"fld1": True}),
        )
        translation = DirtyPathTranslator().translate(paths, {"rec1", "rec3"})

        added = RecordsChange(added_record_ids=("rec3",))
        assert [n.key for n in translation.notifications] == [
            RecordStoreKey.RECORDS,
            RecordStoreKey.RECORD_IDS,
            RecordStoreKey.CELL_VALUES,
            CellValuesInField("fld1"),
        ]
        assert translation.notifications[0].payload == added
        assert translation.added_record_ids == ["rec3"]
        assert translation.in_place == {}

    def test_one_notification_per_touched_field(self):
        paths = _paths(
            rec1=RecordDirtyPath(cell_values_by_field_id={"fld1": True, "fld2": True}),
            rec2=RecordDirtyPath(cell_values_by_field_id={"fld2": True}),
        )
        translation = DirtyPathTranslator().translate(paths, {"rec1", "rec2"})

        assert translation.notifications == [
            Notification(
                RecordStoreKey.CELL_VALUES,
                CellValuesChange(record_ids=("rec1", "rec2"), field_ids=("fld1", "fld2")),
            ),
            Notification(
                CellValuesInField("fld1"),
                CellValuesInFieldChange(record_ids=("rec1", "rec2"), field_id="fld1"),
            ),
            Notification(
                CellValuesInField("fld2"),
                CellValuesInFieldChange(record_ids=("rec1", "rec2"), field_id="fld2"),
            ),
        ]

    def test_comment_only_change_fires_nothing_store_wide(self):
        paths = _paths(rec1=RecordDirtyPath(comment_count=True))
        translation = DirtyPathTranslator().translate(paths, {"rec1"})
        assert translation.notifications == []
        assert list(translation.in_place) == ["rec1"]

    def test_metadata_not_loaded_translates_nothing(self):
        paths = _paths(rec1=RecordDirtyPath(is_dirty=True))
        translation = DirtyPathTranslator().translate(paths, None)
        assert translation.notifications == []
        assert translation.added_record_ids == []

    def test_empty_diff(self):
        translation = DirtyPathTranslator().translate(DirtyPaths(), {"rec1"})
        assert translation.notifications == []
