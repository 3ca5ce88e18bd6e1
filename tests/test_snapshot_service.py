"""
快照组装服务测试
"""

import json

import pytest

from exceptions import FileValidationError, SnapshotValidationError
from models.narrative import EventType
from services.snapshot_service import build_snapshot, load_snapshot

CHARACTERS = [{"id": "hero", "name": "Mara", "role": "protagonist", "appearances": ["ch-1"]}]
CHAPTERS = [
    {"id": "ch-2", "number": 2, "title": "The Road"},
    {"id": "ch-1", "number": 1, "title": "Home", "plotEvents": [{"type": "inciting_incident"}]},
]


class TestBuildSnapshot:
    """测试快照组装"""

    def test_basic(self):
        snapshot = build_snapshot(CHARACTERS, CHAPTERS)
        assert [ch.id for ch in snapshot.chapters] == ["ch-1", "ch-2"]
        assert snapshot.characters[0].name == "Mara"

    def test_thread_events_folded_into_chapters(self):
        threads = [{
            "id": "main",
            "events": [
                {"id": "e2", "event_type": "climax", "chapter_reference": "ch-2", "order_index": 2, "tension_level": 9},
                {"id": "e1", "event_type": "conflict", "chapter_reference": "ch-2", "order_index": 1},
            ],
        }]
        snapshot = build_snapshot(CHARACTERS, CHAPTERS, plot_threads=threads)
        chapter = snapshot.chapters_by_id["ch-2"]
        assert [e.id for e in chapter.plot_events] == ["e1", "e2"]
        assert chapter.plot_events[1].tension_level == 9
        assert chapter.plot_events[0].type is EventType.CONFLICT

    def test_thread_reference_by_chapter_number(self):
        threads = [{"id": "t", "events": [{"event_type": "resolution", "chapter_reference": 2}]}]
        snapshot = build_snapshot(CHARACTERS, CHAPTERS, plot_threads=threads)
        assert snapshot.chapters_by_id["ch-2"].has_event(EventType.RESOLUTION)

    def test_unify_thread_beats(self):
        threads = [{"id": "t", "events": [{"event_type": "conflict", "chapter_reference": "ch-1"}]}]
        snapshot = build_snapshot(CHARACTERS, CHAPTERS, plot_threads=threads, unify_thread_beats=True)
        assert EventType.RISING_ACTION in snapshot.event_types()
        assert EventType.CONFLICT not in snapshot.event_types()

    def test_input_not_mutated(self):
        chapters = json.loads(json.dumps(CHAPTERS))
        threads = [{"id": "t", "events": [{"event_type": "climax", "chapter_reference": "ch-2"}]}]
        build_snapshot(CHARACTERS, chapters, plot_threads=threads)
        assert chapters == CHAPTERS

    def test_unknown_chapter_reference(self):
        threads = [{"id": "t", "events": [{"id": "e", "event_type": "climax", "chapter_reference": "ch-9"}]}]
        with pytest.raises(SnapshotValidationError, match="unknown chapter"):
            build_snapshot(CHARACTERS, CHAPTERS, plot_threads=threads)

    def test_missing_chapter_reference(self):
        threads = [{"id": "t", "events": [{"id": "e", "event_type": "climax"}]}]
        with pytest.raises(SnapshotValidationError, match="not attached to a chapter"):
            build_snapshot(CHARACTERS, CHAPTERS, plot_threads=threads)

    def test_malformed_thread(self):
        with pytest.raises(SnapshotValidationError):
            build_snapshot(CHARACTERS, CHAPTERS, plot_threads=["oops"])

    def test_malformed_character(self):
        with pytest.raises(SnapshotValidationError):
            build_snapshot([{"id": "x", "role": "wizard"}], CHAPTERS)

    def test_non_numeric_event_order(self):
        chapters = [{"id": "c1", "number": 1, "plotEvents": [{"type": "climax", "order": "first"}]}]
        with pytest.raises(SnapshotValidationError, match="order must be an integer"):
            build_snapshot([], chapters)

    def test_numeric_string_order_accepted(self):
        chapters = [{"id": "c1", "number": 1, "plotEvents": [
            {"type": "climax", "order": "2"},
            {"type": "inciting_incident", "order": "1"},
        ]}]
        snapshot = build_snapshot([], chapters)
        assert [e.type for e in snapshot.chapters[0].plot_events] == [EventType.INCITING_INCIDENT, EventType.CLIMAX]

    def test_chapter_entry_must_be_object(self):
        with pytest.raises(SnapshotValidationError, match=r"chapters\[1\] must be an object") as excinfo:
            build_snapshot([], [{"id": "c1", "number": 1}, "oops"])
        assert excinfo.value.entity_id == "chapters[1]"

    def test_chapters_must_be_list(self):
        with pytest.raises(SnapshotValidationError, match="must be a list"):
            build_snapshot([], {"id": "c1", "number": 1})

    def test_character_entry_must_be_object(self):
        with pytest.raises(SnapshotValidationError, match="must be an object"):
            build_snapshot([42], [])

    def test_thread_events_must_be_list(self):
        with pytest.raises(SnapshotValidationError, match="events must be a list"):
            build_snapshot([], CHAPTERS, plot_threads=[{"id": "t", "events": 3}])

    def test_null_plot_events_accept_thread_events(self):
        chapters = [{"id": "c1", "number": 1, "plotEvents": None}]
        threads = [{"id": "t", "events": [{"event_type": "climax", "chapter_reference": "c1"}]}]
        snapshot = build_snapshot([], chapters, plot_threads=threads)
        assert EventType.CLIMAX in snapshot.event_types()


class TestLoadSnapshot:
    """测试从文件加载"""

    def test_load(self, tmp_path):
        file_path = tmp_path / "story.json"
        file_path.write_text(json.dumps({
            "characters": CHARACTERS,
            "chapters": CHAPTERS,
            "plotThreads": [{"id": "t", "events": [{"event_type": "climax", "chapter_reference": "ch-2"}]}],
        }), encoding="utf-8")
        snapshot = load_snapshot(file_path)
        assert snapshot.total_chapters == 2
        assert EventType.CLIMAX in snapshot.event_types()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileValidationError):
            load_snapshot(tmp_path / "missing.json")

    def test_wrong_extension(self, tmp_path):
        file_path = tmp_path / "story.txt"
        file_path.write_text("{}", encoding="utf-8")
        with pytest.raises(FileValidationError):
            load_snapshot(file_path)

    def test_corrupt_json(self, tmp_path):
        file_path = tmp_path / "story.json"
        file_path.write_text("{", encoding="utf-8")
        with pytest.raises(FileValidationError, match="不是合法的JSON"):
            load_snapshot(file_path)

    def test_top_level_must_be_object(self, tmp_path):
        file_path = tmp_path / "story.json"
        file_path.write_text("[]", encoding="utf-8")
        with pytest.raises(SnapshotValidationError, match="JSON object"):
            load_snapshot(file_path)

    def test_empty_object(self, tmp_path):
        file_path = tmp_path / "story.json"
        file_path.write_text("{}", encoding="utf-8")
        assert load_snapshot(file_path).is_empty

    def test_non_object_chapter_in_file(self, tmp_path):
        file_path = tmp_path / "story.json"
        file_path.write_text(json.dumps({"chapters": ["oops"]}), encoding="utf-8")
        with pytest.raises(SnapshotValidationError):
            load_snapshot(file_path)
