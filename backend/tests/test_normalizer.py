"""Legacy draft migration and the backward-compatible projection."""

import logging

import pytest

from project_intake.schemas.intake import (
    ContextSource,
    Duration,
    EntryPoint,
    PBLExperience,
    dump_record,
)
from project_intake.services.normalizer import (
    detect_version,
    migrate,
    migrate_with_report,
    project_legacy,
)


@pytest.mark.unit
class TestDetectVersion:

    def test_explicit_version_wins(self, legacy_v1):
        assert detect_version({**legacy_v1, "schemaVersion": 2}) == 2

    def test_metadata_version_string(self):
        assert detect_version({"metadata": {"version": "3.0"}}) == 3

    def test_newer_version_read_as_current(self):
        assert detect_version({"schemaVersion": 7, "projectTopic": "x"}) == 3

    def test_shapes(self, legacy_v1, legacy_v2, complete_record):
        assert detect_version(legacy_v1) == 1
        assert detect_version(legacy_v2) == 2
        assert detect_version(dump_record(complete_record)) == 3
        assert detect_version(complete_record) == 3

    def test_unknown_shapes(self):
        assert detect_version({}) is None
        assert detect_version({"colour": "green"}) is None
        assert detect_version("text") is None


@pytest.mark.unit
class TestMigrateV1:

    def test_direct_mappings(self, legacy_v1):
        report = migrate_with_report(legacy_v1)
        record = report.record
        assert report.source_version == 1
        assert not report.recovered
        assert report.migrated
        assert record.project_topic == legacy_v1["title"]
        assert record.learning_goals == legacy_v1["motivation"]
        assert record.subjects == ["Science"]
        assert record.grade_level == "9-12"
        assert record.duration is Duration.LONG
        assert record.materials == legacy_v1["materials"]
        assert record.metadata.created_at.year == 2024

    def test_location_becomes_context_item(self, legacy_v1):
        item = migrate(legacy_v1).progressive_context["location"]
        assert item.value == "Portland, OR"
        assert item.source is ContextSource.WIZARD
        assert item.confidence == 1.0

    def test_fields_without_equivalent_stay_unset(self, legacy_v1):
        record = migrate(legacy_v1)
        assert record.driving_question == ""
        assert record.pbl_experience is PBLExperience.SOME
        assert "pbl_experience" not in record.metadata.touched_fields
        assert "project_topic" in record.metadata.touched_fields

    def test_non_text_value_dropped_with_warning(self, legacy_v1):
        report = migrate_with_report({**legacy_v1, "subject": 42})
        assert report.record.subjects == []
        assert any("subject" in warning for warning in report.warnings)


@pytest.mark.unit
class TestMigrateV2:

    def test_direct_mappings(self, legacy_v2):
        record = migrate(legacy_v2)
        assert record.entry_point is EntryPoint.MATERIALS_FIRST
        assert record.learning_goals == legacy_v2["vision"]
        assert record.driving_question == legacy_v2["drivingQuestion"]
        assert record.subjects == ["English"]
        assert record.duration is Duration.SHORT
        assert record.pbl_experience is PBLExperience.NEW
        assert record.special_considerations == legacy_v2["specialConsiderations"]

    def test_topic_has_no_legacy_equivalent(self, legacy_v2):
        record = migrate(legacy_v2)
        assert record.project_topic == ""
        assert "project_topic" not in record.metadata.touched_fields

    def test_unknown_enum_dropped_not_fatal(self, legacy_v2, caplog):
        with caplog.at_level(logging.WARNING, logger="project_intake.services.normalizer"):
            report = migrate_with_report({**legacy_v2, "duration": "semester"})
        assert not report.recovered
        assert report.record.duration is Duration.MEDIUM
        assert "duration" not in report.record.metadata.touched_fields
        assert any("semester" in message for message in caplog.messages)

    def test_blank_entry_point_stays_unset(self, legacy_v2):
        assert migrate({**legacy_v2, "entryPoint": ""}).entry_point is None


@pytest.mark.unit
class TestMalformedInput:

    @pytest.mark.parametrize("garbage", [
        None, "draft", 42, ["a"], {}, {"colour": "green"},
        {"schemaVersion": "1e400"},
        {"schemaVersion": float("inf")},
        {"schemaVersion": float("nan")},
    ])
    def test_garbage_recovers_to_default(self, garbage, caplog):
        with caplog.at_level(logging.WARNING, logger="project_intake.services.normalizer"):
            report = migrate_with_report(garbage)
        assert report.recovered
        assert report.warnings
        assert report.record.project_topic == ""
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    @pytest.mark.parametrize("draft", [
        {"entryPoint": ["goal"]},
        {"vision": "Students map the watershed", "entryPoint": {"a": 1}},
        {"title": "Rain garden", "scope": ["long"]},
        {"vision": "Students map the watershed", "pblExperience": {"level": 2}},
    ])
    def test_unhashable_values_are_dropped(self, draft):
        report = migrate_with_report(draft)
        assert not report.recovered
        assert report.warnings
        assert report.record.entry_point in (None, EntryPoint.LEARNING_GOAL)
        assert "entry_point" not in report.record.metadata.touched_fields

    def test_unreadable_version_falls_back_to_shape(self, legacy_v2):
        assert detect_version({**legacy_v2, "schemaVersion": float("inf")}) == 2

    def test_bad_field_salvaged_from_current_draft(self, complete_record):
        data = dump_record(complete_record)
        data["subjects"] = ["A", "B", "C", "D", "E", "F"]
        report = migrate_with_report(data)
        assert not report.recovered
        assert report.record.subjects == []
        assert report.record.project_topic == complete_record.project_topic


@pytest.mark.unit
class TestIdempotence:

    def test_record_passes_through(self, complete_record):
        assert migrate(complete_record) is complete_record

    @pytest.mark.parametrize("fixture", ["legacy_v1", "legacy_v2"])
    def test_migrating_twice_changes_nothing(self, fixture, request):
        once = migrate(request.getfixturevalue(fixture))
        assert migrate(once) == once
        assert migrate(dump_record(once)) == once


@pytest.mark.unit
class TestLegacyProjection:

    def test_v1_round_trip(self, legacy_v1):
        projected = project_legacy(migrate(legacy_v1), version=1)
        for key, value in legacy_v1.items():
            assert projected[key] == value, key

    def test_v2_round_trip(self, legacy_v2):
        projected = project_legacy(migrate(legacy_v2), version=2)
        for key, value in legacy_v2.items():
            assert projected[key] == value, key

    def test_projection_has_no_version_tag(self, complete_record):
        assert "schemaVersion" not in project_legacy(complete_record)

    def test_unknown_projection_version(self, complete_record):
        with pytest.raises(ValueError):
            project_legacy(complete_record, version=3)
