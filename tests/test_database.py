"""
Tests for the database module.
"""
from dataclasses import replace

import pytest

from factories import make_result
from slop_detector.db.database import Database
from slop_detector.discovery.models import (
    AIAnalysis,
    BehaviorSignals,
    Classification,
    Method,
    NLPSignals,
    SlopType,
)


class TestDatabaseConnection:
    def test_not_connected_raises(self):
        db = Database(":memory:")
        with pytest.raises(RuntimeError, match="not connected"):
            db.ensure_channel_tables()

    def test_context_manager(self):
        with Database(":memory:") as db:
            db.ensure_channel_tables()
            assert db.get_existing_channel_ids(["UC1"]) == set()
        assert db._conn is None

    def test_ensure_tables_idempotent(self, temp_db):
        temp_db.ensure_channel_tables()
        temp_db.ensure_channel_tables()


class TestUpsertClassification:
    def test_round_trip(self, temp_db):
        result = make_result(
            "UC1",
            slop_type=SlopType.AI_MUSIC,
            reasons=("a", "b"),
            recent_video_titles=("t1", "t2"),
        )
        temp_db.upsert_classification(result)

        stored = temp_db.get_classification("UC1")
        assert stored.classification == "SLOP"
        assert stored.slop_score == 90
        assert stored.slop_type == "ai_music"
        assert stored.method == "rule"
        assert stored.reasons == ["a", "b"]
        assert stored.recent_video_titles == ["t1", "t2"]
        assert stored.subscriber_count == result.metrics.subscriber_count
        assert stored.human_review_status == "pending"
        assert stored.updated_at is not None
        assert stored.ai_reasoning is None

    def test_second_write_replaces_first(self, temp_db):
        temp_db.upsert_classification(make_result("UC1"))
        updated = make_result(
            "UC1",
            classification=Classification.OKAY,
            slop_score=10,
            confidence=90,
            method=Method.AI,
            ai_analysis=AIAnalysis(
                reasoning="Legit music label.",
                nlp_signals=NLPSignals(content_type="music"),
                behavior_signals=BehaviorSignals(),
            ),
        )
        temp_db.upsert_classification(updated)

        count = temp_db._conn.execute(
            "SELECT COUNT(*) FROM channels WHERE channel_id = ?", ("UC1",)
        ).fetchone()[0]
        assert count == 1

        stored = temp_db.get_classification("UC1")
        assert stored.classification == "OKAY"
        assert stored.slop_score == 10
        assert stored.method == "ai"
        assert stored.ai_reasoning == "Legit music label."

    def test_missing_channel(self, temp_db):
        assert temp_db.get_classification("UCnope") is None


class TestQueries:
    def test_existing_ids(self, temp_db):
        for cid in ("UC1", "UC2"):
            temp_db.upsert_classification(make_result(cid))
        assert temp_db.get_existing_channel_ids(["UC1", "UC3"]) == {"UC1"}
        assert temp_db.get_existing_channel_ids([]) == set()

    def test_slop_channels_ordered_by_score(self, temp_db):
        base = make_result("UC0")
        temp_db.upsert_classification(replace(base, channel_id="UClow", slop_score=82))
        temp_db.upsert_classification(replace(base, channel_id="UChigh", slop_score=99))
        temp_db.upsert_classification(replace(
            base, channel_id="UCokay", classification=Classification.OKAY, slop_score=5,
        ))

        slop = temp_db.get_slop_channels(limit=10)
        assert [c.channel_id for c in slop] == ["UChigh", "UClow"]
        assert len(temp_db.get_slop_channels(limit=1)) == 1

    def test_summary(self, temp_db):
        temp_db.upsert_classification(make_result("UC1"))
        temp_db.upsert_classification(make_result(
            "UC2", classification=Classification.SUSPICIOUS, method=Method.AI,
        ))
        temp_db.upsert_classification(make_result(
            "UC3", classification=Classification.OKAY, method=Method.RULE,
        ))

        summary = temp_db.get_classification_summary()
        assert summary["total"] == 3
        assert summary["SLOP"] == 1
        assert summary["SUSPICIOUS"] == 1
        assert summary["OKAY"] == 1
        assert summary["by_method"] == {"rule": 2, "ai": 1}
