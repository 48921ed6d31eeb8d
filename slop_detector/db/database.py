"""
SQLite database adapter for channel classifications.
"""
import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Set

from ..discovery.models import ClassificationResult


@dataclass
class StoredChannel:
    """A classified channel as stored in the channels table."""
    channel_id: str
    title: str
    description: str
    thumbnail_url: Optional[str]
    category_id: Optional[str]
    classification: str
    confidence: int
    slop_score: int
    slop_type: Optional[str]
    method: str
    reasons: List[str]
    subscriber_count: int
    video_count: int
    view_count: int
    upload_velocity: float
    recent_velocity: float
    age_in_days: int
    ai_reasoning: Optional[str]
    recent_video_titles: List[str]
    human_review_status: str
    updated_at: Optional[datetime]


class Database:
    """Database adapter for classification results."""

    def __init__(self, connection_string: str):
        """
        Initialize database connection.

        Args:
            connection_string: Path to the SQLite .db file (or ":memory:").
        """
        self.connection_string = connection_string
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Establish database connection."""
        self._conn = sqlite3.connect(self.connection_string)
        self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def ensure_channel_tables(self) -> None:
        """Create the channels table if it doesn't exist."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS channels (
                channel_id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                thumbnail_url TEXT,
                category_id TEXT,
                classification TEXT NOT NULL,
                confidence INTEGER NOT NULL,
                slop_score INTEGER NOT NULL,
                slop_type TEXT,
                method TEXT NOT NULL,
                reasons TEXT,
                subscriber_count INTEGER,
                video_count INTEGER,
                view_count INTEGER,
                upload_velocity REAL,
                recent_velocity REAL,
                age_in_days INTEGER,
                has_spam_keywords INTEGER,
                templated_titles INTEGER,
                content_type TEXT,
                ai_reasoning TEXT,
                recent_videos TEXT,
                human_review_status TEXT DEFAULT 'pending',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_channels_classification
            ON channels(classification, slop_score DESC)
        """)
        self._conn.commit()

    def get_existing_channel_ids(self, channel_ids: Iterable[str]) -> Set[str]:
        """Return the subset of channel_ids that already have a stored result."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        ids = list(channel_ids)
        if not ids:
            return set()

        placeholders = ",".join("?" * len(ids))
        cursor = self._conn.execute(
            f"SELECT channel_id FROM channels WHERE channel_id IN ({placeholders})",
            ids,
        )
        return {row["channel_id"] for row in cursor.fetchall()}

    def upsert_classification(self, result: ClassificationResult) -> None:
        """Insert or replace the stored result for result.channel_id."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        ai = result.ai_analysis
        m = result.metrics
        self._conn.execute("""
            INSERT INTO channels
                (channel_id, title, description, thumbnail_url, category_id,
                 classification, confidence, slop_score, slop_type, method,
                 reasons, subscriber_count, video_count, view_count,
                 upload_velocity, recent_velocity, age_in_days,
                 has_spam_keywords, templated_titles, content_type,
                 ai_reasoning, recent_videos, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(channel_id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                thumbnail_url = excluded.thumbnail_url,
                category_id = excluded.category_id,
                classification = excluded.classification,
                confidence = excluded.confidence,
                slop_score = excluded.slop_score,
                slop_type = excluded.slop_type,
                method = excluded.method,
                reasons = excluded.reasons,
                subscriber_count = excluded.subscriber_count,
                video_count = excluded.video_count,
                view_count = excluded.view_count,
                upload_velocity = excluded.upload_velocity,
                recent_velocity = excluded.recent_velocity,
                age_in_days = excluded.age_in_days,
                has_spam_keywords = excluded.has_spam_keywords,
                templated_titles = excluded.templated_titles,
                content_type = excluded.content_type,
                ai_reasoning = excluded.ai_reasoning,
                recent_videos = excluded.recent_videos,
                updated_at = excluded.updated_at
        """, (
            result.channel_id,
            result.title,
            result.description,
            result.thumbnail_url,
            result.category_id,
            result.classification.value,
            result.confidence,
            result.slop_score,
            result.slop_type.value if result.slop_type else None,
            result.method.value,
            json.dumps(list(result.reasons)),
            m.subscriber_count,
            m.video_count,
            m.view_count,
            m.lifetime_velocity,
            m.recent_velocity,
            m.age_in_days,
            int(ai.nlp_signals.has_spam_keywords) if ai else None,
            int(ai.nlp_signals.templated_titles) if ai else None,
            ai.nlp_signals.content_type if ai else None,
            ai.reasoning if ai else None,
            json.dumps(list(result.recent_video_titles)),
            datetime.now().isoformat(),
        ))
        self._conn.commit()

    def _row_to_channel(self, row: sqlite3.Row) -> StoredChannel:
        updated_at = row["updated_at"]
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)

        return StoredChannel(
            channel_id=row["channel_id"],
            title=row["title"],
            description=row["description"] or "",
            thumbnail_url=row["thumbnail_url"],
            category_id=row["category_id"],
            classification=row["classification"],
            confidence=row["confidence"],
            slop_score=row["slop_score"],
            slop_type=row["slop_type"],
            method=row["method"],
            reasons=json.loads(row["reasons"]) if row["reasons"] else [],
            subscriber_count=row["subscriber_count"] or 0,
            video_count=row["video_count"] or 0,
            view_count=row["view_count"] or 0,
            upload_velocity=row["upload_velocity"] or 0.0,
            recent_velocity=row["recent_velocity"] or 0.0,
            age_in_days=row["age_in_days"] or 0,
            ai_reasoning=row["ai_reasoning"],
            recent_video_titles=json.loads(row["recent_videos"]) if row["recent_videos"] else [],
            human_review_status=row["human_review_status"] or "pending",
            updated_at=updated_at,
        )

    def get_classification(self, channel_id: str) -> Optional[StoredChannel]:
        """Get the stored result for a channel, if any."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        cursor = self._conn.execute(
            "SELECT * FROM channels WHERE channel_id = ?", (channel_id,)
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_channel(row)

    def get_slop_channels(self, limit: int = 50) -> List[StoredChannel]:
        """Get SLOP channels, highest slop score first."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        cursor = self._conn.execute("""
            SELECT * FROM channels
            WHERE classification = 'SLOP'
            ORDER BY slop_score DESC, updated_at DESC
            LIMIT ?
        """, (limit,))
        return [self._row_to_channel(row) for row in cursor.fetchall()]

    def get_classification_summary(self) -> Dict[str, Any]:
        """Get counts of stored channels by classification and method."""
        if not self._conn:
            raise RuntimeError("Database not connected")

        summary: Dict[str, Any] = {
            "SLOP": 0,
            "SUSPICIOUS": 0,
            "OKAY": 0,
            "total": 0,
            "by_method": {"rule": 0, "ai": 0},
        }

        cursor = self._conn.execute("""
            SELECT classification, method, COUNT(*) as cnt
            FROM channels
            GROUP BY classification, method
        """)
        for row in cursor.fetchall():
            count = row["cnt"]
            if row["classification"] in summary:
                summary[row["classification"]] += count
            if row["method"] in summary["by_method"]:
                summary["by_method"][row["method"]] += count
            summary["total"] += count

        return summary
