"""
SQL-backed persistence for files, metric rows, insights and reports.

Every method opens and closes its own session, so one store instance can be
shared by the request thread and the job worker. Returned ORM objects are
detached snapshots.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, insert, select, update
from sqlalchemy.orm import sessionmaker

from scouting.errors import IngestionError, InvalidTransitionError
from scouting.models import DataInsight, PerformanceDataFile, PerformanceMetric, PlayerProfile, ScoutingReport
from scouting.schemas import Insight

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": {"processing"},
    "processing": {"completed", "failed"},
}
TERMINAL_STATUSES = {"completed", "failed"}
REPORT_EDITABLE_FIELDS = {
    "title",
    "summary",
    "content_sections",
    "key_metrics",
    "status",
    "shared_with_player",
    "game_date",
}


def to_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _profile_to_dict(profile: Optional[PlayerProfile]) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    return {
        "user_id": profile.user_id,
        "display_name": profile.display_name,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
    }


def file_to_dict(record: PerformanceDataFile, player: Optional[PlayerProfile] = None) -> Dict[str, Any]:
    return {
        "id": str(record.id),
        "team_id": record.team_id,
        "uploaded_by": record.uploaded_by,
        "player_user_id": record.player_user_id,
        "player": _profile_to_dict(player),
        "is_opponent_data": record.is_opponent_data,
        "opponent_name": record.opponent_name,
        "file_name": record.file_name,
        "storage_path": record.storage_path,
        "file_type": record.file_type,
        "file_size": record.file_size,
        "row_count": record.row_count,
        "detected_columns": record.detected_columns,
        "metadata": record.file_metadata or {},
        "processing_status": record.processing_status,
        "processed_at": _iso(record.processed_at),
        "created_at": _iso(record.created_at),
    }


def report_to_dict(report: ScoutingReport, player: Optional[PlayerProfile] = None) -> Dict[str, Any]:
    return {
        "id": str(report.id),
        "team_id": report.team_id,
        "created_by": report.created_by,
        "report_type": report.report_type,
        "report_category": report.report_category,
        "player_user_id": report.player_user_id,
        "player": _profile_to_dict(player),
        "opponent_name": report.opponent_name,
        "title": report.title,
        "summary": report.summary,
        "content_sections": report.content_sections,
        "ai_generated_content": report.ai_generated_content,
        "key_metrics": report.key_metrics,
        "source_file_ids": report.source_file_ids or [],
        "game_date": _iso(report.game_date),
        "shared_with_player": report.shared_with_player,
        "status": report.status,
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


class SqlPerformanceStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ── File records ────────────────────────────────────────────────────

    def create_file(self, **fields) -> PerformanceDataFile:
        with self.session_factory() as db:
            record = PerformanceDataFile(processing_status="pending", **fields)
            db.add(record)
            db.commit()
            db.refresh(record)
            return record

    def load_file(self, file_id) -> PerformanceDataFile:
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, to_uuid(file_id))
            if record is None:
                raise IngestionError(f"File not found: {file_id}")
            return record

    def load_files(self, file_ids: Iterable) -> List[PerformanceDataFile]:
        ids = [to_uuid(f) for f in file_ids]
        with self.session_factory() as db:
            return list(db.scalars(select(PerformanceDataFile).where(PerformanceDataFile.id.in_(ids))))

    def transition_status(self, file_id, new_status: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Move a file along pending → processing → completed|failed.

        `metadata` is merged into the stored metadata blob. The UPDATE is
        conditional on the status read, so two racing callers cannot both
        claim the same pending file.
        """
        fid = to_uuid(file_id)
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, fid)
            if record is None:
                raise IngestionError(f"File not found: {file_id}")
            current = record.processing_status
            if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidTransitionError(f"File {file_id} cannot move from {current} to {new_status}")

            values: Dict[str, Any] = {"processing_status": new_status}
            if new_status in TERMINAL_STATUSES:
                values["processed_at"] = datetime.utcnow()
            if metadata:
                values["file_metadata"] = {**(record.file_metadata or {}), **metadata}

            result = db.execute(
                update(PerformanceDataFile)
                .where(PerformanceDataFile.id == fid, PerformanceDataFile.processing_status == current)
                .values(**values)
            )
            if result.rowcount != 1:
                db.rollback()
                raise InvalidTransitionError(f"File {file_id} changed status concurrently")
            db.commit()
        logger.info(f"File {file_id}: {current} → {new_status}")

    def update_interpretation(
        self,
        file_id,
        detected_columns: Dict[str, Any],
        row_count: int,
        metadata: Dict[str, Any],
    ) -> None:
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, to_uuid(file_id))
            if record is None:
                raise IngestionError(f"File not found: {file_id}")
            record.detected_columns = detected_columns
            record.row_count = row_count
            record.file_metadata = {**(record.file_metadata or {}), **metadata}
            db.commit()

    def file_status(self, file_id) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, to_uuid(file_id))
            if record is None:
                return None
            insight_count = 0
            if record.processing_status == "completed":
                insight_count = self._count_insights(db, record.id)
            return {
                "file_id": str(record.id),
                "file_name": record.file_name,
                "status": record.processing_status,
                "row_count": record.row_count,
                "detected_columns": record.detected_columns,
                "insight_count": insight_count,
                "processed_at": record.processed_at.isoformat() if record.processed_at else None,
                "errors": (record.file_metadata or {}).get("errors") or [],
            }

    def file_detail(self, file_id) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, to_uuid(file_id))
            if record is None:
                return None
            player = db.get(PlayerProfile, record.player_user_id) if record.player_user_id else None
            return file_to_dict(record, player)

    def resolve_subject_display_name(self, player_user_id: Optional[str]) -> Optional[str]:
        if not player_user_id:
            return None
        with self.session_factory() as db:
            profile = db.get(PlayerProfile, player_user_id)
            if profile is None:
                return None
            full_name = " ".join(p for p in (profile.first_name, profile.last_name) if p)
            return profile.display_name or full_name or None

    # ── Metric rows ─────────────────────────────────────────────────────

    def persist_rows(self, rows: List[Dict[str, Any]]) -> int:
        """Insert one batch of metric rows in a single transaction."""
        if not rows:
            return 0
        with self.session_factory() as db:
            db.execute(insert(PerformanceMetric), rows)
            db.commit()
        return len(rows)

    def count_rows(self, file_id) -> int:
        with self.session_factory() as db:
            return db.scalar(
                select(func.count()).select_from(PerformanceMetric)
                .where(PerformanceMetric.data_file_id == to_uuid(file_id))
            )

    # ── Insights ────────────────────────────────────────────────────────

    def persist_insights(self, record: PerformanceDataFile, insights: List[Insight]) -> int:
        if not insights:
            return 0
        rows = [
            {
                "team_id": record.team_id,
                "data_file_id": record.id,
                "player_user_id": None if record.is_opponent_data else record.player_user_id,
                "is_opponent_insight": bool(record.is_opponent_data),
                "opponent_name": record.opponent_name,
                "insight_type": insight.type,
                "title": insight.title,
                "description": insight.description,
                "confidence_score": insight.confidence,
                "supporting_data": insight.supporting_data,
                "action_items": insight.action_items,
                "created_by_ai": True,
            }
            for insight in insights
        ]
        with self.session_factory() as db:
            db.execute(insert(DataInsight), rows)
            db.commit()
        return len(rows)

    @staticmethod
    def _count_insights(db, file_uuid: UUID) -> int:
        return db.scalar(
            select(func.count()).select_from(DataInsight)
            .where(DataInsight.data_file_id == file_uuid, DataInsight.dismissed_at.is_(None))
        )

    def count_insights(self, file_id) -> int:
        with self.session_factory() as db:
            return self._count_insights(db, to_uuid(file_id))

    def load_insights(self, file_ids: Iterable) -> List[Dict[str, Any]]:
        """Non-dismissed insights for the given files, newest first."""
        ids = [to_uuid(f) for f in file_ids]
        with self.session_factory() as db:
            rows = db.scalars(
                select(DataInsight)
                .where(DataInsight.data_file_id.in_(ids), DataInsight.dismissed_at.is_(None))
                .order_by(DataInsight.created_at.desc())
            )
            return [
                {
                    "id": str(i.id),
                    "type": i.insight_type,
                    "title": i.title,
                    "description": i.description,
                    "confidence": i.confidence_score,
                    "supporting_data": i.supporting_data or {},
                    "action_items": i.action_items or [],
                }
                for i in rows
            ]

    def dismiss_insight(self, insight_id) -> bool:
        with self.session_factory() as db:
            insight = db.get(DataInsight, to_uuid(insight_id))
            if insight is None:
                return False
            if insight.dismissed_at is None:
                insight.dismissed_at = datetime.utcnow()
                db.commit()
            return True

    # ── Reports ─────────────────────────────────────────────────────────

    def persist_report(self, **fields) -> ScoutingReport:
        with self.session_factory() as db:
            report = ScoutingReport(status="draft", **fields)
            db.add(report)
            db.commit()
            db.refresh(report)
            logger.info(f"Saved {report.report_category} report {report.id}")
            return report

    def get_report(self, report_id) -> Optional[Dict[str, Any]]:
        with self.session_factory() as db:
            report = db.get(ScoutingReport, to_uuid(report_id))
            if report is None:
                return None
            player = db.get(PlayerProfile, report.player_user_id) if report.player_user_id else None
            return report_to_dict(report, player)

    def update_report(self, report_id, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply editable fields to a report; None when the report does not exist."""
        unknown = set(updates) - REPORT_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
        with self.session_factory() as db:
            report = db.get(ScoutingReport, to_uuid(report_id))
            if report is None:
                return None
            for name, value in updates.items():
                setattr(report, name, value)
            report.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(report)
            logger.info(f"Updated report {report.id}: {', '.join(sorted(updates)) or 'no fields'}")
            player = db.get(PlayerProfile, report.player_user_id) if report.player_user_id else None
            return report_to_dict(report, player)
