"""
All SQLAlchemy models in a single module.
Imported by the store, job worker and routes; avoids circular dependencies.
"""

from uuid import uuid4
from sqlalchemy import Column, ForeignKey, Boolean, Index, func
from sqlalchemy import JSON as JSON_TYPE
from sqlalchemy.types import Date, Float, Integer, String, TIMESTAMP, Text, Uuid as UUID_TYPE

from scouting.database import Base


# ── Source files and per-row metrics ────────────────────────────────────

class PerformanceDataFile(Base):
    __tablename__ = "performance_data_files"
    id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    team_id = Column(String, index=True, nullable=False)
    uploaded_by = Column(String, nullable=False)
    player_user_id = Column(String, index=True, nullable=True)
    is_opponent_data = Column(Boolean, nullable=False, default=False)
    opponent_name = Column(String, nullable=True)
    file_name = Column(String, nullable=False)
    storage_path = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=True)
    row_count = Column(Integer, nullable=True)
    detected_columns = Column(JSON_TYPE, nullable=True)
    # "metadata" is reserved on declarative classes
    file_metadata = Column("metadata", JSON_TYPE, nullable=True)
    processing_status = Column(String, nullable=False, default="pending", index=True)
    processed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    @property
    def data_category(self) -> str:
        return "opponent" if self.is_opponent_data else "own_team"


class PerformanceMetric(Base):
    __tablename__ = "performance_metrics"
    id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    data_file_id = Column(UUID_TYPE(as_uuid=True), ForeignKey("performance_data_files.id", ondelete="CASCADE"), index=True)
    player_user_id = Column(String, nullable=True)
    is_opponent_data = Column(Boolean, nullable=False, default=False)
    opponent_name = Column(String, nullable=True)
    metric_date = Column(Date, nullable=True, index=True)
    raw_data = Column(JSON_TYPE, nullable=False)
    interpreted_data = Column(JSON_TYPE, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())


# ── AI outputs ──────────────────────────────────────────────────────────

class DataInsight(Base):
    __tablename__ = "data_insights"
    id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    team_id = Column(String, index=True, nullable=False)
    data_file_id = Column(UUID_TYPE(as_uuid=True), ForeignKey("performance_data_files.id", ondelete="SET NULL"), nullable=True, index=True)
    player_user_id = Column(String, nullable=True)
    is_opponent_insight = Column(Boolean, nullable=False, default=False)
    opponent_name = Column(String, nullable=True)
    insight_type = Column(String, nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    confidence_score = Column(Float, nullable=True)
    supporting_data = Column(JSON_TYPE, nullable=True)
    action_items = Column(JSON_TYPE, nullable=True)
    created_by_ai = Column(Boolean, nullable=False, default=True)
    dismissed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())


class ScoutingReport(Base):
    __tablename__ = "scouting_reports"
    id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    team_id = Column(String, index=True, nullable=False)
    created_by = Column(String, nullable=False)
    report_type = Column(String, nullable=False)
    report_category = Column(String, nullable=False)
    player_user_id = Column(String, nullable=True)
    opponent_name = Column(String, nullable=True)
    title = Column(String, nullable=False)
    summary = Column(Text, nullable=True)
    content_sections = Column(JSON_TYPE, nullable=False)
    ai_generated_content = Column(JSON_TYPE, nullable=True)
    key_metrics = Column(JSON_TYPE, nullable=True)
    source_file_ids = Column(JSON_TYPE, nullable=True)
    game_date = Column(Date, nullable=True)
    shared_with_player = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default="draft")
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=True)


# ── Roster mirror (owned by the roster service, read-only here) ─────────

class PlayerProfile(Base):
    __tablename__ = "player_profiles"
    user_id = Column(String, primary_key=True)
    display_name = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)


# ── Jobs ────────────────────────────────────────────────────────────────

class ProcessingJob(Base):
    __tablename__ = "processing_jobs"
    job_id = Column(UUID_TYPE(as_uuid=True), primary_key=True, default=uuid4)
    data_file_id = Column(UUID_TYPE(as_uuid=True), ForeignKey("performance_data_files.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False, default="QUEUED")
    created_at = Column(TIMESTAMP, server_default=func.now())
    started_at = Column(TIMESTAMP, nullable=True)
    finished_at = Column(TIMESTAMP, nullable=True)
    result = Column(JSON_TYPE, nullable=True)
    failure_reason = Column(Text, nullable=True)
    failure_trace = Column(Text, nullable=True)


# ── Indexes ─────────────────────────────────────────────────────────────

Index("ix_processing_jobs_file_status", ProcessingJob.data_file_id, ProcessingJob.status)
Index("ix_performance_metrics_file_date", PerformanceMetric.data_file_id, PerformanceMetric.metric_date)
