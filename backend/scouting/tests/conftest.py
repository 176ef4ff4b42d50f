import copy
import io
from types import SimpleNamespace
from uuid import uuid4

import pandas as pd
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from scouting import models  # noqa: F401  (registers tables on Base)
from scouting.config import Settings
from scouting.database import Base, make_session_factory
from scouting.file_storage import FileStorage
from scouting.llm_service import extract_json
from scouting.schemas import ColumnInterpretation, ColumnInterpretationResult, Insight, Report
from scouting.store import SqlPerformanceStore


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return SqlPerformanceStore(session_factory)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("WORKER_POOL_SIZE", "1")
    return Settings()


@pytest.fixture
def storage(settings):
    return FileStorage(settings.upload_dir)


def make_xlsx(sheets: dict) -> bytes:
    """{sheet_name: DataFrame} → xlsx bytes."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return buf.getvalue()


def default_interpretation(headers, sport="baseball") -> ColumnInterpretationResult:
    return ColumnInterpretationResult(
        detected_sport=sport,
        confidence=0.9,
        column_interpretations={
            h: ColumnInterpretation(
                interpreted_as=h,
                data_type="date" if "date" in h.lower() else "number",
                description=f"{h} column",
                is_key_metric=True,
            )
            for h in headers
        },
        data_quality_notes=["looks clean"],
    )


SAMPLE_REPORT = {
    "executive_summary": "Solid contact hitter with a high strikeout rate.",
    "dynamic_sections": [
        {
            "section_title": "Plate discipline",
            "section_type": "weakness",
            "content": "Chases high fastballs.",
            "key_points": [
                {"point": "K% above league", "importance": "low"},
                {"point": "Walks rarely", "importance": "high"},
            ],
        }
    ],
    "key_metrics_table": {"detected_metrics": [{"metric_name": "hits", "value": "2.5"}]},
    "strengths": [{"title": "Contact", "description": "Puts ball in play", "impact": "high"}],
}


class FakeAIService:
    """Stands in for AIService; records calls and raises on request."""

    def __init__(
        self,
        sport="baseball",
        insights=None,
        report=None,
        enhanced=None,
        interpret_error=None,
        insights_error=None,
        report_error=None,
        enhance_error=None,
    ):
        self.sport = sport
        self.insights = insights if insights is not None else [
            Insight(type="strength", title="Hits 2.5 per game", description="Consistent contact", confidence=0.8),
            Insight(type="weakness", title="Few walks", description="Rarely walks", confidence=0.6),
        ]
        self.report = report or Report.model_validate(SAMPLE_REPORT)
        self.enhanced = enhanced
        self.interpret_error = interpret_error
        self.insights_error = insights_error
        self.report_error = report_error
        self.enhance_error = enhance_error
        self.calls = []

    def interpret_columns(self, headers, sample_rows, context):
        self.calls.append(("interpret_columns", len(sample_rows), context))
        if self.interpret_error:
            raise self.interpret_error
        return default_interpretation(headers, self.sport)

    def generate_insights(self, payload, interpretations, context):
        self.calls.append(("generate_insights", payload, context))
        if self.insights_error:
            raise self.insights_error
        return list(self.insights)

    def generate_report(self, aggregates, interpretations, insights, context):
        self.calls.append(("generate_report", aggregates, insights, context))
        if self.report_error:
            raise self.report_error
        return self.report

    def enhance_prose(self, report):
        self.calls.append(("enhance_prose", report))
        if self.enhance_error:
            raise self.enhance_error
        return self.enhanced or report


class FakeLLMClient:
    """Replays canned text responses through the real JSON extraction."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []
        self.config = SimpleNamespace(model="fast", report_model="strong", enhance_model="prose")

    def complete(self, prompt, **kwargs):
        self.prompts.append((prompt, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def complete_json(self, prompt, **kwargs):
        return extract_json(self.complete(prompt, **kwargs))


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def ai_factory():
    return FakeAIService


@pytest.fixture
def llm_factory():
    return FakeLLMClient


@pytest.fixture
def xlsx():
    return make_xlsx


@pytest.fixture
def sample_report():
    return copy.deepcopy(SAMPLE_REPORT)


@pytest.fixture
def make_file(store, storage):
    """Store bytes and create a pending file record; returns the record."""

    def _make(content: bytes, file_type="csv", file_name=None, is_opponent=False, opponent_name=None,
              player_user_id="player-1", team_id="team-1", metadata=None):
        name = file_name or f"data.{file_type}"
        path = storage.save(team_id, uuid4().hex, name, content)
        return store.create_file(
            team_id=team_id,
            uploaded_by="coach-1",
            player_user_id=None if is_opponent else player_user_id,
            is_opponent_data=is_opponent,
            opponent_name=opponent_name,
            file_name=name,
            storage_path=path,
            file_type=file_type,
            file_size=len(content),
            file_metadata=metadata or {},
        )

    return _make
