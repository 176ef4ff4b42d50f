"""
Report generation across one or more processed files.

Merges column interpretations and aggregates from the selected files, feeds
non-dismissed insights as context, composes the report and stores it.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from scouting.errors import ReportGenerationError
from scouting.report_composer import ReportComposer
from scouting.schemas import ReportContext

logger = logging.getLogger(__name__)


def merge_file_context(files) -> tuple:
    """(interpretations, aggregates) merged across files; earlier files win per key."""
    interpretations: Dict[str, Any] = {}
    aggregates: Dict[str, Any] = {}
    raw_aggregates: Dict[str, Any] = {}
    for record in files:
        detected = record.detected_columns or {}
        for name, ci in (detected.get("column_interpretations") or {}).items():
            interpretations.setdefault(name, ci)
        metadata = record.file_metadata or {}
        for key, value in (metadata.get("aggregates") or {}).items():
            aggregates.setdefault(key, value)
        for key, value in (metadata.get("raw_aggregates") or {}).items():
            raw_aggregates.setdefault(key, value)
    return interpretations, aggregates or raw_aggregates


class ReportService:
    def __init__(self, store, composer: ReportComposer):
        self.store = store
        self.composer = composer

    def create_report(
        self,
        *,
        team_id: str,
        created_by: str,
        title: str,
        report_type: str,
        report_category: str,
        file_ids: List[str],
        player_user_id: Optional[str] = None,
        opponent_name: Optional[str] = None,
        game_date: Optional[str] = None,
        focus_areas: Optional[List[str]] = None,
    ):
        if not file_ids:
            raise ReportGenerationError("At least one data file is required")
        try:
            parsed_game_date = date.fromisoformat(game_date) if game_date else None
        except ValueError:
            raise ReportGenerationError(f"Invalid game_date '{game_date}'; expected YYYY-MM-DD")

        files = [f for f in self.store.load_files(file_ids) if f.team_id == team_id]
        if not files:
            raise ReportGenerationError("Files not found")
        completed = [f for f in files if f.processing_status == "completed"]
        if not completed:
            raise ReportGenerationError("None of the selected files has finished processing")

        interpretations, aggregates = merge_file_context(completed)
        insights = self.store.load_insights([f.id for f in completed])
        player_name = None
        if report_category == "own_team":
            player_name = self.store.resolve_subject_display_name(player_user_id)

        context = ReportContext(
            report_type=report_type,
            report_category=report_category,
            player_name=player_name,
            opponent_name=opponent_name,
            date_range=game_date,
            focus_areas=focus_areas or [],
        )
        composed = self.composer.compose(aggregates, interpretations, insights, context)
        final = composed.final.model_dump()

        report = self.store.persist_report(
            team_id=team_id,
            created_by=created_by,
            report_type=report_type,
            report_category=report_category,
            player_user_id=player_user_id if report_category == "own_team" else None,
            opponent_name=opponent_name if report_category == "opponent" else None,
            title=title,
            summary=composed.final.executive_summary,
            content_sections=final,
            ai_generated_content={
                "draft": composed.draft.model_dump(),
                "enhanced": final if composed.enhanced else None,
                "enhancement_error": composed.enhancement_error,
            },
            key_metrics=final.get("key_metrics_table") or {},
            source_file_ids=[str(f.id) for f in completed],
            game_date=parsed_game_date,
        )
        if composed.enhancement_error:
            logger.warning(f"Report {report.id} saved with unenhanced draft ({composed.enhancement_error})")
        return report
