"""
PipelineOrchestrator: the 8-step processing run for one uploaded file.

    1. load the file record, claim it (pending → processing)
    2. read bytes and parse
    3. AI column interpretation                      (fatal)
    4. persist interpretation + row count
    5. build one metric row per parsed row, insert in batches
    6. aggregate
    7. benchmark (supported domains only), AI insights (non-fatal), persist
    8. mark completed

Any exception before step 8 finishes marks the file failed, so a run never
ends in `processing`. Collaborators are injected; tests pass fakes.
"""

import logging
import re
from dataclasses import asdict
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from scouting.aggregator import (
    aggregates_to_dict,
    calculate_aggregates,
    calculate_interpreted_aggregates,
    numeric_averages,
)
from scouting.benchmarks import (
    BenchmarkCatalog,
    benchmark_context,
    compare_to_benchmarks,
    get_catalog,
    is_supported_domain,
)
from scouting.config import Settings, get_settings
from scouting.errors import IngestionError, InvalidTransitionError
from scouting.parsers import parse_file
from scouting.schemas import (
    AnalysisContext,
    BenchmarkComparison,
    Cell,
    ColumnInterpretation,
    ColumnInterpretationResult,
    ProcessingResult,
    Row,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

_KEY_RE = re.compile(r"[^a-z0-9]+")
# a four-digit year, or the year slot of a numeric d/m/y triple
_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)|\d{1,2}[/.-]\d{1,2}[/.-]\d{2}(?!\d)")


def _metric_key(name: str) -> str:
    return _KEY_RE.sub("_", name.strip().lower()).strip("_")


def interpret_row(row: Row, interpretations: Dict[str, ColumnInterpretation]) -> Dict[str, Cell]:
    """
    Re-key a parsed row by interpreted metric name.

    Null cells are dropped so that columns from different sheets that mean
    the same thing pool into one key.
    """
    out: Dict[str, Cell] = {}
    for column, value in row.items():
        if value is None:
            continue
        ci = interpretations.get(column)
        key = (_metric_key(ci.interpreted_as) if ci else "") or column
        out.setdefault(key, value)
    return out


def parse_metric_date(value: Cell) -> Optional[date]:
    """
    ISO date first, then free text through pandas.

    Free text must name a year: pandas fills a missing year from today's
    date, so "May 3" alone is dropped rather than drifting between runs.
    """
    if value is None or isinstance(value, (bool, int, float)):
        return None
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    if not _YEAR_RE.search(text):
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def _noop_progress(step: int, message: str) -> None:
    pass


class PipelineOrchestrator:
    def __init__(
        self,
        store,
        storage,
        ai_service,
        settings: Optional[Settings] = None,
        catalog: Optional[BenchmarkCatalog] = None,
    ):
        self.store = store
        self.storage = storage
        self.ai = ai_service
        self.settings = settings or get_settings()
        self.catalog = catalog or get_catalog()

    def process_file(self, file_id, on_progress: Optional[ProgressCallback] = None) -> ProcessingResult:
        file_id = str(file_id)
        progress = on_progress or _noop_progress
        errors: List[str] = []

        # Step 1: claim the record; a file that is not pending is left untouched
        progress(1, "Loading file information...")
        try:
            record = self.store.load_file(file_id)
        except (IngestionError, ValueError) as e:
            logger.error(f"Cannot process file {file_id}: {e}")
            return ProcessingResult(False, file_id, "failed", 0, 0, [str(e)])
        try:
            self.store.transition_status(file_id, "processing")
        except InvalidTransitionError as e:
            logger.error(str(e))
            return ProcessingResult(False, file_id, record.processing_status, 0, 0, [str(e)])

        try:
            return self._run(file_id, record, errors, progress)
        except Exception as e:
            logger.exception(f"Processing failed for file {file_id}: {e}")
            errors.append(str(e))
            self._mark_failed(file_id, errors)
            return ProcessingResult(False, file_id, "failed", 0, 0, errors)

    def _mark_failed(self, file_id: str, errors: List[str]) -> None:
        try:
            self.store.transition_status(file_id, "failed", metadata={"errors": errors})
        except Exception as e:
            logger.error(f"Could not mark file {file_id} failed: {e}")

    def _run(self, file_id: str, record, errors: List[str], progress: ProgressCallback) -> ProcessingResult:
        settings = self.settings

        # Step 2: download and parse
        progress(2, "Downloading and parsing file...")
        content = self.storage.read(record.storage_path)
        table = parse_file(content, record.file_type)
        errors.extend(table.warnings)
        if not table.rows:
            raise IngestionError("No data rows found in file")

        subject_name = record.opponent_name or self.store.resolve_subject_display_name(record.player_user_id)
        context = AnalysisContext(
            data_category=record.data_category,
            subject_name=subject_name,
            sport=(record.file_metadata or {}).get("sport"),
            row_count=table.row_count,
        )

        # Step 3: AI column interpretation (fatal on failure)
        progress(3, "Analyzing column structure with AI...")
        interpretation = self.ai.interpret_columns(
            table.headers, table.rows[:settings.interpretation_sample_rows], context
        )

        # Step 4: store interpretation
        progress(4, "Storing AI interpretation...")
        self.store.update_interpretation(
            file_id,
            detected_columns=interpretation.model_dump(),
            row_count=table.row_count,
            metadata={
                "detected_sport": interpretation.detected_sport,
                "interpretation_confidence": interpretation.confidence,
                "data_quality_notes": interpretation.data_quality_notes,
                "parse_warnings": table.warnings,
            },
        )

        # Step 5: metric rows, batched
        progress(5, f"Processing {table.row_count} data rows...")
        metric_rows = self._build_metric_rows(record, table.headers, table.rows, interpretation)
        self._insert_batches(metric_rows, errors)

        # Step 6: aggregates
        progress(6, "Calculating aggregate statistics...")
        aggregates = calculate_aggregates(table.rows, table.headers)
        interpreted_aggregates = calculate_interpreted_aggregates([m["interpreted_data"] for m in metric_rows])

        # Step 7: benchmarks + insights (non-fatal)
        progress(7, "Generating AI insights...")
        comparisons: List[BenchmarkComparison] = []
        bench_text = ""
        sport = interpretation.detected_sport
        if is_supported_domain(sport, self.catalog):
            observed = {k: v["avg"] for k, v in interpreted_aggregates.items()}
            for column, avg in numeric_averages(aggregates).items():
                observed.setdefault(column, avg)
            comparisons = compare_to_benchmarks(
                observed,
                level=settings.benchmark_level,
                domain=sport,
                stddev_ratio=settings.benchmark_stddev_ratio,
                catalog=self.catalog,
            )
            bench_text = benchmark_context(settings.benchmark_level, sport, self.catalog)

        insight_count = 0
        payload = {
            "raw_aggregates": aggregates_to_dict(aggregates),
            "interpreted_aggregates": interpreted_aggregates,
            "recommended_metrics": [m.model_dump() for m in interpretation.recommended_metrics],
            "sample_rows": table.rows[:settings.insight_sample_rows],
            "league_comparisons": [asdict(c) for c in comparisons],
            "benchmark_context": bench_text,
        }
        interpretations = {k: v.model_dump() for k, v in interpretation.column_interpretations.items()}
        try:
            insights = self.ai.generate_insights(payload, interpretations, context)
        except Exception as e:
            logger.warning(f"Insight generation failed for file {file_id}: {e}")
            errors.append(f"Insight generation error: {e}")
            insights = []

        if insights:
            try:
                insight_count = self.store.persist_insights(record, insights)
            except Exception as e:
                logger.warning(f"Failed to insert insights for file {file_id}: {e}")
                errors.append(f"Failed to insert insights: {e}")

        # Step 8: complete
        progress(8, "Finalizing...")
        self.store.transition_status(
            file_id,
            "completed",
            metadata={
                "aggregates": interpreted_aggregates,
                "raw_aggregates": payload["raw_aggregates"],
                "benchmarks": payload["league_comparisons"],
                "errors": errors,
            },
        )
        logger.info(
            f"File {file_id} completed: {table.row_count} rows, {insight_count} insights, {len(errors)} non-fatal errors"
        )
        return ProcessingResult(True, file_id, "completed", table.row_count, insight_count, errors)

    def _build_metric_rows(
        self,
        record,
        headers: List[str],
        rows: List[Row],
        interpretation: ColumnInterpretationResult,
    ) -> List[Dict[str, Any]]:
        column_map = interpretation.column_interpretations
        date_columns = [h for h in headers if h in column_map and column_map[h].data_type == "date"]
        date_column = date_columns[0] if date_columns else None

        return [
            {
                "data_file_id": record.id,
                "player_user_id": None if record.is_opponent_data else record.player_user_id,
                "is_opponent_data": bool(record.is_opponent_data),
                "opponent_name": record.opponent_name,
                "metric_date": parse_metric_date(row.get(date_column)) if date_column else None,
                "raw_data": row,
                "interpreted_data": interpret_row(row, column_map),
            }
            for row in rows
        ]

    def _insert_batches(self, metric_rows: List[Dict[str, Any]], errors: List[str]) -> int:
        batch_size = self.settings.metric_batch_size
        inserted = 0
        for start in range(0, len(metric_rows), batch_size):
            batch = metric_rows[start:start + batch_size]
            try:
                inserted += self.store.persist_rows(batch)
            except Exception as e:
                msg = f"Failed to insert metrics rows {start + 1}-{start + len(batch)}: {e}"
                logger.warning(msg)
                errors.append(msg)
        return inserted
