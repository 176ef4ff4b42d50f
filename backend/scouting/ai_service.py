"""
Generative-AI stages: column interpretation, insights, report draft and
prose enhancement.

Every method builds a prompt, sends it through the shared LLMClient and
validates the reply into a schemas.py model before returning it. Failures
surface as AIServiceError subclasses; callers decide whether they are fatal.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from scouting import prompts
from scouting.errors import AIValidationError
from scouting.llm_service import LLMClient
from scouting.schemas import (
    AnalysisContext,
    ColumnInterpretationResult,
    Insight,
    Report,
    ReportContext,
)

logger = logging.getLogger(__name__)


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class AIService:
    """The four model-backed operations, sharing one LLMClient."""

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient()

    def interpret_columns(
        self,
        headers: List[str],
        sample_rows: List[dict],
        context: AnalysisContext,
    ) -> ColumnInterpretationResult:
        prompt = prompts.column_interpretation_prompt(headers, sample_rows, context)
        data = self.client.complete_json(prompt)
        try:
            result = ColumnInterpretationResult.model_validate(data)
        except ValidationError as e:
            raise AIValidationError(f"Column interpretation has the wrong shape: {_validation_summary(e)}") from e

        missing = [h for h in headers if h not in result.column_interpretations]
        if missing:
            logger.warning(f"Interpretation omitted {len(missing)} column(s): {missing[:10]}")
        logger.info(
            f"Interpreted {len(result.column_interpretations)} columns; "
            f"sport={result.detected_sport} confidence={result.confidence:.2f}"
        )
        return result

    def generate_insights(
        self,
        payload: Dict[str, Any],
        interpretations: Dict[str, Any],
        context: AnalysisContext,
    ) -> List[Insight]:
        prompt = prompts.insights_prompt(payload, interpretations, context)
        data = self.client.complete_json(prompt)
        raw_items = data.get("insights")
        if not isinstance(raw_items, list):
            raise AIValidationError("Insight response has no 'insights' list")

        insights: List[Insight] = []
        for i, item in enumerate(raw_items):
            try:
                insights.append(Insight.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Dropping malformed insight #{i}: {_validation_summary(e)}")
        logger.info(f"Generated {len(insights)} insight(s) ({len(raw_items) - len(insights)} dropped)")
        return insights

    def generate_report(
        self,
        aggregates: Dict[str, Any],
        interpretations: Dict[str, Any],
        insights: List[dict],
        context: ReportContext,
    ) -> Report:
        if context.report_category == "opponent":
            prompt = prompts.opponent_report_prompt(aggregates, interpretations, insights, context)
        else:
            prompt = prompts.own_team_report_prompt(aggregates, interpretations, insights, context)

        data = self.client.complete_json(prompt, model=self.client.config.report_model)
        try:
            return Report.model_validate(data)
        except ValidationError as e:
            raise AIValidationError(f"Report draft has the wrong shape: {_validation_summary(e)}") from e

    def enhance_prose(self, report: Report) -> Report:
        prompt = prompts.enhance_prose_prompt(report.model_dump())
        data = self.client.complete_json(prompt, model=self.client.config.enhance_model, temperature=0.7)
        try:
            return Report.model_validate(data)
        except ValidationError as e:
            raise AIValidationError(f"Enhanced report has the wrong shape: {_validation_summary(e)}") from e
