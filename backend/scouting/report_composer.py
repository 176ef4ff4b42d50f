"""
Two-stage report composition: a structured draft, then a prose pass.

The draft is authoritative. If the prose pass fails for any reason the
final report is the draft object itself, and `enhancement_error` records
which failure it was.
"""

import logging
from typing import Any, Dict, List

from scouting.ai_service import AIService
from scouting.errors import AIResponseError, AIValidationError
from scouting.schemas import ComposedReport, ReportContext

logger = logging.getLogger(__name__)

ENHANCE_FAILED = "enhance_failed"
ENHANCE_MALFORMED_JSON = "enhance_malformed_json"
ENHANCE_INVALID_SHAPE = "enhance_invalid_shape"


class ReportComposer:
    def __init__(self, ai_service: AIService):
        self.ai = ai_service

    def compose(
        self,
        aggregates: Dict[str, Any],
        interpretations: Dict[str, Any],
        insights: List[dict],
        context: ReportContext,
    ) -> ComposedReport:
        # Stage A failures propagate; there is nothing to fall back to.
        draft = self.ai.generate_report(aggregates, interpretations, insights, context)

        try:
            enhanced = self.ai.enhance_prose(draft)
        except AIResponseError as e:
            return self._fallback(draft, ENHANCE_MALFORMED_JSON, e)
        except AIValidationError as e:
            return self._fallback(draft, ENHANCE_INVALID_SHAPE, e)
        except Exception as e:
            return self._fallback(draft, ENHANCE_FAILED, e)

        return ComposedReport(draft=draft, final=enhanced, enhanced=True)

    @staticmethod
    def _fallback(draft, code: str, exc: Exception) -> ComposedReport:
        logger.warning(f"Prose enhancement failed ({code}): {exc}; using draft")
        return ComposedReport(
            draft=draft,
            final=draft,
            enhanced=False,
            enhancement_error=code,
            enhancement_message=str(exc),
        )
