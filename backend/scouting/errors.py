"""
Exception hierarchy shared by the parser, AI service, store and orchestrator.
Route handlers translate these into HTTPException responses.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class ParseError(PipelineError):
    """The uploaded file could not be read at all."""


class IngestionError(PipelineError):
    """Fatal ingestion problem: missing record, download failure, zero rows."""


class InvalidTransitionError(PipelineError):
    """A processing-status change the state machine does not allow."""


class DuplicateJobError(PipelineError):
    """A file already has an active job or is past the pending state."""


class ReportGenerationError(PipelineError):
    """Report drafting failed or had no usable source files."""


class AIServiceError(Exception):
    """Base class for generative-AI failures. `code` is stable for operators."""

    code = "ai_error"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        if code:
            self.code = code


class AIUnavailableError(AIServiceError):
    code = "ai_unavailable"


class AIResponseError(AIServiceError):
    """Empty output or output that is not JSON."""

    code = "malformed_json"


class AIValidationError(AIServiceError):
    """JSON that does not match the expected shape."""

    code = "invalid_shape"
