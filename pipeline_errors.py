"""
Error taxonomy for the video summary pipeline.

Every failure that reaches a caller is one of these kinds. Each carries the
status signal the HTTP layer uses, so callers can tell "fix your input" from
"configure a credential" from "upstream service is down".
"""

from typing import Any, Dict


class PipelineError(Exception):
    """Base class for all errors surfaced by the summary pipeline."""

    kind = "PipelineError"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to the structured payload returned to callers."""
        return {"error": self.message, "kind": self.kind}


class InvalidInputError(PipelineError):
    """Missing or malformed video identifier in a request."""

    kind = "InvalidInput"
    http_status = 400


class VideoNotFoundError(PipelineError):
    """Source video has not been downloaded."""

    kind = "NotFound"
    http_status = 404


class ArtifactNotFoundError(PipelineError):
    """A stage artifact was read before it was written."""

    kind = "NotFound"
    http_status = 404


class CredentialNotConfiguredError(PipelineError):
    """No service credential has been configured."""

    kind = "Unconfigured"
    http_status = 412


class ExtractionError(PipelineError):
    """The external media tool failed or produced no output."""

    kind = "ExtractionError"
    http_status = 500


class TranscriptionError(PipelineError):
    """The speech-to-text service call failed."""

    kind = "TranscriptionError"
    http_status = 502


class SummarizationError(PipelineError):
    """One of the completion calls (visual, audio, consolidation) failed."""

    kind = "SummarizationError"
    http_status = 502
