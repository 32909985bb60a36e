"""Pipeline failure taxonomy."""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for a failed pipeline stage."""

    stage = "pipeline"


class AdmissionDenied(PipelineError):
    """The client called again inside the rate window."""

    stage = "rate_check"

    def __init__(self, client_key: str, retry_after_seconds: int) -> None:
        super().__init__(f"Too many requests from {client_key}")
        self.client_key = client_key
        self.retry_after_seconds = retry_after_seconds


class ExpansionFailure(PipelineError):
    stage = "expanding"


class RetrievalFailure(PipelineError):
    stage = "retrieving"


class AssemblyFailure(PipelineError):
    stage = "assembling"


class GenerationFailure(PipelineError):
    stage = "generating"
