"""
Error taxonomy for the orchestration and provider layer.

  StageExecutionFailure       Parse / Chunk / Embed raised or timed out
  ConvergenceTimeout          poller ran out of time (soft failure)
  ConvergenceExplicitFailure  downstream probe reported progress < 0
  ProviderUnavailable         no enabled + available provider qualifies
  ProviderNotFound            unknown provider name
  ProviderCapabilityError     provider asked for chat / embeddings it lacks
  WorkflowNotFound            status / cancel against an unknown id

None of these are retried at this layer. The API maps them to the
ErrorResponse envelope in docflow.main.
"""

from __future__ import annotations

from uuid import UUID


class DocflowError(Exception):
    """Base class for every error raised by the orchestration core."""

    error_code: str = "DOCFLOW_ERROR"


class StageExecutionFailure(DocflowError):
    error_code = "STAGE_FAILED"

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message


class ConvergenceTimeout(DocflowError):
    error_code = "CONVERGENCE_TIMEOUT"


class ConvergenceExplicitFailure(DocflowError):
    error_code = "CONVERGENCE_FAILED"


class ProviderUnavailable(DocflowError):
    error_code = "PROVIDER_UNAVAILABLE"


class ProviderNotFound(DocflowError):
    error_code = "PROVIDER_NOT_FOUND"

    def __init__(self, name: str) -> None:
        super().__init__(f"Provider '{name}' is not configured")
        self.name = name


class ProviderCapabilityError(DocflowError):
    error_code = "PROVIDER_CAPABILITY_UNSUPPORTED"

    def __init__(self, name: str, capability: str) -> None:
        super().__init__(f"Provider '{name}' does not support {capability}")
        self.name = name
        self.capability = capability


class WorkflowNotFound(DocflowError):
    error_code = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: UUID) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id
