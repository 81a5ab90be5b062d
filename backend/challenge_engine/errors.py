"""
PCN Challenge Engine - Error Taxonomy

Components raise these typed failures and never retry themselves.
Only the pipeline orchestrator decides between retry and terminal failure.
"""
from typing import Any, Dict, List, Optional


class ChallengePipelineError(Exception):
    """
    Base class for every challenge pipeline failure.

    Attributes:
        kind: Stable machine-readable error kind
        retryable: Whether the orchestrator may retry the failed phase
        attempts: Drafting attempts made before the failure (terminal errors)
        job: Snapshot of the ChallengeJob at the time of failure
    """
    kind = "pipeline_error"
    retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        ticket_id: Optional[str] = None,
        attempts: int = 0,
        job: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.ticket_id = ticket_id
        self.attempts = attempts
        self.job = job

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "ticket_id": self.ticket_id,
            "attempts": self.attempts,
        }


class ExtractionIncomplete(ChallengePipelineError):
    """Key ticket fields are missing. Logged, never fatal."""
    kind = "extraction_incomplete"

    def __init__(self, missing: List[str], **kwargs):
        super().__init__(f"Missing ticket fields: {', '.join(missing)}", **kwargs)
        self.missing = list(missing)


class GenerationUnavailable(ChallengePipelineError):
    """The text generation capability raised or timed out."""
    kind = "generation_unavailable"
    retryable = True


class MalformedDraft(ChallengePipelineError):
    """Generated text failed structural validation."""
    kind = "malformed_draft"
    retryable = True


class RenderFailed(ChallengePipelineError):
    """Document rendering or artifact upload failed."""
    kind = "render_failed"


class AlreadyInProgress(ChallengePipelineError):
    """A job for this ticket is already running."""
    kind = "already_in_progress"


class GenerationTimeout(ChallengePipelineError):
    """The per-job time budget was exceeded."""
    kind = "generation_timeout"


class ChallengeGenerationFailed(ChallengePipelineError):
    """Terminal failure: retries exhausted or the persistence write failed."""
    kind = "challenge_generation_failed"


class TicketNotFound(ChallengePipelineError):
    """No ticket exists for the given identifier."""
    kind = "ticket_not_found"
