"""PCN Challenge Engine - Pipeline Orchestration

Sequences extraction, strategy, drafting, rendering and delivery for one ticket.
"""
from .orchestrator import ChallengeOrchestrator, facts_fingerprint
from .retry import RetryPolicy
from .state_machine import ChallengeJob, JobPhase, PHASE_CONFIG, can_transition, InvalidTransition
from .guard import ActiveJobGuard
from .factory import build_orchestrator

__all__ = [
    "ChallengeOrchestrator", "facts_fingerprint", "RetryPolicy",
    "ChallengeJob", "JobPhase", "PHASE_CONFIG", "can_transition", "InvalidTransition",
    "ActiveJobGuard", "build_orchestrator",
]
