"""PCN Challenge Engine - Strategy Selector

This layer takes TicketFacts (SSOT #1) and creates ChallengeStrategy (SSOT #2).
"""
from .selector import (
    StrategySelector, select_strategy, resolve_reason, GRACE_PERIOD_MINUTES, MAX_PENALTY_PENNIES
)
from .contravention_codes import CONTRAVENTION_CODES, describe, is_recognized

__all__ = [
    "StrategySelector", "select_strategy", "resolve_reason", "GRACE_PERIOD_MINUTES", "MAX_PENALTY_PENNIES",
    "CONTRAVENTION_CODES", "describe", "is_recognized",
]
