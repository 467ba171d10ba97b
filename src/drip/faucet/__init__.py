"""Faucet components for DRIP."""

from .eligibility import Eligibility, EligibilityEngine
from .executor import DisbursementExecutor, DisbursementResult, NyksdExecutor
from .orchestrator import (
    DispenseOrchestrator,
    DispenseOutcome,
    DispensePolicy,
    DispenseReason,
    DispenseResult,
)

__all__ = [
    "DisbursementExecutor",
    "DisbursementResult",
    "DispenseOrchestrator",
    "DispenseOutcome",
    "DispensePolicy",
    "DispenseReason",
    "DispenseResult",
    "Eligibility",
    "EligibilityEngine",
    "NyksdExecutor",
]
