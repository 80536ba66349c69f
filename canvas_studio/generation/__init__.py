"""Generation rounds: orchestration, studio state and HTTP routes."""

from .orchestrator import AggregateResult, AggregateStatus, GenerationOrchestrator, RunMode
from .state import Action, ActionType, GenerationState, GenerationStore, GenerationStores, reduce

__all__ = [
    "Action",
    "ActionType",
    "AggregateResult",
    "AggregateStatus",
    "GenerationOrchestrator",
    "GenerationState",
    "GenerationStore",
    "GenerationStores",
    "RunMode",
    "reduce",
]
