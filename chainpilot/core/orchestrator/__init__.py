"""
Action Orchestrator

Drives one free-text request to exactly one terminal outcome:
- ActionStateMachine: validated lifecycle transitions
- DESCRIPTORS: per-kind naming, preflight checks, planner and templates
- ActionOrchestrator: the shared dispatch loop (``execute_action``)

Usage:
    from chainpilot.core.orchestrator import get_action_orchestrator

    orchestrator = get_action_orchestrator()
    async for notification in orchestrator.execute_action("send 1 MNT to 0x...", account):
        print(notification.text)
"""

from .models import (
    TERMINAL_STATES,
    ActionOutcome,
    ActionState,
    InvalidTransitionError,
    Notification,
    NotificationType,
    QueryResult,
    StateTransition,
    new_request_id,
)

from .state_machine import ActionStateMachine

from .descriptors import (
    DESCRIPTORS,
    ActionDescriptor,
    ApprovalRequirement,
    ExecutionPlan,
    PlanContext,
)

from .orchestrator import (
    ActionOrchestrator,
    build_action_orchestrator,
    get_action_orchestrator,
)


__all__ = [
    # Models
    "TERMINAL_STATES",
    "ActionOutcome",
    "ActionState",
    "InvalidTransitionError",
    "Notification",
    "NotificationType",
    "QueryResult",
    "StateTransition",
    "new_request_id",
    # State machine
    "ActionStateMachine",
    # Descriptors
    "DESCRIPTORS",
    "ActionDescriptor",
    "ApprovalRequirement",
    "ExecutionPlan",
    "PlanContext",
    # Orchestrator
    "ActionOrchestrator",
    "build_action_orchestrator",
    "get_action_orchestrator",
]
