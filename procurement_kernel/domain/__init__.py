"""Domain layer - pure value objects, lifecycles and authorization rules."""

from procurement_kernel.domain.capabilities import Actor, Relation, Role, authorize
from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.values import Money
from procurement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Actor",
    "Relation",
    "Role",
    "authorize",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Money",
    "Guard",
    "Transition",
    "Workflow",
]
