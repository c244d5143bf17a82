from __future__ import annotations
"""Simple finite state machine utility for enforcing allowed status transitions.

Used by the Service and Invoice lifecycles.
Usage:
    from freightdesk.utils.fsm import TransitionValidator
    INVOICE_FSM = TransitionValidator({
        'DRAFT': {'SENT', 'CANCELLED'},
        'SENT': {'PAID'},
        'PAID': set(),
    })
    INVOICE_FSM.assert_can_transition(current_status, target_status)

Aborts with 422 if invalid.
"""
from typing import Dict, Set, Iterable
from flask import abort


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(422, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def targets(self, current: str) -> Iterable[str]:
        return sorted(self.graph.get(current, set()))

    def as_dict(self):
        return {k: sorted(v) for k, v in self.graph.items()}

__all__ = ['TransitionValidator']
