"""Canonical state transition definitions for the deal lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from forecourt.core.exceptions import InvalidStateError, ValidationError
from forecourt.models.enums import DealStatus

Guard = Callable[[Any], None]


class InvalidTransitionError(InvalidStateError):
    """Raised when a disallowed state transition is attempted."""


class StateMachine:
    """Transition table plus per-target guards.

    Guards receive the entity being moved and raise a domain error when a
    precondition for entering the target state is not met.
    """

    def __init__(
        self,
        transitions: dict[str, set[str]],
        guards: dict[str, list[Guard]] | None = None,
        terminal: set[str] | None = None,
    ) -> None:
        self._transitions = transitions
        self._guards = guards or {}
        self._terminal = terminal or set()

    def can_transition(self, current: Any, target: Any) -> bool:
        return _state_value(target) in self._transitions.get(_state_value(current), set())

    def assert_transition(self, current: Any, target: Any) -> None:
        if not self.can_transition(current=current, target=target):
            raise InvalidTransitionError(
                f"Transition not allowed: {_state_value(current)} -> {_state_value(target)}"
            )

    def is_terminal(self, state: Any) -> bool:
        return _state_value(state) in self._terminal

    def targets(self, current: Any) -> set[str]:
        return set(self._transitions.get(_state_value(current), set()))

    def check_guards(self, target: Any, entity: Any) -> None:
        for guard in self._guards.get(_state_value(target), []):
            guard(entity)

    def transition(self, entity: Any, target: Any, attribute: str = "status") -> Any:
        """Validate and apply ``current -> target`` on ``entity.<attribute>``.

        Returns the previous state.
        """
        current = getattr(entity, attribute)
        self.assert_transition(current=current, target=target)
        self.check_guards(target, entity)
        setattr(entity, attribute, target)
        return current


def _state_value(state: Any) -> str:
    return state.value if hasattr(state, "value") else str(state)


def require_signatures(deal: Any) -> None:
    """Both parties must have signed before a deal is completed."""
    missing = []
    if deal.dealer_signed_at is None:
        missing.append("dealer")
    if deal.customer_signed_at is None:
        missing.append("customer")
    if missing:
        parties = " and ".join(missing)
        raise ValidationError(f"Deal must be signed by the {parties} before it can be completed.")


def require_customer(deal: Any) -> None:
    if deal.customer_id is None:
        raise ValidationError("A customer must be linked to the deal.")


DEAL_TRANSITIONS: dict[str, set[str]] = {
    DealStatus.DRAFT.value: {
        DealStatus.DEPOSIT_TAKEN.value,
        DealStatus.INVOICED.value,
        DealStatus.CANCELLED.value,
    },
    DealStatus.DEPOSIT_TAKEN.value: {
        DealStatus.INVOICED.value,
        DealStatus.COMPLETED.value,
        DealStatus.CANCELLED.value,
    },
    DealStatus.INVOICED.value: {
        DealStatus.DELIVERED.value,
        DealStatus.COMPLETED.value,
        DealStatus.CANCELLED.value,
    },
    DealStatus.DELIVERED.value: {DealStatus.COMPLETED.value, DealStatus.CANCELLED.value},
    DealStatus.COMPLETED.value: {DealStatus.CANCELLED.value},
    DealStatus.CANCELLED.value: set(),
}

DEAL_GUARDS: dict[str, list[Guard]] = {
    DealStatus.DEPOSIT_TAKEN.value: [require_customer],
    DealStatus.INVOICED.value: [require_customer],
    DealStatus.COMPLETED.value: [require_signatures],
}

DEAL_STATE_MACHINE = StateMachine(
    transitions=DEAL_TRANSITIONS,
    guards=DEAL_GUARDS,
    terminal={DealStatus.COMPLETED.value, DealStatus.CANCELLED.value},
)
