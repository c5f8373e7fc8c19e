"""
QC Certificate State Machine

All certificate state changes go through this module.

    DRAFT ──issue──▶ AWAITING_APPROVAL ──customer──▶ APPROVED | REJECTED
      └──issue (no customer approval)──▶ APPROVED

APPROVED reads as EXPIRED once valid_until has passed; that is derived from
time, never stored.
"""
from typing import Dict, List

from qc_engine.core.exceptions import InvalidStateTransition
from qc_engine.models.quality_control import CertificateState


CERTIFICATE_TRANSITIONS: Dict[str, List[str]] = {
    CertificateState.DRAFT.value: [
        CertificateState.AWAITING_APPROVAL.value,  # Issue, customer sign-off needed
        CertificateState.APPROVED.value,           # Issue, no customer sign-off
    ],
    CertificateState.AWAITING_APPROVAL.value: [
        CertificateState.APPROVED.value,
        CertificateState.REJECTED.value,
    ],
    CertificateState.APPROVED.value: [],
    CertificateState.REJECTED.value: [],
}


def can_transition(current_state: str, new_state: str) -> bool:
    return new_state in CERTIFICATE_TRANSITIONS.get(current_state, [])


def get_allowed_transitions(current_state: str) -> List[str]:
    return CERTIFICATE_TRANSITIONS.get(current_state, [])


def validate_transition(current_state: str, new_state: str) -> None:
    """Raise InvalidStateTransition unless current_state → new_state is allowed."""
    if not can_transition(current_state, new_state):
        raise InvalidStateTransition(
            f"Cannot move certificate from {current_state} to {new_state}",
            {
                "current_state": current_state,
                "requested_state": new_state,
                "allowed": get_allowed_transitions(current_state),
            }
        )


def initial_state(customer_approval_required: bool) -> str:
    """State a freshly issued certificate lands in."""
    target = (
        CertificateState.AWAITING_APPROVAL.value
        if customer_approval_required
        else CertificateState.APPROVED.value
    )
    validate_transition(CertificateState.DRAFT.value, target)
    return target
