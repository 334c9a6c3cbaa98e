"""
Lifecycle state machine and event replay.

Contract events are named by the module that emits them, not by the
state they produce, so transitions are inferred from the event type
name. The inference lives here, in one table, so a renamed event only
needs a new rule.

Design Decisions:
- Rules are ordered (substring, target, required source) tuples; the
  first match wins
- An explicit `status` tag in the event payload beats substring matching
- Replay never raises on unknown events; they are simply not transitions
"""

from dataclasses import dataclass
from typing import Any

from .models import InvoiceEvent, InvoiceStatus, StatusTransition


@dataclass(frozen=True)
class TransitionRule:
    """Event type names containing `marker` move the invoice to `target`."""
    marker: str
    target: InvoiceStatus
    # None means "from whatever state was last observed"
    source: InvoiceStatus | None = None
    # Last states the event may follow; any other starts from CREATED
    from_states: frozenset[InvoiceStatus] | None = None


DEFAULT_RULES: tuple[TransitionRule, ...] = (
    TransitionRule(
        "Financed",
        InvoiceStatus.FINANCED,
        from_states=frozenset({InvoiceStatus.CREATED, InvoiceStatus.READY}),
    ),
    TransitionRule("Paid", InvoiceStatus.PAID, source=InvoiceStatus.FINANCED),
    TransitionRule("Settled", InvoiceStatus.PAID, source=InvoiceStatus.FINANCED),
    TransitionRule("Disputed", InvoiceStatus.DISPUTED),
)

# Legal edges of the state machine
ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.CREATED: frozenset({InvoiceStatus.READY, InvoiceStatus.FINANCED, InvoiceStatus.DISPUTED}),
    InvoiceStatus.READY: frozenset({InvoiceStatus.FINANCED, InvoiceStatus.DISPUTED}),
    InvoiceStatus.FINANCED: frozenset({InvoiceStatus.PAID, InvoiceStatus.DEFAULTED, InvoiceStatus.DISPUTED}),
    InvoiceStatus.DISPUTED: frozenset(),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.DEFAULTED: frozenset(),
}


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _explicit_status(payload: dict[str, Any]) -> InvoiceStatus | None:
    tag = payload.get("status")
    if tag is None:
        return None
    try:
        if isinstance(tag, int) or (isinstance(tag, str) and tag.isdigit()):
            return InvoiceStatus.from_code(int(tag))
        if isinstance(tag, str):
            return InvoiceStatus.from_name(tag)
    except ValueError:
        return None
    return None


def classify_event(
    event: InvoiceEvent,
    last_status: InvoiceStatus | None,
    rules: tuple[TransitionRule, ...] = DEFAULT_RULES,
) -> StatusTransition | None:
    """
    Infer the transition an event represents, if any.

    Args:
        event: The event to classify
        last_status: State observed before this event (None if nothing yet)
        rules: Ordered rule table; the first matching marker wins

    Returns:
        The inferred transition, or None if the event is not a transition
    """
    current = last_status or InvoiceStatus.CREATED

    target = _explicit_status(event.payload)
    source: InvoiceStatus | None = None
    if target is None:
        rule = next((r for r in rules if r.marker in event.event_type), None)
        if rule is None:
            return None
        target, source = rule.target, rule.source
        if rule.from_states is not None and current not in rule.from_states:
            current = InvoiceStatus.CREATED

    return StatusTransition(
        from_status=source or current,
        to_status=target,
        timestamp_ms=event.timestamp_ms,
        tx_digest=event.tx_digest,
        event_type=event.event_type,
    )


def build_transitions(
    events: list[InvoiceEvent],
    rules: tuple[TransitionRule, ...] = DEFAULT_RULES,
) -> list[StatusTransition]:
    """Replay events, already in ledger order, into a transition timeline."""
    transitions: list[StatusTransition] = []
    last: InvoiceStatus | None = None
    for event in events:
        transition = classify_event(event, last, rules)
        if transition is None:
            continue
        transitions.append(transition)
        last = transition.to_status
    return transitions


def event_type_name(full_type: str) -> str:
    """Short struct name of a fully qualified event type."""
    return full_type.split("::")[-1] or "Unknown"
