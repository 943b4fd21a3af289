"""Order workflow rules: statuses, stages, the transition table and who may drive it.

Every order moves NEW -> review -> Section A -> Section B -> Section C ->
packaging -> dispatch. Each stage either advances the order to the next
stage's entry status or settles it in a terminal failure status. Nothing
here touches the database; app.services.order_service applies these rules.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.errors import InvalidInputError, InvalidTransitionError
from app.models import OrderStatus, PortalSection, Stage

STAGE_SECTIONS: dict[Stage, PortalSection] = {
    Stage.REVIEW: PortalSection.NEW_ORDERS,
    Stage.SA: PortalSection.SA,
    Stage.SB: PortalSection.SB,
    Stage.SC: PortalSection.SC,
    Stage.PACKAGING: PortalSection.PACKAGING,
    Stage.DISPATCH: PortalSection.DISPATCHED,
}

# (actor column, timestamp column) on Order for each stage.
STAGE_AUDIT_FIELDS: dict[Stage, tuple[str, str]] = {
    Stage.REVIEW: ('reviewed_by_id', 'reviewed_at'),
    Stage.SA: ('sa_processed_by_id', 'sa_processed_at'),
    Stage.SB: ('sb_processed_by_id', 'sb_processed_at'),
    Stage.SC: ('sc_processed_by_id', 'sc_processed_at'),
    Stage.PACKAGING: ('packaged_by_id', 'packaged_at'),
    Stage.DISPATCH: ('dispatched_by_id', 'dispatched_at'),
}

STAGE_ENTRY_STATUS: dict[Stage, OrderStatus] = {
    Stage.REVIEW: OrderStatus.NEW,
    Stage.SA: OrderStatus.SA_PENDING,
    Stage.SB: OrderStatus.SB_PENDING,
    Stage.SC: OrderStatus.SC_PENDING,
    Stage.PACKAGING: OrderStatus.PACKAGING_PENDING,
    Stage.DISPATCH: OrderStatus.DISPATCH_YET,
}

# outcome name -> resulting status, per stage
STAGE_OUTCOMES: dict[Stage, dict[str, OrderStatus]] = {
    Stage.REVIEW: {'accept': OrderStatus.SA_PENDING, 'reject': OrderStatus.REJECTED},
    Stage.SA: {'pass': OrderStatus.SB_PENDING, 'fail': OrderStatus.SA_FAILED},
    Stage.SB: {'pass': OrderStatus.SC_PENDING, 'fail': OrderStatus.SB_FAILED},
    Stage.SC: {'pass': OrderStatus.PACKAGING_PENDING, 'fail': OrderStatus.SC_FAILED},
    Stage.PACKAGING: {'pass': OrderStatus.DISPATCH_YET, 'fail': OrderStatus.PACKAGING_FAILED},
    Stage.DISPATCH: {
        'delivered': OrderStatus.DISPATCH_REACHED,
        'failed': OrderStatus.DISPATCH_FAILED,
        'could_not': OrderStatus.DISPATCH_COULD_NOT,
    },
}

TRANSITIONS: dict[tuple[OrderStatus, Stage], frozenset[OrderStatus]] = {
    (STAGE_ENTRY_STATUS[stage], stage): frozenset(outcomes.values()) for stage, outcomes in STAGE_OUTCOMES.items()
}

# Valid enum members that no transition produces.
RESERVED_STATUSES = frozenset(
    {
        OrderStatus.ACCEPTED,
        OrderStatus.SA_DONE,
        OrderStatus.SB_DONE,
        OrderStatus.SC_DONE,
        OrderStatus.PACKAGING_DONE,
    }
)

TERMINAL_STATUSES = frozenset(
    status
    for status in OrderStatus
    if status not in RESERVED_STATUSES and not any(current == status for current, _ in TRANSITIONS)
)


@dataclass(frozen=True)
class AllowedAction:
    stage: Stage
    outcome: str
    target: OrderStatus


def parse_stage(raw: str | None) -> Stage:
    try:
        return Stage((raw or '').strip())
    except ValueError as exc:
        raise InvalidInputError(f'Unknown section: {raw}') from exc


def parse_status(raw: str | None) -> OrderStatus:
    try:
        return OrderStatus((raw or '').strip())
    except ValueError as exc:
        raise InvalidInputError(f'Unknown status: {raw}') from exc


def section_for_stage(stage: Stage) -> PortalSection:
    return STAGE_SECTIONS[stage]


def allowed_targets(current: OrderStatus, stage: Stage) -> frozenset[OrderStatus]:
    return TRANSITIONS.get((current, stage), frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: OrderStatus, stage: Stage, target: OrderStatus, *, strict: bool = True) -> None:
    """Raise InvalidTransitionError unless `stage` may move an order from `current` to `target`.

    With strict=False only the legacy contract applies: any known status may
    be written by any known stage.
    """
    if not strict:
        return
    if target not in allowed_targets(current, stage):
        raise InvalidTransitionError(current.value, stage.value, target.value)


def available_actions(current: OrderStatus, writable_sections: set[PortalSection]) -> list[AllowedAction]:
    actions = []
    for stage, outcomes in STAGE_OUTCOMES.items():
        if STAGE_ENTRY_STATUS[stage] != current or STAGE_SECTIONS[stage] not in writable_sections:
            continue
        actions.extend(AllowedAction(stage=stage, outcome=outcome, target=target) for outcome, target in outcomes.items())
    return actions
