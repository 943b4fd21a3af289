from __future__ import annotations

from datetime import datetime, timezone

from app.errors import InvalidInputError
from app.models import OrderStatus, PortalSection

# Stage rank of every status: review=0, sa=1, sb=2, sc=3, packaging=4, dispatch=5.
# "At or past stage X" is rank >= X.
STATUS_RANK: dict[OrderStatus, int] = {
    OrderStatus.NEW: 0,
    OrderStatus.ACCEPTED: 0,
    OrderStatus.REJECTED: 0,
    OrderStatus.SA_PENDING: 1,
    OrderStatus.SA_DONE: 1,
    OrderStatus.SA_FAILED: 1,
    OrderStatus.SB_PENDING: 2,
    OrderStatus.SB_DONE: 2,
    OrderStatus.SB_FAILED: 2,
    OrderStatus.SC_PENDING: 3,
    OrderStatus.SC_DONE: 3,
    OrderStatus.SC_FAILED: 3,
    OrderStatus.PACKAGING_PENDING: 4,
    OrderStatus.PACKAGING_DONE: 4,
    OrderStatus.PACKAGING_FAILED: 4,
    OrderStatus.DISPATCH_YET: 5,
    OrderStatus.DISPATCH_REACHED: 5,
    OrderStatus.DISPATCH_FAILED: 5,
    OrderStatus.DISPATCH_COULD_NOT: 5,
}

STATUS_PHASE: dict[OrderStatus, str] = {
    OrderStatus.NEW: 'NEW',
    OrderStatus.ACCEPTED: 'ACCEPTED',
    OrderStatus.REJECTED: 'REJECTED',
    OrderStatus.SA_PENDING: 'PENDING',
    OrderStatus.SA_DONE: 'DONE',
    OrderStatus.SA_FAILED: 'FAILED',
    OrderStatus.SB_PENDING: 'PENDING',
    OrderStatus.SB_DONE: 'DONE',
    OrderStatus.SB_FAILED: 'FAILED',
    OrderStatus.SC_PENDING: 'PENDING',
    OrderStatus.SC_DONE: 'DONE',
    OrderStatus.SC_FAILED: 'FAILED',
    OrderStatus.PACKAGING_PENDING: 'PENDING',
    OrderStatus.PACKAGING_DONE: 'DONE',
    OrderStatus.PACKAGING_FAILED: 'FAILED',
    OrderStatus.DISPATCH_YET: 'YET',
    OrderStatus.DISPATCH_REACHED: 'REACHED',
    OrderStatus.DISPATCH_FAILED: 'FAILED',
    OrderStatus.DISPATCH_COULD_NOT: 'COULD_NOT',
}

# (pending, done, failed) for the processing sections
_PROCESSING_SECTIONS: dict[PortalSection, tuple[OrderStatus, OrderStatus, OrderStatus]] = {
    PortalSection.SA: (OrderStatus.SA_PENDING, OrderStatus.SA_DONE, OrderStatus.SA_FAILED),
    PortalSection.SB: (OrderStatus.SB_PENDING, OrderStatus.SB_DONE, OrderStatus.SB_FAILED),
    PortalSection.SC: (OrderStatus.SC_PENDING, OrderStatus.SC_DONE, OrderStatus.SC_FAILED),
    PortalSection.PACKAGING: (
        OrderStatus.PACKAGING_PENDING,
        OrderStatus.PACKAGING_DONE,
        OrderStatus.PACKAGING_FAILED,
    ),
}

DEFAULT_FILTER_KEYS: dict[PortalSection, str] = {
    PortalSection.NEW_ORDERS: 'new',
    PortalSection.SA: 'pending',
    PortalSection.SB: 'pending',
    PortalSection.SC: 'pending',
    PortalSection.PACKAGING: 'pending',
    PortalSection.DISPATCHED: 'yet',
}


def _statuses(predicate) -> frozenset[OrderStatus]:
    return frozenset(status for status in OrderStatus if predicate(status))


def _build_section_filters() -> dict[PortalSection, dict[str, frozenset[OrderStatus]]]:
    filters: dict[PortalSection, dict[str, frozenset[OrderStatus]]] = {
        PortalSection.NEW_ORDERS: {
            'new': frozenset({OrderStatus.NEW}),
            'accepted': _statuses(
                lambda s: s == OrderStatus.ACCEPTED or STATUS_PHASE[s] in {'PENDING', 'DONE'}
            ),
            'rejected': frozenset({OrderStatus.REJECTED}),
            'all': frozenset(OrderStatus),
        },
        PortalSection.DISPATCHED: {
            'yet': frozenset({OrderStatus.DISPATCH_YET}),
            'reached': frozenset({OrderStatus.DISPATCH_REACHED}),
            'failed': frozenset({OrderStatus.DISPATCH_FAILED}),
            'could_not': frozenset({OrderStatus.DISPATCH_COULD_NOT}),
            'all': _statuses(lambda s: STATUS_RANK[s] == STATUS_RANK[OrderStatus.DISPATCH_YET]),
        },
    }
    for section, (pending, done, failed) in _PROCESSING_SECTIONS.items():
        rank = STATUS_RANK[pending]
        filters[section] = {
            'pending': frozenset({pending}),
            'done': frozenset({done}) | _statuses(lambda s, rank=rank: STATUS_RANK[s] > rank),
            'failed': frozenset({failed}),
            'all': _statuses(lambda s, rank=rank: STATUS_RANK[s] >= rank),
        }
    return filters


SECTION_FILTERS = _build_section_filters()


def parse_section(raw: str | None) -> PortalSection:
    try:
        section = PortalSection((raw or '').strip())
    except ValueError as exc:
        raise InvalidInputError(f'Unknown section: {raw}') from exc
    if section not in SECTION_FILTERS:
        raise InvalidInputError(f'Section {section.value} has no order view')
    return section


def filter_keys(section: PortalSection) -> list[str]:
    return list(SECTION_FILTERS[section])


def statuses_for(section: PortalSection, filter_key: str | None = None) -> frozenset[OrderStatus]:
    key = (filter_key or DEFAULT_FILTER_KEYS[section]).strip().lower()
    try:
        return SECTION_FILTERS[section][key]
    except KeyError as exc:
        raise InvalidInputError(f'Unknown filter {key!r} for section {section.value}') from exc


def matches(section: PortalSection, filter_key: str, status: OrderStatus) -> bool:
    return status in statuses_for(section, filter_key)


def _sort_timestamp(value: datetime | None) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def sort_for_section(section: PortalSection, rows: list[dict]) -> list[dict]:
    """Newest first; the review view additionally floats NEW orders to the top."""
    ordered = sorted(rows, key=lambda row: (_sort_timestamp(row['created_at']), row['id']), reverse=True)
    if section == PortalSection.NEW_ORDERS:
        ordered.sort(key=lambda row: row['status'] != OrderStatus.NEW)
    return ordered


def count_by_filter(section: PortalSection, statuses: list[OrderStatus]) -> dict[str, int]:
    return {key: sum(1 for status in statuses if status in members) for key, members in SECTION_FILTERS[section].items()}
