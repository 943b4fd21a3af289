from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from app.errors import InvalidInputError
from app.models import OrderStatus, PortalSection
from app.services.order_filter_service import (
    STATUS_PHASE,
    STATUS_RANK,
    count_by_filter,
    filter_keys,
    matches,
    parse_section,
    sort_for_section,
    statuses_for,
)

# Substring predicates used by the legacy section views.
LEGACY_PREDICATES = {
    PortalSection.NEW_ORDERS: {
        'new': lambda s: s == 'NEW',
        'accepted': lambda s: s == 'ACCEPTED' or 'PENDING' in s or 'DONE' in s,
        'rejected': lambda s: s == 'REJECTED',
        'all': lambda s: True,
    },
    PortalSection.SA: {
        'pending': lambda s: s == 'SA_PENDING',
        'done': lambda s: s == 'SA_DONE' or 'SB_' in s or 'SC_' in s or 'PACKAGING' in s or 'DISPATCH' in s,
        'failed': lambda s: s == 'SA_FAILED',
        'all': lambda s: 'SA_' in s or 'SB_' in s or 'SC_' in s or 'PACKAGING' in s or 'DISPATCH' in s,
    },
    PortalSection.SB: {
        'pending': lambda s: s == 'SB_PENDING',
        'done': lambda s: s == 'SB_DONE' or 'SC_' in s or 'PACKAGING' in s or 'DISPATCH' in s,
        'failed': lambda s: s == 'SB_FAILED',
        'all': lambda s: 'SB_' in s or 'SC_' in s or 'PACKAGING' in s or 'DISPATCH' in s,
    },
    PortalSection.SC: {
        'pending': lambda s: s == 'SC_PENDING',
        'done': lambda s: s == 'SC_DONE' or 'PACKAGING' in s or 'DISPATCH' in s,
        'failed': lambda s: s == 'SC_FAILED',
        'all': lambda s: 'SC_' in s or 'PACKAGING' in s or 'DISPATCH' in s,
    },
    PortalSection.PACKAGING: {
        'pending': lambda s: s == 'PACKAGING_PENDING',
        'done': lambda s: s == 'PACKAGING_DONE' or 'DISPATCH' in s,
        'failed': lambda s: s == 'PACKAGING_FAILED',
        'all': lambda s: 'PACKAGING' in s or 'DISPATCH' in s,
    },
    PortalSection.DISPATCHED: {
        'yet': lambda s: s == 'DISPATCH_YET',
        'reached': lambda s: s == 'DISPATCH_REACHED',
        'failed': lambda s: s == 'DISPATCH_FAILED',
        'could_not': lambda s: s == 'DISPATCH_COULD_NOT',
        'all': lambda s: 'DISPATCH' in s,
    },
}


class SectionFilterTests(unittest.TestCase):
    def test_every_status_has_rank_and_phase(self) -> None:
        self.assertEqual(set(STATUS_RANK), set(OrderStatus))
        self.assertEqual(set(STATUS_PHASE), set(OrderStatus))
        self.assertEqual(STATUS_PHASE[OrderStatus.NEW], 'NEW')
        self.assertEqual(STATUS_PHASE[OrderStatus.SB_FAILED], 'FAILED')
        self.assertEqual(STATUS_PHASE[OrderStatus.DISPATCH_COULD_NOT], 'COULD_NOT')

    def test_filters_match_legacy_string_predicates(self) -> None:
        for section, predicates in LEGACY_PREDICATES.items():
            self.assertEqual(set(filter_keys(section)), set(predicates))
            for key, predicate in predicates.items():
                expected = {status for status in OrderStatus if predicate(status.value)}
                self.assertEqual(set(statuses_for(section, key)), expected, f'{section.value}/{key}')

    def test_dispatch_yet_is_not_counted_as_accepted(self) -> None:
        self.assertFalse(matches(PortalSection.NEW_ORDERS, 'accepted', OrderStatus.DISPATCH_YET))
        self.assertTrue(matches(PortalSection.NEW_ORDERS, 'accepted', OrderStatus.PACKAGING_PENDING))

    def test_later_failures_count_as_done_for_earlier_sections(self) -> None:
        self.assertTrue(matches(PortalSection.SB, 'done', OrderStatus.SC_FAILED))
        self.assertFalse(matches(PortalSection.SB, 'done', OrderStatus.SA_FAILED))

    def test_default_filter_per_section(self) -> None:
        self.assertEqual(statuses_for(PortalSection.NEW_ORDERS), {OrderStatus.NEW})
        self.assertEqual(statuses_for(PortalSection.SC), {OrderStatus.SC_PENDING})
        self.assertEqual(statuses_for(PortalSection.DISPATCHED), {OrderStatus.DISPATCH_YET})

    def test_unknown_filter_or_section(self) -> None:
        with self.assertRaises(InvalidInputError):
            statuses_for(PortalSection.SA, 'yet')
        with self.assertRaises(InvalidInputError):
            parse_section('complaints')
        with self.assertRaises(InvalidInputError):
            parse_section('warehouse')
        self.assertEqual(parse_section('sb'), PortalSection.SB)


class SortAndCountTests(unittest.TestCase):
    def test_review_view_floats_new_orders(self) -> None:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        rows = [
            {'id': 1, 'status': OrderStatus.NEW, 'created_at': base},
            {'id': 2, 'status': OrderStatus.REJECTED, 'created_at': base + timedelta(hours=2)},
            {'id': 3, 'status': OrderStatus.NEW, 'created_at': base + timedelta(hours=1)},
        ]
        self.assertEqual([row['id'] for row in sort_for_section(PortalSection.NEW_ORDERS, rows)], [3, 1, 2])
        self.assertEqual([row['id'] for row in sort_for_section(PortalSection.SA, rows)], [2, 3, 1])

    def test_count_by_filter(self) -> None:
        counts = count_by_filter(
            PortalSection.SB,
            [OrderStatus.SB_PENDING, OrderStatus.SB_PENDING, OrderStatus.SB_FAILED, OrderStatus.DISPATCH_YET, OrderStatus.NEW],
        )
        self.assertEqual(counts, {'pending': 2, 'done': 1, 'failed': 1, 'all': 4})


if __name__ == '__main__':
    unittest.main()
