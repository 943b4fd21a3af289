from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import select

from app.errors import ConflictError, InvalidInputError, NotFoundError, PermissionDeniedError
from app.models import AuditLog, ComplaintStatus, OrderStatus, PortalSection
from app.services.complaint_service import list_complaints, raise_complaint, resolve_complaint
from app.services.order_service import list_orders, submit_order
from tests.support import ALL_WRITE, RO, RW, add_user, make_session_factory, pouch_items


class ComplaintServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = add_user(self.db, 'admin@example.com', ALL_WRITE)
        self.packer = add_user(self.db, 'packer@example.com', {PortalSection.PACKAGING: RW})
        self.order = submit_order(
            self.db, principal=self.admin, customer_name='Ram', customer_phone='9800000000', items=pouch_items()
        )

    def tearDown(self) -> None:
        self.db.close()

    def _raise(self, principal=None, section='packaging') -> dict:
        return raise_complaint(
            self.db,
            principal=principal or self.packer,
            order_id=self.order['id'],
            section=section,
            description='Seal is torn',
        )

    def test_raise_creates_open_complaint(self) -> None:
        complaint = self._raise()
        self.assertEqual(complaint['status'], ComplaintStatus.OPEN)
        self.assertEqual(complaint['order']['customer_name'], 'Ram')
        self.assertEqual(complaint['created_by']['email'], 'packer@example.com')
        self.assertIsNone(complaint['resolved_by'])
        self.assertIsNone(complaint['resolved_at'])

        actions = self.db.execute(select(AuditLog.action).order_by(AuditLog.id)).scalars().all()
        self.assertEqual(actions, ['ORDER_SUBMITTED', 'COMPLAINT_RAISED'])

    def test_raise_does_not_touch_order_status(self) -> None:
        self._raise()
        orders = list_orders(self.db, principal=self.admin)
        self.assertEqual(orders[0]['status'], OrderStatus.NEW)

    def test_raise_requires_write_on_complained_section(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            self._raise(section='sb')

    def test_raise_validates_input(self) -> None:
        with self.assertRaises(InvalidInputError):
            self._raise(section='warehouse')
        with self.assertRaises(InvalidInputError):
            raise_complaint(self.db, principal=self.packer, order_id=self.order['id'], section='packaging', description=' ')
        with self.assertRaises(NotFoundError):
            raise_complaint(self.db, principal=self.packer, order_id=999, section='packaging', description='x')

    def test_resolve_stamps_once(self) -> None:
        complaint = self._raise()
        resolved_at = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        with patch('app.services.complaint_service._now', return_value=resolved_at):
            resolved = resolve_complaint(self.db, principal=self.admin, complaint_id=complaint['id'])

        self.assertEqual(resolved['status'], ComplaintStatus.RESOLVED)
        self.assertEqual(resolved['resolved_by']['email'], 'admin@example.com')
        self.assertEqual(resolved['resolved_at'].replace(tzinfo=None), resolved_at.replace(tzinfo=None))

        second_resolver = add_user(self.db, 'desk@example.com', {PortalSection.COMPLAINTS: RW})
        with self.assertRaises(ConflictError):
            resolve_complaint(self.db, principal=second_resolver, complaint_id=complaint['id'])

        again = list_complaints(self.db, status_filter='resolved')
        self.assertEqual(again[0]['resolved_by']['email'], 'admin@example.com')

    def test_resolve_requires_complaints_write(self) -> None:
        complaint = self._raise()
        reader = add_user(self.db, 'reader@example.com', {PortalSection.COMPLAINTS: RO})
        with self.assertRaises(PermissionDeniedError):
            resolve_complaint(self.db, principal=reader, complaint_id=complaint['id'])

    def test_resolve_only_accepts_resolved_status(self) -> None:
        complaint = self._raise()
        with self.assertRaises(InvalidInputError):
            resolve_complaint(self.db, principal=self.admin, complaint_id=complaint['id'], status='open')
        with self.assertRaises(NotFoundError):
            resolve_complaint(self.db, principal=self.admin, complaint_id=999)

    def test_list_filters_by_status(self) -> None:
        first = self._raise()
        self._raise(principal=self.admin, section='newOrders')
        resolve_complaint(self.db, principal=self.admin, complaint_id=first['id'])

        self.assertEqual(len(list_complaints(self.db)), 2)
        self.assertEqual([c['section'] for c in list_complaints(self.db, status_filter='open')], ['newOrders'])
        self.assertEqual([c['id'] for c in list_complaints(self.db, status_filter='resolved')], [first['id']])
        with self.assertRaises(InvalidInputError):
            list_complaints(self.db, status_filter='closed')


if __name__ == '__main__':
    unittest.main()
