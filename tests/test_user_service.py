from __future__ import annotations

import unittest

from sqlalchemy import select

from app.errors import InvalidInputError, NotFoundError
from app.models import AuditLog, PermissionLevel, PortalSection, UserRole
from app.security.passwords import verify_password
from app.security.sessions import create_api_token, load_principal_from_token, revoke_api_token
from app.services.user_service import create_user, parse_permissions, permission_matrix, update_user_access
from tests.support import ALL_WRITE, RO, add_user, make_session_factory


class UserServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = add_user(self.db, 'admin@example.com', ALL_WRITE, role=UserRole.ADMIN)

    def tearDown(self) -> None:
        self.db.close()

    def test_create_user_normalizes_email_and_hashes_password(self) -> None:
        user = create_user(self.db, email=' Floor@Example.com ', full_name='Floor', password='long-enough')
        self.assertEqual(user.email, 'floor@example.com')
        self.assertNotEqual(user.password_hash, 'long-enough')
        valid, _ = verify_password('long-enough', user.password_hash)
        self.assertTrue(valid)

        with self.assertRaises(InvalidInputError):
            create_user(self.db, email='floor@example.com', full_name='Again', password='long-enough')
        with self.assertRaises(InvalidInputError):
            create_user(self.db, email='short@example.com', full_name='Short', password='short')

    def test_missing_permission_rows_read_as_no_access(self) -> None:
        user = add_user(self.db, 'reader@example.com', {PortalSection.SA: RO})
        matrix = permission_matrix(self.db, user.id)
        self.assertEqual(matrix[PortalSection.SA], PermissionLevel.READ_ONLY)
        self.assertEqual(matrix[PortalSection.COMPLAINTS], PermissionLevel.NO_ACCESS)
        self.assertEqual(set(matrix), set(PortalSection))

    def test_parse_permissions_rejects_unknown_values(self) -> None:
        self.assertEqual(parse_permissions({'sc': 'read_write'}), {PortalSection.SC: PermissionLevel.READ_WRITE})
        with self.assertRaises(InvalidInputError):
            parse_permissions({'warehouse': 'read_only'})
        with self.assertRaises(InvalidInputError):
            parse_permissions({'sa': 'write'})

    def test_update_user_access_is_audited(self) -> None:
        user = add_user(self.db, 'reader@example.com', {PortalSection.SA: RO})
        updated = update_user_access(
            self.db,
            actor_user_id=self.admin.id,
            user_id=user.id,
            permissions={'sa': 'read_write'},
            role='admin',
        )
        self.assertEqual(updated['permissions']['sa'], 'read_write')
        self.assertEqual(updated['role'], UserRole.ADMIN)

        actions = self.db.execute(select(AuditLog.action)).scalars().all()
        self.assertEqual(actions, ['USER_ACCESS_UPDATED'])

        with self.assertRaises(InvalidInputError):
            update_user_access(self.db, actor_user_id=self.admin.id, user_id=self.admin.id, active=False)
        with self.assertRaises(NotFoundError):
            update_user_access(self.db, actor_user_id=self.admin.id, user_id=999)


class ApiTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.user = add_user(self.db, 'staff@example.com', {PortalSection.SB: RO})

    def tearDown(self) -> None:
        self.db.close()

    def test_token_resolves_to_principal_until_revoked(self) -> None:
        token = create_api_token(self.db, self.user.id, ip='127.0.0.1', user_agent='tests').token
        principal = load_principal_from_token(self.db, token)
        self.assertEqual(principal.email, 'staff@example.com')
        self.assertTrue(principal.can_read(PortalSection.SB))
        self.assertFalse(principal.can_write(PortalSection.SB))

        revoke_api_token(self.db, token)
        self.assertIsNone(load_principal_from_token(self.db, token))
        self.assertIsNone(load_principal_from_token(self.db, 'unknown'))
        self.assertIsNone(load_principal_from_token(self.db, None))


if __name__ == '__main__':
    unittest.main()
