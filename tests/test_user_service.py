from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from ordering_portal.models import AuthEvent, UserRole, WebSession
from ordering_portal.security.sessions import create_web_session, load_principal_from_token, revoke_web_session
from ordering_portal.services.user_service import (
    PermissionDeniedError,
    RegistrationError,
    authenticate,
    register_distributor_user,
    register_store_user,
    register_supermarket,
)
from db_helpers import add_distributor, add_store, make_session_factory


class RegistrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.main_store = add_store(self.db, name='Hyannis', code='HYA')
        self.branch = add_store(self.db, name='Falmouth', code='FAL')
        self.distributor = add_distributor(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_first_user_belongs_to_main_store(self) -> None:
        user = register_supermarket(self.db, username='gol', password='admin123')
        self.assertEqual(user.role, UserRole.SUPERMARKET)
        self.assertEqual(user.store_id, self.main_store.id)
        self.assertNotEqual(user.password_hash, 'admin123')

    def test_supermarket_registration_closes_after_first_user(self) -> None:
        register_supermarket(self.db, username='gol', password='admin123')
        with self.assertRaises(PermissionDeniedError):
            register_supermarket(self.db, username='gol2', password='admin123')

    def test_store_user_rules(self) -> None:
        user = register_store_user(self.db, username='gol.fal', password='admin123', store_id=self.branch.id)
        self.assertEqual(user.store_id, self.branch.id)
        with self.assertRaisesRegex(RegistrationError, 'already exists'):
            register_store_user(self.db, username='gol.fal', password='admin123', store_id=self.branch.id)
        with self.assertRaisesRegex(RegistrationError, 'main store'):
            register_store_user(self.db, username='gol.hya', password='admin123', store_id=self.main_store.id)
        with self.assertRaisesRegex(ValueError, 'Store not found'):
            register_store_user(self.db, username='gol.x', password='admin123', store_id=999)

    def test_short_password_rejected(self) -> None:
        with self.assertRaises(RegistrationError):
            register_distributor_user(self.db, username='atl', password='123', distributor_id=self.distributor.id)

    def test_distributor_user(self) -> None:
        user = register_distributor_user(self.db, username='atl', password='secret1', distributor_id=self.distributor.id)
        self.assertEqual(user.role, UserRole.DISTRIBUTOR)
        self.assertEqual(user.distributor_id, self.distributor.id)
        self.assertIsNone(user.store_id)


class AuthenticateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        store = add_store(self.db)
        self.user = register_supermarket(self.db, username='gol', password='admin123', store_id=store.id)

    def tearDown(self) -> None:
        self.db.close()

    def _events(self) -> list[AuthEvent]:
        self.db.flush()
        return self.db.execute(select(AuthEvent).order_by(AuthEvent.id)).scalars().all()

    def test_success_and_failures_are_recorded(self) -> None:
        self.assertIsNotNone(authenticate(self.db, username='gol', password='admin123', ip='10.0.0.1', user_agent='ua'))
        self.assertIsNone(authenticate(self.db, username='gol', password='nope', ip=None, user_agent=None))
        self.assertIsNone(authenticate(self.db, username='ghost', password='x', ip=None, user_agent=None))
        self.assertEqual(
            [(event.success, event.failure_reason) for event in self._events()],
            [(True, None), (False, 'BAD_PASSWORD'), (False, 'UNKNOWN_USERNAME')],
        )

    def test_inactive_user_cannot_log_in(self) -> None:
        self.user.active = False
        self.assertIsNone(authenticate(self.db, username='gol', password='admin123', ip=None, user_agent=None))
        self.assertEqual(self._events()[-1].failure_reason, 'INACTIVE_USER')


class WebSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        store = add_store(self.db)
        self.user = register_supermarket(self.db, username='gol', password='admin123', store_id=store.id)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_token_round_trip_and_revocation(self) -> None:
        token = create_web_session(self.db, self.user.id, ip='10.0.0.1', user_agent='ua')
        self.db.commit()

        principal = load_principal_from_token(self.db, token)
        self.assertEqual(principal.username, 'gol')
        self.assertEqual(principal.store_id, self.user.store_id)

        revoke_web_session(self.db, token)
        self.db.commit()
        self.assertIsNone(load_principal_from_token(self.db, token))

    def test_expired_and_unknown_tokens(self) -> None:
        token = create_web_session(self.db, self.user.id, ip=None, user_agent=None)
        web_session = self.db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one()
        web_session.expires_at = datetime.now(tz=timezone.utc) - timedelta(minutes=1)
        self.db.commit()
        self.db.expire_all()

        self.assertIsNone(load_principal_from_token(self.db, token))
        self.assertIsNone(load_principal_from_token(self.db, 'not-a-token'))
        self.assertIsNone(load_principal_from_token(self.db, None))


if __name__ == '__main__':
    unittest.main()
