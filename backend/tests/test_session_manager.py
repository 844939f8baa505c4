"""
Tests for session creation, lookup, expiry and the session cookie.
"""
from datetime import timedelta
from http.cookies import SimpleCookie

from heat.models import UserSession
from heat.services.session_manager import (
    cleanup_expired_sessions,
    create_session,
    create_session_cookie,
    delete_session,
    delete_session_cookie,
    delete_user_sessions,
    format_cookie_expires,
    generate_session_id,
    get_session,
    get_user_from_session,
)
from heat.utils.common import utcnow


def parse_cookie(header):
    cookie = SimpleCookie()
    cookie.load(header)
    return cookie


class TestSessionLifecycle:

    def test_session_ids_are_unique_and_url_safe(self):
        ids = {generate_session_id() for _ in range(50)}
        assert len(ids) == 50
        assert all("/" not in i and "+" not in i for i in ids)

    def test_create_and_get_session(self, db, make_user):
        user = make_user()
        session = create_session(db, user.id)

        found = get_session(db, session.id)
        assert found is not None
        assert found.user_id == user.id
        assert get_user_from_session(db, found).id == user.id

        expected = utcnow() + timedelta(days=30)
        assert abs((session.expires_at - expected).total_seconds()) < 5

    def test_unknown_or_empty_id_is_none(self, db):
        assert get_session(db, "") is None
        assert get_session(db, "does-not-exist") is None

    def test_expired_session_is_none(self, db, make_user):
        user = make_user()
        session = create_session(db, user.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        assert get_session(db, session.id) is None

    def test_delete_session(self, db, make_user):
        user = make_user()
        session = create_session(db, user.id)
        delete_session(db, session.id)
        assert get_session(db, session.id) is None

    def test_user_may_hold_many_sessions(self, db, make_user):
        user = make_user()
        first = create_session(db, user.id)
        second = create_session(db, user.id)
        assert get_session(db, first.id) and get_session(db, second.id)

        assert delete_user_sessions(db, user.id) == 2
        assert get_session(db, first.id) is None

    def test_cleanup_removes_only_expired(self, db, make_user):
        user = make_user()
        live = create_session(db, user.id)
        stale = create_session(db, user.id)
        stale.expires_at = utcnow() - timedelta(days=1)
        db.commit()

        assert cleanup_expired_sessions(db) == 1
        remaining = [s.id for s in db.query(UserSession).all()]
        assert remaining == [live.id]


class TestSessionCookie:

    def test_cookie_attributes(self, db, make_user):
        user = make_user()
        session = create_session(db, user.id)
        header = create_session_cookie(session.id, session.expires_at, secure=True)

        morsel = parse_cookie(header)["session_id"]
        assert morsel.value == session.id
        assert morsel["path"] == "/"
        assert morsel["httponly"] is True
        assert morsel["samesite"] == "Lax"
        assert morsel["secure"] is True
        assert morsel["expires"] == format_cookie_expires(session.expires_at)

    def test_insecure_cookie_omits_secure(self):
        header = create_session_cookie("abc", utcnow(), secure=False)
        assert "Secure" not in header

    def test_delete_cookie_expires_immediately(self):
        header = delete_session_cookie(secure=False)
        morsel = parse_cookie(header)["session_id"]
        assert morsel.value == ""
        assert morsel["max-age"] == "0"
