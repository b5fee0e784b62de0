"""会话凭证守卫测试"""

import threading
import time
from unittest.mock import Mock

import pytest

from table_api.client.session import RenewedSession
from table_api.exceptions import (
    AuthorizationDenied, AuthorizationExpired, NetworkFailure, NotFound, ServerError,
)
from table_sync.core.credential_guard import CredentialGuard, Session


def expired() -> AuthorizationExpired:
    return AuthorizationExpired("API Error 401: 1301: Access token expired", status_code=401,
                                errors=[{'code': 1301, 'message': 'Access token expired'}])


class TestSession:
    """会话凭证测试类"""

    def test_replace_keeps_refresh_token(self):
        session = Session("old", "refresh")
        session.replace("new")

        assert session.current_credential() == "new"
        assert session.refresh_token == "refresh"

    def test_replace_both_tokens(self):
        session = Session("old", "refresh")
        session.replace("new", "refresh-2")

        assert session.refresh_token == "refresh-2"


class TestCredentialGuard:
    """凭证守卫测试类"""

    @pytest.fixture
    def session(self) -> Session:
        return Session("old-token", "refresh-token")

    @pytest.fixture
    def renew(self) -> Mock:
        return Mock(return_value=RenewedSession("new-token"))

    @pytest.fixture
    def guard(self, session, renew) -> CredentialGuard:
        return CredentialGuard(session, renew)

    def test_success_uses_session_token(self, guard, renew):
        operation = Mock(return_value="ok")

        assert guard.call(operation) == "ok"
        operation.assert_called_once_with("old-token")
        renew.assert_not_called()

    def test_expired_once_renews_and_replays(self, guard, session, renew):
        """过期一次后续期并重放，只续期一次"""
        operation = Mock(side_effect=[expired(), "ok"])

        assert guard.call(operation) == "ok"

        renew.assert_called_once_with("refresh-token")
        assert [c.args[0] for c in operation.call_args_list] == ["old-token", "new-token"]
        assert session.current_credential() == "new-token"
        assert guard.renewals == 1

    def test_replay_failure_returned_without_second_renewal(self, guard, renew):
        """重放仍然失败时直接抛出第二次的错误"""
        second = expired()
        operation = Mock(side_effect=[expired(), second])

        with pytest.raises(AuthorizationExpired) as exc_info:
            guard.call(operation)

        assert exc_info.value is second
        assert renew.call_count == 1
        assert operation.call_count == 2

    def test_replay_other_failure_passed_through(self, guard):
        operation = Mock(side_effect=[expired(), NotFound("gone", status_code=404)])

        with pytest.raises(NotFound):
            guard.call(operation)

    def test_explicit_token_not_renewed(self, guard, renew):
        """显式传入凭证时不续期"""
        original = expired()
        operation = Mock(side_effect=original)

        with pytest.raises(AuthorizationDenied) as exc_info:
            guard.call(operation, access_token="explicit")

        assert exc_info.value.__cause__ is original
        assert exc_info.value.status_code == 401
        operation.assert_called_once_with("explicit")
        renew.assert_not_called()

    def test_renewal_failure_surfaces_denied(self, session, renew):
        original = expired()
        renew.side_effect = ServerError("API Error 500", status_code=500)
        guard = CredentialGuard(session, renew)
        operation = Mock(side_effect=original)

        with pytest.raises(AuthorizationDenied) as exc_info:
            guard.call(operation)

        assert exc_info.value.__cause__ is original
        assert exc_info.value.errors == original.errors
        assert operation.call_count == 1
        assert session.current_credential() == "old-token"
        assert guard.renewals == 0

    def test_failed_renewal_not_repeated_until_cleared(self, session, renew):
        """续期失败后同一刷新凭证不再续期，清除记录后才重试"""
        renew.side_effect = AuthorizationDenied("API Error 403", status_code=403)
        guard = CredentialGuard(session, renew)

        for _ in range(3):
            with pytest.raises(AuthorizationDenied):
                guard.call(Mock(side_effect=expired()))

        assert renew.call_count == 1
        assert guard.renewal_failures == 1

        guard.clear_renewal_failure()
        renew.side_effect = None
        operation = Mock(side_effect=[expired(), "ok"])

        assert guard.call(operation) == "ok"
        assert renew.call_count == 2
        assert guard.renewals == 1

    def test_no_refresh_token(self, renew):
        guard = CredentialGuard(Session("old-token"), renew)

        with pytest.raises(AuthorizationDenied):
            guard.call(Mock(side_effect=expired()))

        renew.assert_not_called()

    @pytest.mark.parametrize("error", [
        NetworkFailure("connection refused"),
        NotFound("gone", status_code=404),
        ServerError("boom", status_code=500),
    ])
    def test_other_failures_pass_through(self, guard, renew, error):
        operation = Mock(side_effect=error)

        with pytest.raises(type(error)):
            guard.call(operation)

        operation.assert_called_once()
        renew.assert_not_called()

    def test_session_renewed_hook(self, session, renew):
        hook = Mock()
        guard = CredentialGuard(session, renew, on_session_renewed=hook)

        guard.call(Mock(side_effect=[expired(), "ok"]))

        hook.assert_called_once_with(session)

    def test_concurrent_callers_share_one_renewal(self, session):
        """并发调用方同时遇到过期时只续期一次"""
        barrier = threading.Barrier(4)

        def slow_renew(refresh_token):
            time.sleep(0.05)
            return RenewedSession("new-token")

        renew = Mock(side_effect=slow_renew)
        guard = CredentialGuard(session, renew)

        def operation(token):
            if token == "old-token":
                barrier.wait(timeout=5)
                raise expired()
            return token

        results = []
        errors = []

        def worker():
            try:
                results.append(guard.call(operation))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        assert results == ["new-token"] * 4
        assert renew.call_count == 1
