"""Unit tests for reading the authenticated user from the session."""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from core.auth import get_user_id_from_request, require_auth

pytestmark = pytest.mark.unit


def _request(session: dict | None) -> MagicMock:
    request = MagicMock()
    request.scope = {} if session is None else {"session": session}
    request.session = session or {}
    request.state = MagicMock(spec=[])
    return request


class TestGetUserIdFromRequest:
    def test_no_session_middleware(self):
        assert get_user_id_from_request(_request(None)) is None

    def test_anonymous_session(self):
        assert get_user_id_from_request(_request({})) is None

    @pytest.mark.parametrize("raw", [7, "7"])
    def test_user_id_is_coerced(self, raw):
        assert get_user_id_from_request(_request({"user_id": raw})) == 7

    def test_malformed_user_id_is_ignored(self):
        assert get_user_id_from_request(_request({"user_id": "abc"})) is None


class TestRequireAuth:
    def test_raises_401_when_anonymous(self):
        with pytest.raises(HTTPException) as exc_info:
            require_auth(_request({}))
        assert exc_info.value.status_code == 401

    def test_sets_request_state(self):
        request = _request({"user_id": 9})

        assert require_auth(request) == 9
        assert request.state.user_id == 9
