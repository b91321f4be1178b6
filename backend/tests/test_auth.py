"""
Unit tests for authentication helpers.
Tests JWT verification, organization lookup and lead-source ownership.
"""

import time

import pytest
import os
import jwt as pyjwt
from fastapi import HTTPException
from unittest.mock import MagicMock, Mock, patch

# Mock environment variables before importing app modules
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test.anon-key.signature")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test.service-key.signature")

from app.auth import (
    _verify_jwt_locally,
    get_current_user,
    get_user_organization_id,
    verify_lead_source_ownership,
)


def _make_admin_mock(user_rows, source_rows=None, source_error=None) -> MagicMock:
    """supabase_admin mock serving the users and lead_sources tables."""
    users = MagicMock()
    users.select.return_value = users
    users.eq.return_value = users
    users.limit.return_value = users
    users.execute.return_value = Mock(data=user_rows)

    sources = MagicMock()
    sources.select.return_value = sources
    sources.eq.return_value = sources
    if source_error is not None:
        sources.execute.side_effect = source_error
    else:
        sources.execute.return_value = Mock(data=source_rows or [])

    mock = MagicMock()
    mock.table.side_effect = lambda name: users if name == "users" else sources
    return mock


class TestGetCurrentUser:
    """Test JWT token verification and user extraction."""

    @pytest.mark.asyncio
    async def test_valid_token_returns_user_id(self):
        mock_token = "valid.jwt.token"

        with patch("app.auth.SUPABASE_JWT_SECRET", None), \
             patch("app.auth.supabase") as mock_supabase:
            mock_supabase.auth.get_user.return_value = Mock(user=Mock(id="user-123"))

            user_id = await get_current_user(f"Bearer {mock_token}")

            assert user_id == "user-123"
            mock_supabase.auth.get_user.assert_called_once_with(mock_token)

    @pytest.mark.asyncio
    async def test_missing_token_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)

        assert exc_info.value.status_code == 401
        assert "Not authenticated" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_missing_bearer_prefix_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("invalid.jwt.token")

        assert exc_info.value.status_code == 401
        assert "Invalid authentication" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_expired_token_raises_401(self):
        with patch("app.auth.SUPABASE_JWT_SECRET", None), \
             patch("app.auth.supabase") as mock_supabase:
            mock_supabase.auth.get_user.side_effect = Exception("Token expired")

            with pytest.raises(HTTPException) as exc_info:
                await get_current_user("Bearer expired.jwt.token")

            assert exc_info.value.status_code == 401
            assert "expired" in str(exc_info.value.detail).lower()

    @pytest.mark.asyncio
    async def test_no_user_in_response_raises_401(self):
        with patch("app.auth.SUPABASE_JWT_SECRET", None), \
             patch("app.auth.supabase") as mock_supabase:
            mock_supabase.auth.get_user.return_value = Mock(user=None)

            with pytest.raises(HTTPException) as exc_info:
                await get_current_user("Bearer valid.jwt.token")

            assert exc_info.value.status_code == 401
            assert "Invalid token" in str(exc_info.value.detail)


class TestGetUserOrganizationId:

    def test_returns_organization(self):
        with patch("app.auth.supabase_admin", _make_admin_mock([{"organization_id": "org-1"}])):
            assert get_user_organization_id("user-123") == "org-1"

    def test_no_user_row_raises_403(self):
        with patch("app.auth.supabase_admin", _make_admin_mock([])):
            with pytest.raises(HTTPException) as exc_info:
                get_user_organization_id("user-123")

        assert exc_info.value.status_code == 403

    def test_null_organization_raises_403(self):
        with patch("app.auth.supabase_admin", _make_admin_mock([{"organization_id": None}])):
            with pytest.raises(HTTPException) as exc_info:
                get_user_organization_id("user-123")

        assert exc_info.value.status_code == 403

    def test_database_error_raises_500(self):
        mock = MagicMock()
        mock.table.side_effect = Exception("Database error")
        with patch("app.auth.supabase_admin", mock):
            with pytest.raises(HTTPException) as exc_info:
                get_user_organization_id("user-123")

        assert exc_info.value.status_code == 500


class TestVerifyLeadSourceOwnership:
    """Lead sources are scoped to the user's organization."""

    @pytest.mark.asyncio
    async def test_same_organization_returns_source(self):
        source = {"id": "source-123", "organization_id": "org-1", "field_mapping": None}
        mock = _make_admin_mock([{"organization_id": "org-1"}], [source])

        with patch("app.auth.supabase_admin", mock):
            result = await verify_lead_source_ownership("source-123", "user-123")

        assert result == source

    @pytest.mark.asyncio
    async def test_source_not_found_raises_404(self):
        mock = _make_admin_mock([{"organization_id": "org-1"}], [])

        with patch("app.auth.supabase_admin", mock):
            with pytest.raises(HTTPException) as exc_info:
                await verify_lead_source_ownership("missing", "user-123")

        assert exc_info.value.status_code == 404
        assert "Lead source not found" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_other_organization_raises_403(self):
        source = {"id": "source-123", "organization_id": "org-2"}
        mock = _make_admin_mock([{"organization_id": "org-1"}], [source])

        with patch("app.auth.supabase_admin", mock):
            with pytest.raises(HTTPException) as exc_info:
                await verify_lead_source_ownership("source-123", "user-123")

        assert exc_info.value.status_code == 403
        assert "not authorized" in str(exc_info.value.detail).lower()

    @pytest.mark.asyncio
    async def test_database_error_raises_500(self):
        mock = _make_admin_mock(
            [{"organization_id": "org-1"}], source_error=Exception("Database error")
        )

        with patch("app.auth.supabase_admin", mock):
            with pytest.raises(HTTPException) as exc_info:
                await verify_lead_source_ownership("source-123", "user-123")

        assert exc_info.value.status_code == 500
        assert "Failed to verify ownership" in str(exc_info.value.detail)


class TestVerifyJwtLocally:
    """
    Local HS256 verification with a real token signed inline with PyJWT.
    """

    TEST_SECRET = "test-jwt-secret-for-unit-tests"

    def _make_token(self, payload: dict) -> str:
        return pyjwt.encode(payload, self.TEST_SECRET, algorithm="HS256")

    def test_valid_token_returns_user_id(self):
        token = self._make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})

        with patch("app.auth.SUPABASE_JWT_SECRET", self.TEST_SECRET):
            assert _verify_jwt_locally(token) == "user-abc"

    def test_expired_token_raises_401(self):
        token = self._make_token({"sub": "user-abc", "exp": int(time.time()) - 10})

        with patch("app.auth.SUPABASE_JWT_SECRET", self.TEST_SECRET):
            with pytest.raises(HTTPException) as exc_info:
                _verify_jwt_locally(token)

        assert exc_info.value.status_code == 401
        assert "expired" in str(exc_info.value.detail).lower()

    def test_invalid_signature_raises_401(self):
        token = self._make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})

        with patch("app.auth.SUPABASE_JWT_SECRET", "wrong-secret"):
            with pytest.raises(HTTPException) as exc_info:
                _verify_jwt_locally(token)

        assert exc_info.value.status_code == 401
        assert "Invalid token" in str(exc_info.value.detail)

    def test_missing_sub_claim_raises_401(self):
        token = self._make_token({"role": "authenticated", "exp": int(time.time()) + 3600})

        with patch("app.auth.SUPABASE_JWT_SECRET", self.TEST_SECRET):
            with pytest.raises(HTTPException) as exc_info:
                _verify_jwt_locally(token)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_get_current_user_uses_local_path_when_secret_set(self):
        token = self._make_token({"sub": "user-abc", "exp": int(time.time()) + 3600})

        with patch("app.auth.SUPABASE_JWT_SECRET", self.TEST_SECRET), \
             patch("app.auth.supabase") as mock_supabase:
            assert await get_current_user(f"Bearer {token}") == "user-abc"
            mock_supabase.auth.get_user.assert_not_called()
