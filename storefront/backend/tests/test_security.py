"""Tests for storefront.backend.core.security and the auth dependencies."""
import time
from unittest.mock import patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from storefront.backend.api.deps import get_current_admin, require_permission
from storefront.backend.core.config import get_web_settings
from storefront.backend.core.security import decode_token

from .conftest import issue_token, make_admin


def _bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestJWTTokens:
    """JWT token creation and validation."""

    def test_issue_token(self):
        token = issue_token("admin-7", "ops")
        assert isinstance(token, str)
        assert len(token) > 0

    def test_decode_valid_access_token(self):
        token = issue_token("admin-7", "ops", role="manager", permissions=["users:export"])
        payload = decode_token(token)
        assert payload is not None
        assert payload["sub"] == "admin-7"
        assert payload["username"] == "ops"
        assert payload["role"] == "manager"
        assert payload["permissions"] == ["users:export"]
        assert payload["type"] == "access"

    def test_decode_invalid_token(self):
        assert decode_token("invalid.token.here") is None

    def test_decode_empty_token(self):
        assert decode_token("") is None

    def test_wrong_secret_rejected(self):
        token = jwt.encode({"sub": "admin-7", "type": "access"}, "another-secret", algorithm="HS256")
        assert decode_token(token) is None

    def test_expired_token_rejected(self):
        settings = get_web_settings()
        token = jwt.encode(
            {"sub": "admin-7", "type": "access", "exp": int(time.time()) - 60},
            settings.secret_key, algorithm=settings.jwt_algorithm,
        )
        assert decode_token(token) is None

    def test_access_token_contains_iat(self):
        payload = decode_token(issue_token("admin-7", "ops"))
        assert "iat" in payload
        assert "exp" in payload
        assert payload["exp"] > payload["iat"]

    def test_token_expiry_is_in_future(self):
        payload = decode_token(issue_token("admin-7", "ops"))
        assert payload["exp"] > time.time()


class TestCurrentAdmin:
    """get_current_admin resolves the bearer token."""

    @pytest.mark.asyncio
    async def test_permissions_parsed(self):
        token = issue_token(
            "admin-7", "ops", role="support",
            permissions=["users:bulk_operations", "users:export", "garbage"],
        )
        admin = await get_current_admin(_bearer(token))
        assert admin.admin_id == "admin-7"
        assert admin.username == "ops"
        assert admin.role == "support"
        assert admin.permissions == {("users", "bulk_operations"), ("users", "export")}

    @pytest.mark.asyncio
    async def test_invalid_token_is_401(self):
        with pytest.raises(HTTPException) as exc:
            await get_current_admin(_bearer("nope"))
        assert exc.value.status_code == 401
        assert exc.value.detail["code"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_refresh_type_rejected(self):
        settings = get_web_settings()
        token = jwt.encode(
            {"sub": "admin-7", "type": "refresh", "exp": int(time.time()) + 60},
            settings.secret_key, algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(HTTPException) as exc:
            await get_current_admin(_bearer(token))
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_subject_is_403(self):
        with patch("storefront.backend.api.deps.decode_token", return_value={"type": "access"}):
            with pytest.raises(HTTPException) as exc:
                await get_current_admin(_bearer("anything"))
        assert exc.value.status_code == 403
        assert exc.value.detail["code"] == "NOT_AN_ADMIN"


class TestRequirePermission:

    @pytest.mark.asyncio
    async def test_granted(self):
        admin = make_admin("manager")
        assert await require_permission("users", "delete")(admin) is admin

    @pytest.mark.asyncio
    async def test_denied(self):
        with pytest.raises(HTTPException) as exc:
            await require_permission("users", "delete")(make_admin("support"))
        assert exc.value.status_code == 403
        assert exc.value.detail["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_superadmin_bypass(self):
        admin = make_admin("superadmin")
        assert await require_permission("users", "import")(admin) is admin


class TestBearerOverHttp:

    @pytest.mark.asyncio
    async def test_real_token_reaches_endpoint(self, anon_client):
        token = issue_token("admin-9", "exporter", role="support", permissions=["users:export"])
        resp = await anon_client.get(
            "/api/v2/users/import/template",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_token_without_permission(self, anon_client):
        token = issue_token("admin-9", "reader", role="viewer", permissions=["users:view"])
        resp = await anon_client.get(
            "/api/v2/users/import/template",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 403
