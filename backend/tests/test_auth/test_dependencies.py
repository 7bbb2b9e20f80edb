"""Tests for auth dependencies — get_current_admin edge cases."""

import uuid
from datetime import timedelta

from httpx import AsyncClient

from app.auth.jwt import create_access_token
from app.models.admin import Admin

URL = "/api/v1/billing/overview"


class TestGetCurrentAdmin:
    """Test get_current_admin via an admin-only billing endpoint."""

    async def test_valid_token_accepted(self, client: AsyncClient, auth_headers: dict):
        response = await client.get(URL, headers=auth_headers)
        assert response.status_code == 200

    async def test_missing_header(self, client: AsyncClient):
        response = await client.get(URL)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_expired_token_rejected(self, client: AsyncClient, test_admin: Admin):
        token = create_access_token({"sub": str(test_admin.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_invalid_token_format(self, client: AsyncClient):
        response = await client.get(URL, headers={"Authorization": "Bearer not.a.valid.jwt"})
        assert response.status_code == 401

    async def test_non_uuid_subject_rejected(self, client: AsyncClient):
        token = create_access_token({"sub": "not-a-uuid"})
        response = await client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_missing_subject_rejected(self, client: AsyncClient):
        token = create_access_token({"role": "authenticated"})
        response = await client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_nonexistent_admin_rejected(self, client: AsyncClient):
        token = create_access_token({"sub": str(uuid.uuid4())})
        response = await client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_admin_rejected(self, client: AsyncClient, make_admin, token_headers):
        admin = await make_admin(is_active=False)
        response = await client.get(URL, headers=token_headers(admin.id))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "AUTH_ERROR"
