"""
Lead source mapping endpoint tests (suggest-mapping / preview-mapping).

Auth is overridden via FastAPI dependency_overrides; ownership lookups and
Claude calls are mocked.
"""

import os
import pytest
from unittest.mock import AsyncMock, patch

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test.anon-key.signature")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test.service-key.signature")

from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.auth import get_current_user
from app.models.lead import MappingResult

OWNERSHIP = "app.routers.lead_sources.verify_lead_source_ownership"
GENERATE = "app.routers.lead_sources.generate_field_mapping"
MAP_VIA_MODEL = "app.services.ai_mapper.map_via_model"

SAMPLE = {
    "customer": {
        "contact_email": "john@example.com",
        "details": {"phone": "+1234567890"},
    },
    "business_name": "Acme Corp",
}


def _make_db_source(field_mapping: dict | None = None) -> dict:
    return {
        "id": "source-123",
        "organization_id": "org-456",
        "name": "Zapier",
        "type": "zapier",
        "is_active": True,
        "field_mapping": field_mapping,
    }


@pytest.fixture()
def client():
    from app.main import app
    app.dependency_overrides[get_current_user] = lambda: "user-123"
    with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "test-anthropic-key"}):
        yield TestClient(app)
    app.dependency_overrides.clear()


# ===========================================================================
# POST /api/lead-sources/{source_id}/suggest-mapping
# ===========================================================================

class TestSuggestMapping:

    def _post(self, client, sample=SAMPLE):
        return client.post(
            "/api/lead-sources/source-123/suggest-mapping",
            json={"sample": sample},
        )

    def test_returns_mapping_and_preview(self, client):
        suggestion = {
            "email": "customer.contact_email",
            "phone": "customer.details.phone",
            "company": "business_name",
        }
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())) as mock_owner, \
             patch(GENERATE, return_value=suggestion) as mock_generate:
            response = self._post(client)

        assert response.status_code == 200
        data = response.json()
        assert data["field_mapping"] == suggestion
        assert data["resolved"] == {
            "email": "john@example.com",
            "phone": "+1234567890",
            "company": "Acme Corp",
        }
        mock_owner.assert_awaited_once_with("source-123", "user-123")
        mock_generate.assert_called_once_with(SAMPLE)

    def test_suggested_path_that_does_not_resolve(self, client):
        suggestion = {"email": "customer.email"}
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())), \
             patch(GENERATE, return_value=suggestion):
            response = self._post(client)

        assert response.status_code == 200
        assert response.json()["field_mapping"] == suggestion
        assert response.json()["resolved"] == {}

    def test_empty_suggestion(self, client):
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())), \
             patch(GENERATE, return_value={}):
            response = self._post(client)

        assert response.status_code == 200
        assert response.json() == {"field_mapping": {}, "resolved": {}}

    def test_unavailable_without_api_key(self, client):
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())), \
             patch(GENERATE) as mock_generate, \
             patch.dict(os.environ, {"ANTHROPIC_API_KEY": ""}):
            response = self._post(client)

        assert response.status_code == 503
        mock_generate.assert_not_called()

    def test_other_organization_forbidden(self, client):
        denied = AsyncMock(side_effect=HTTPException(status_code=403, detail="nope"))
        with patch(OWNERSHIP, new=denied), patch(GENERATE) as mock_generate:
            response = self._post(client)

        assert response.status_code == 403
        mock_generate.assert_not_called()

    def test_requires_auth(self):
        from app.main import app
        app.dependency_overrides.clear()
        response = TestClient(app).post(
            "/api/lead-sources/source-123/suggest-mapping",
            json={"sample": SAMPLE},
        )
        assert response.status_code == 401


# ===========================================================================
# POST /api/lead-sources/{source_id}/preview-mapping
# ===========================================================================

class TestPreviewMapping:

    def _post(self, client, sample):
        return client.post(
            "/api/lead-sources/source-123/preview-mapping",
            json={"sample": sample},
        )

    def test_uses_saved_manual_mapping(self, client):
        source = _make_db_source(field_mapping={"email": "customer.contact_email"})
        with patch(OWNERSHIP, new=AsyncMock(return_value=source)), \
             patch(MAP_VIA_MODEL) as mock_ai:
            response = self._post(client, SAMPLE)

        assert response.status_code == 200
        assert response.json() == {
            "contact": {"email": "john@example.com"},
            "mapping_source": "manual",
            "valid": True,
            "errors": [],
        }
        mock_ai.assert_not_called()

    def test_heuristic_preview(self, client):
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())):
            response = self._post(client, {"Email": "a@b.com", "Full Name": "Jane Smith"})

        data = response.json()
        assert data["mapping_source"] == "heuristic"
        assert data["contact"] == {"email": "a@b.com", "first_name": "Jane", "last_name": "Smith"}
        assert data["valid"] is True

    def test_reports_validation_errors(self, client):
        with patch(OWNERSHIP, new=AsyncMock(return_value=_make_db_source())), \
             patch(MAP_VIA_MODEL, return_value=MappingResult.failed()):
            response = self._post(client, {"name": "Jane"})

        data = response.json()
        assert response.status_code == 200
        assert data["mapping_source"] == "heuristic_fallback"
        assert data["valid"] is False
        assert data["errors"] == ["Either email or phone is required"]
