"""Integration tests for remixstudio.api.main: FastAPI REST API endpoints.

All tests use the FastAPI TestClient with a mocked generation backend and an
in-memory auth provider, so no network access occurs.  Tests cover:

- ``GET /api/config``: Reference data delivery.
- ``POST /api/generate``: Stateless generation.
- ``/api/auth/*``: Sign up, login, Google sign-in, logout, current user.
- ``/api/sessions/*``: The remix session flow end to end.
"""

from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from remixstudio.core.backends import (
    EMPTY_RESULT_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    BackendConfigurationError,
    BackendError,
)
from remixstudio.core.models import PARTIAL_RESULTS_NOTICE


def data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode()}"


def upload(name: str, data: bytes, mime_type: str = "image/png") -> tuple:
    return (name, data, mime_type)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def signed_in(test_client, auth):
    """TestClient that sends a signed-in user's token on every request."""
    session = auth.sign_up("ada@example.com", "secret123", "Ada")
    test_client.headers.update(bearer(session.access_token))
    return test_client


# ---------------------------------------------------------------------------
# Configuration endpoint tests.
# ---------------------------------------------------------------------------


class TestGetConfig:
    """Test GET /api/config: reference data."""

    def test_config_shape(self, test_client):
        resp = test_client.get("/api/config")
        assert resp.status_code == 200
        data = resp.json()
        assert "version" in data
        assert len(data["stacks"]) == 8
        assert data["trending"]
        assert "3:4" in data["aspect_ratios"]

    def test_fitit_parameters_exposed(self, test_client):
        stacks = {s["id"]: s for s in test_client.get("/api/config").json()["stacks"]}
        assert stacks["fitit"]["requires_secondary"] is True
        assert stacks["fitit"]["expected_results"] == 4


# ---------------------------------------------------------------------------
# Stateless generation endpoint tests.
# ---------------------------------------------------------------------------


class TestGenerate:
    """Test POST /api/generate: one-shot generation."""

    def test_generate_returns_data_urls(self, test_client, fake_backend, png_asset, result_images):
        fake_backend.generate.return_value = result_images[:2]
        resp = test_client.post(
            "/api/generate",
            json={"image_data": data_url(png_asset.data), "template_id": "flex-supercar"},
        )
        assert resp.status_code == 200
        images = resp.json()["images"]
        assert images == [data_url(img.data) for img in result_images[:2]]

        template, primary, secondary = fake_backend.generate.call_args.args
        assert template.id == "flex-supercar"
        assert template.aspect_ratio == "3:4"
        assert primary.data == png_asset.data
        assert secondary is None

    def test_wearable_forwarded(self, test_client, fake_backend, png_asset, second_png_asset, result_images):
        fake_backend.generate.return_value = result_images
        resp = test_client.post(
            "/api/generate",
            json={
                "image_data": data_url(png_asset.data),
                "wearable_data": data_url(second_png_asset.data),
                "template_id": "fitit-tryon",
            },
        )
        assert resp.status_code == 200
        assert fake_backend.generate.call_args.args[2].data == second_png_asset.data

    def test_template_options_override(self, test_client, fake_backend, png_asset, result_images):
        fake_backend.generate.return_value = result_images[:1]
        resp = test_client.post(
            "/api/generate",
            json={
                "image_data": data_url(png_asset.data),
                "template_id": "custom-id",
                "template_options": {"text": "Make it neon", "aspect_ratio": "16:9"},
            },
        )
        assert resp.status_code == 200
        template = fake_backend.generate.call_args.args[0]
        assert template.id == "custom-id"
        assert template.prompt == "Make it neon"
        assert template.aspect_ratio == "16:9"

    def test_unknown_template_without_options(self, test_client, fake_backend, png_asset, result_images):
        fake_backend.generate.return_value = result_images[:1]
        resp = test_client.post(
            "/api/generate",
            json={"image_data": data_url(png_asset.data), "template_id": "unknown"},
        )
        assert resp.status_code == 200
        assert fake_backend.generate.call_args.args[0].prompt == ""

    def test_missing_image(self, test_client, fake_backend):
        resp = test_client.post("/api/generate", json={"template_id": "flex-supercar"})
        assert resp.status_code == 400
        fake_backend.generate.assert_not_called()

    def test_invalid_image_type(self, test_client, fake_backend):
        resp = test_client.post(
            "/api/generate",
            json={"image_data": data_url(b"GIF89a", "image/gif"), "template_id": "flex-supercar"},
        )
        assert resp.status_code == 400
        assert "Invalid file type" in resp.json()["detail"]

    def test_unsupported_aspect_ratio(self, test_client, png_asset):
        resp = test_client.post(
            "/api/generate",
            json={
                "image_data": data_url(png_asset.data),
                "template_id": "flex-supercar",
                "template_options": {"aspect_ratio": "5:7"},
            },
        )
        assert resp.status_code == 400

    def test_missing_api_key(self, test_client, fake_backend, png_asset):
        fake_backend.generate.side_effect = BackendConfigurationError(MISSING_API_KEY_MESSAGE)
        resp = test_client.post(
            "/api/generate",
            json={"image_data": data_url(png_asset.data), "template_id": "flex-supercar"},
        )
        assert resp.status_code == 500
        assert resp.json()["detail"] == MISSING_API_KEY_MESSAGE

    def test_empty_result(self, test_client, fake_backend, png_asset):
        fake_backend.generate.side_effect = BackendError(EMPTY_RESULT_MESSAGE)
        resp = test_client.post(
            "/api/generate",
            json={"image_data": data_url(png_asset.data), "template_id": "flex-supercar"},
        )
        assert resp.status_code == 502
        assert resp.json()["detail"] == EMPTY_RESULT_MESSAGE


# ---------------------------------------------------------------------------
# Auth endpoint tests.
# ---------------------------------------------------------------------------


class TestAuth:
    """Test /api/auth/* endpoints."""

    def test_signup_login_logout(self, test_client):
        resp = test_client.post(
            "/api/auth/signup",
            json={"email": "ada@example.com", "password": "secret123", "name": "Ada"},
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "ada@example.com"
        token = resp.json()["access_token"]
        assert test_client.get("/api/auth/me", headers=bearer(token)).json()["user"]["name"] == "Ada"

        assert test_client.post("/api/auth/logout", headers=bearer(token)).json() == {"success": True}
        assert test_client.get("/api/auth/me", headers=bearer(token)).json() == {"user": None}

        resp = test_client.post(
            "/api/auth/login", json={"email": "ada@example.com", "password": "secret123"}
        )
        assert resp.status_code == 200
        assert resp.json()["access_token"] != token

    def test_bad_credentials(self, test_client):
        resp = test_client.post("/api/auth/login", json={"email": "x@y.z", "password": "nopenope"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid email or password"

    def test_short_password(self, test_client):
        resp = test_client.post(
            "/api/auth/signup", json={"email": "a@b.c", "password": "123", "name": "A"}
        )
        assert resp.status_code == 400

    def test_google(self, test_client):
        resp = test_client.post("/api/auth/google", json={})
        assert resp.status_code == 200
        assert resp.json()["user"]["name"] == "Google User"
        assert resp.json()["access_token"]

    def test_me_without_token(self, test_client):
        assert test_client.get("/api/auth/me").json() == {"user": None}

    def test_me_with_unknown_token(self, test_client):
        resp = test_client.get("/api/auth/me", headers=bearer("forged"))
        assert resp.json() == {"user": None}


# ---------------------------------------------------------------------------
# Session endpoint tests.
# ---------------------------------------------------------------------------


class TestSessions:
    """Test the remix session flow."""

    def _create(self, client, template_id="fitit-tryon") -> str:
        resp = client.post("/api/sessions", json={"template_id": template_id})
        assert resp.status_code == 200
        return resp.json()["id"]

    def test_create_and_get(self, test_client):
        session_id = self._create(test_client)
        view = test_client.get(f"/api/sessions/{session_id}").json()
        assert view["status"] == "idle"
        assert view["requires_secondary"] is True
        assert view["has_primary"] is False

    def test_unknown_template(self, test_client):
        resp = test_client.post("/api/sessions", json={"template_id": "nope"})
        assert resp.status_code == 404

    def test_unknown_session(self, test_client):
        assert test_client.get("/api/sessions/missing").status_code == 404

    def test_delete(self, test_client):
        session_id = self._create(test_client)
        assert test_client.delete(f"/api/sessions/{session_id}").status_code == 200
        assert test_client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_upload_requires_sign_in(self, test_client, png_asset):
        session_id = self._create(test_client)
        resp = test_client.post(
            f"/api/sessions/{session_id}/assets/primary",
            files={"file": upload("a.png", png_asset.data)},
        )
        assert resp.status_code == 401

    def test_upload_rejected_type(self, signed_in):
        session_id = self._create(signed_in)
        resp = signed_in.post(
            f"/api/sessions/{session_id}/assets/primary",
            files={"file": upload("a.gif", b"GIF89a", "image/gif")},
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Invalid file type. Please upload a JPG, PNG, or WebP file."

    def test_remix_requires_sign_in(self, test_client, fake_backend):
        session_id = self._create(test_client)
        resp = test_client.post(f"/api/sessions/{session_id}/remix")
        assert resp.status_code == 401
        assert test_client.get(f"/api/sessions/{session_id}").json()["status"] == "idle"
        fake_backend.generate.assert_not_called()

    def test_missing_secondary_fails_validation(self, signed_in, fake_backend, png_asset):
        session_id = self._create(signed_in)
        signed_in.post(
            f"/api/sessions/{session_id}/assets/primary",
            files={"file": upload("a.png", png_asset.data)},
        )
        view = signed_in.post(f"/api/sessions/{session_id}/remix").json()
        assert view["status"] == "failed"
        assert view["error_kind"] == "validation"
        assert view["error"] == "Please upload all required images."
        fake_backend.generate.assert_not_called()

    def test_full_flow(self, signed_in, fake_backend, png_asset, second_png_asset, result_images):
        session_id = self._create(signed_in)
        base = f"/api/sessions/{session_id}"

        signed_in.post(f"{base}/assets/primary", files={"file": upload("a.png", png_asset.data)})
        resp = signed_in.post(
            f"{base}/paste",
            files=[("files", upload("b.png", second_png_asset.data))],
        )
        assert resp.json()["role"] == "secondary"
        assert resp.json()["session"]["ready_to_submit"] is True

        fake_backend.generate.return_value = result_images[:2]
        view = signed_in.post(f"{base}/remix").json()
        assert view["status"] == "partially_succeeded"
        assert view["result_count"] == 2
        assert view["notice"] == PARTIAL_RESULTS_NOTICE

        resp = signed_in.get(f"{base}/results/1", params={"format": "jpeg"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert 'filename="remix-fitit-tryon-1.jpeg"' in resp.headers["content-disposition"]
        with Image.open(io.BytesIO(resp.content)) as img:
            assert img.format == "JPEG"

        assert signed_in.post(f"{base}/remix").status_code == 409

        view = signed_in.post(f"{base}/reset").json()
        assert view["status"] == "idle"
        assert view["has_primary"] is False
        assert view["has_secondary"] is False

    def test_retry_after_backend_error(self, signed_in, fake_backend, png_asset, result_images):
        session_id = self._create(signed_in, "flex-supercar")
        base = f"/api/sessions/{session_id}"
        signed_in.post(f"{base}/assets/primary", files={"file": upload("a.png", png_asset.data)})

        fake_backend.generate.side_effect = [BackendError("quota exceeded"), result_images[:1]]
        view = signed_in.post(f"{base}/remix").json()
        assert view["status"] == "failed"
        assert view["error"] == "quota exceeded"
        assert view["error_kind"] == "backend"

        view = signed_in.post(f"{base}/retry").json()
        assert view["status"] == "succeeded"
        assert fake_backend.generate.call_count == 2

    def test_retry_without_failure(self, signed_in):
        session_id = self._create(signed_in)
        assert signed_in.post(f"/api/sessions/{session_id}/retry").status_code == 409

    def test_focus_routes_paste(self, signed_in, png_asset):
        session_id = self._create(signed_in)
        base = f"/api/sessions/{session_id}"
        view = signed_in.put(f"{base}/focus", json={"zone": "secondary"}).json()
        assert view["focused_zone"] == "secondary"

        resp = signed_in.post(f"{base}/paste", files=[("items", upload("clip.png", png_asset.data))])
        assert resp.json()["role"] == "secondary"

    def test_paste_without_image_ignored(self, signed_in):
        session_id = self._create(signed_in)
        resp = signed_in.post(
            f"/api/sessions/{session_id}/paste",
            files=[("files", upload("notes.txt", b"hello", "text/plain"))],
        )
        assert resp.status_code == 200
        assert resp.json()["role"] is None

    def test_download_errors(self, signed_in, fake_backend, png_asset, result_images):
        session_id = self._create(signed_in, "flex-supercar")
        base = f"/api/sessions/{session_id}"
        assert signed_in.get(f"{base}/results/0").status_code == 409

        signed_in.post(f"{base}/assets/primary", files={"file": upload("a.png", png_asset.data)})
        fake_backend.generate.return_value = result_images[:1]
        signed_in.post(f"{base}/remix")

        assert signed_in.get(f"{base}/results/3").status_code == 404
        assert signed_in.get(f"{base}/results/0", params={"format": "gif"}).status_code == 400
        resp = signed_in.get(f"{base}/results/0")
        assert resp.headers["content-type"] == "image/png"
        assert 'filename="remix-flex-supercar-0.png"' in resp.headers["content-disposition"]


# ---------------------------------------------------------------------------
# Per-client auth scoping tests.
# ---------------------------------------------------------------------------


class TestAuthScope:
    """Each request is authenticated by its own token; sessions are private."""

    def _sign_up(self, client, email: str, name: str) -> str:
        resp = client.post(
            "/api/auth/signup",
            json={"email": email, "password": "secret123", "name": name},
        )
        assert resp.status_code == 200
        return resp.json()["access_token"]

    def test_other_client_signing_in_does_not_admit_anonymous(self, test_client, fake_backend, png_asset):
        self._sign_up(test_client, "ada@example.com", "Ada")

        session_id = test_client.post("/api/sessions", json={"template_id": "fitit-tryon"}).json()["id"]
        resp = test_client.post(
            f"/api/sessions/{session_id}/assets/primary",
            files={"file": upload("a.png", png_asset.data)},
        )
        assert resp.status_code == 401
        assert test_client.post(f"/api/sessions/{session_id}/remix").status_code == 401
        assert test_client.get("/api/auth/me").json() == {"user": None}
        fake_backend.generate.assert_not_called()

    def test_sessions_hidden_from_other_users(self, test_client, png_asset):
        ada = self._sign_up(test_client, "ada@example.com", "Ada")
        grace = self._sign_up(test_client, "grace@example.com", "Grace")

        session_id = test_client.post(
            "/api/sessions", json={"template_id": "flex-supercar"}, headers=bearer(ada)
        ).json()["id"]
        base = f"/api/sessions/{session_id}"

        assert test_client.get(base, headers=bearer(grace)).status_code == 404
        resp = test_client.post(
            f"{base}/assets/primary",
            files={"file": upload("a.png", png_asset.data)},
            headers=bearer(grace),
        )
        assert resp.status_code == 404
        assert test_client.post(f"{base}/reset", headers=bearer(grace)).status_code == 404
        assert test_client.delete(base, headers=bearer(grace)).status_code == 404
        assert test_client.get(base).status_code == 401

        view = test_client.get(base, headers=bearer(ada)).json()
        assert view["has_primary"] is False

    def test_anonymous_session_claimed_by_first_user(self, test_client, png_asset):
        ada = self._sign_up(test_client, "ada@example.com", "Ada")
        grace = self._sign_up(test_client, "grace@example.com", "Grace")

        session_id = test_client.post("/api/sessions", json={"template_id": "flex-supercar"}).json()["id"]
        base = f"/api/sessions/{session_id}"
        resp = test_client.post(
            f"{base}/assets/primary",
            files={"file": upload("a.png", png_asset.data)},
            headers=bearer(ada),
        )
        assert resp.status_code == 200

        assert test_client.get(base, headers=bearer(grace)).status_code == 404
        assert test_client.get(base, headers=bearer(ada)).json()["has_primary"] is True

    def test_logout_only_affects_caller(self, test_client):
        ada = self._sign_up(test_client, "ada@example.com", "Ada")
        grace = self._sign_up(test_client, "grace@example.com", "Grace")

        test_client.post("/api/auth/logout", headers=bearer(ada))

        assert test_client.get("/api/auth/me", headers=bearer(ada)).json() == {"user": None}
        assert test_client.get("/api/auth/me", headers=bearer(grace)).json()["user"]["name"] == "Grace"
