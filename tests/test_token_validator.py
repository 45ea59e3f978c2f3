import asyncio

import pytest
from google.oauth2 import id_token

from module_agent.domain.errors import UnauthenticatedError
from module_agent.infrastructure.config.settings import Settings
from module_agent.infrastructure.security.token_validator import FirebaseTokenValidator


def _claims(project, sub="victim-uid"):
    return {"sub": sub, "aud": project, "iss": f"https://securetoken.google.com/{project}"}


@pytest.fixture
def verified(monkeypatch):
    """Replace signature verification; returns the audiences it was asked for"""

    calls = []

    def install(claims):
        def fake_verify(token, request, audience=None):
            calls.append(audience)
            return dict(claims)

        monkeypatch.setattr(id_token, "verify_firebase_token", fake_verify)
        return calls

    return install


def test_token_for_own_project_is_accepted(verified):
    calls = verified(_claims("my-project", sub="user-1"))

    claims = asyncio.run(FirebaseTokenValidator("my-project").verify("token"))

    assert claims["uid"] == "user-1"
    assert calls == ["my-project"]


def test_foreign_audience_is_rejected(verified):
    verified(_claims("attacker-project"))

    with pytest.raises(UnauthenticatedError, match="Invalid authentication token."):
        asyncio.run(FirebaseTokenValidator("my-project").verify("token"))


def test_foreign_issuer_is_rejected(verified):
    claims = _claims("my-project")
    claims["iss"] = "https://securetoken.google.com/attacker-project"
    verified(claims)

    with pytest.raises(UnauthenticatedError):
        asyncio.run(FirebaseTokenValidator("my-project").verify("token"))


def test_unconfigured_project_rejects_every_token(verified):
    calls = verified(_claims("attacker-project"))

    with pytest.raises(UnauthenticatedError, match="Invalid authentication token."):
        asyncio.run(FirebaseTokenValidator().verify("token"))

    assert calls == []


def test_missing_token(verified):
    with pytest.raises(UnauthenticatedError, match="Must be signed in."):
        asyncio.run(FirebaseTokenValidator("my-project").verify(None))


def test_signature_failure_is_unauthenticated(monkeypatch):
    def reject(token, request, audience=None):
        raise ValueError("Token expired")

    monkeypatch.setattr(id_token, "verify_firebase_token", reject)

    with pytest.raises(UnauthenticatedError, match="Invalid authentication token."):
        asyncio.run(FirebaseTokenValidator("my-project").verify("token"))


def test_audience_falls_back_to_cloud_project(monkeypatch):
    monkeypatch.delenv("FIREBASE_PROJECT_ID", raising=False)
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)

    assert Settings(_env_file=None, google_cloud_project="gcp-project").token_audience() == "gcp-project"
    assert Settings(
        _env_file=None, google_cloud_project="gcp-project", firebase_project_id="fb-project"
    ).token_audience() == "fb-project"
    assert Settings(_env_file=None).token_audience() is None
