"""Unit tests for EnableBankingClient (HTTP mocked with httpx.MockTransport)."""

import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from integrations.enable_banking_client import EnableBankingClient
from integrations.exceptions import (
    AggregatorAPIError,
    AggregatorAuthError,
    AggregatorConnectionError,
    AggregatorDataError,
)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def private_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


class Recorder:
    """httpx.MockTransport handler returning canned responses per (method, path)."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | Exception]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.routes[(request.method, request.url.path)]
        if isinstance(result, Exception):
            raise result
        return result


def _client(private_pem, routes) -> tuple[EnableBankingClient, Recorder]:
    recorder = Recorder(routes)
    client = EnableBankingClient(
        application_id="app-123",
        private_key=private_pem,
        base_url="https://api.test",
        timeout=5,
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


class TestConfiguration:
    def test_is_configured(self, private_pem):
        assert EnableBankingClient(application_id="a", private_key=private_pem).is_configured()

    def test_not_configured_without_key(self, monkeypatch):
        monkeypatch.setattr("integrations.enable_banking_client.settings.ENABLE_BANKING_PRIVATE_KEY", "")
        monkeypatch.setattr("integrations.enable_banking_client.settings.ENABLE_BANKING_PRIVATE_KEY_PATH", "")
        assert not EnableBankingClient(application_id="a").is_configured()

    def test_key_loaded_from_path(self, tmp_path, private_pem):
        key_file = tmp_path / "key.pem"
        key_file.write_text(private_pem)
        routes = {("GET", "/aspsps"): httpx.Response(200, json={"aspsps": []})}
        recorder = Recorder(routes)
        client = EnableBankingClient(
            application_id="app-123",
            private_key_path=str(key_file),
            base_url="https://api.test",
            transport=httpx.MockTransport(recorder),
        )
        assert client.list_banks("FI") == []

    def test_unreadable_key_path(self, tmp_path):
        client = EnableBankingClient(application_id="app-123", private_key_path=str(tmp_path / "missing.pem"))
        with pytest.raises(AggregatorAuthError, match="not readable"):
            client.list_banks("FI")

    def test_invalid_key_text(self):
        client = EnableBankingClient(application_id="app-123", private_key="not a pem")
        with pytest.raises(AggregatorAuthError, match="Could not sign"):
            client.list_banks("FI")


class TestRequestSigning:
    def test_bearer_jwt_claims_and_kid(self, rsa_key, private_pem):
        client, recorder = _client(private_pem, {("GET", "/aspsps"): httpx.Response(200, json={"aspsps": []})})

        client.list_banks("FI")

        token = recorder.requests[0].headers["Authorization"].removeprefix("Bearer ")
        assert jwt.get_unverified_header(token)["kid"] == "app-123"
        claims = jwt.decode(
            token,
            rsa_key.public_key(),
            algorithms=["RS256"],
            audience="api.enablebanking.com",
            issuer="enablebanking.com",
        )
        assert claims["exp"] - claims["iat"] == 3600


class TestListBanks:
    def test_parses_aspsps(self, private_pem):
        body = {"aspsps": [
            {"name": "Nordea", "country": "FI", "title": "Nordea Bank", "logo": "https://logo"},
            {"country": "FI"},
        ]}
        client, recorder = _client(private_pem, {("GET", "/aspsps"): httpx.Response(200, json=body)})

        banks = client.list_banks("FI")

        assert [b.name for b in banks] == ["Nordea"]
        assert banks[0].title == "Nordea Bank"
        assert recorder.requests[0].url.params["country"] == "FI"


class TestStartAuthorization:
    def test_posts_auth_request(self, private_pem):
        response = httpx.Response(200, json={
            "url": "https://bank.test/consent",
            "authorization_id": "auth-1",
            "consent_id": "C1",
        })
        client, recorder = _client(private_pem, {("POST", "/auth"): response})

        result = client.start_authorization("Nordea", "FI", "https://app.test/callback", "state-1")

        assert result.url == "https://bank.test/consent"
        assert result.consent_id == "C1"
        body = json.loads(recorder.requests[0].content)
        assert body["aspsp"] == {"name": "Nordea", "country": "FI"}
        assert body["state"] == "state-1"
        assert body["redirect_url"] == "https://app.test/callback"
        assert body["psu_type"] == "personal"
        assert "valid_until" in body["access"]

    def test_without_consent_id(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/auth"): httpx.Response(200, json={"url": "https://x"})})
        assert client.start_authorization("B", "FI", "cb", "s").consent_id is None

    def test_missing_url_is_data_error(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/auth"): httpx.Response(200, json={"consent_id": "C1"})})
        with pytest.raises(AggregatorDataError):
            client.start_authorization("B", "FI", "cb", "s")

    def test_401_is_auth_error(self, private_pem):
        response = httpx.Response(401, json={"message": "Invalid JWT"})
        client, _ = _client(private_pem, {("POST", "/auth"): response})
        with pytest.raises(AggregatorAuthError, match="Invalid JWT"):
            client.start_authorization("B", "FI", "cb", "s")

    def test_500_is_api_error(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/auth"): httpx.Response(500, text="oops")})
        with pytest.raises(AggregatorAPIError) as exc_info:
            client.start_authorization("B", "FI", "cb", "s")
        assert exc_info.value.status_code == 500
        assert exc_info.value.retriable is True

    def test_transport_error_is_connection_error(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/auth"): httpx.ConnectTimeout("timed out")})
        with pytest.raises(AggregatorConnectionError):
            client.start_authorization("B", "FI", "cb", "s")


class TestCreateSession:
    def test_returns_document(self, private_pem):
        document = {"session_id": "S1", "accounts": [{"uid": "A1"}], "aspsp": {"name": "Nordea"}}
        client, recorder = _client(private_pem, {("POST", "/sessions"): httpx.Response(200, json=document)})

        assert client.create_session("code-1") == document
        assert json.loads(recorder.requests[0].content) == {"code": "code-1"}

    def test_non_object_response(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/sessions"): httpx.Response(200, json=["S1"])})
        with pytest.raises(AggregatorDataError):
            client.create_session("code-1")

    def test_non_json_response(self, private_pem):
        client, _ = _client(private_pem, {("POST", "/sessions"): httpx.Response(200, text="<html>")})
        with pytest.raises(AggregatorDataError):
            client.create_session("code-1")


class TestConsents:
    def test_revoke_success(self, private_pem):
        client, recorder = _client(private_pem, {("DELETE", "/v3/consents/C1"): httpx.Response(204)})
        assert client.revoke_consent("C1") is True
        assert recorder.requests[0].method == "DELETE"

    def test_revoke_404_counts_as_revoked(self, private_pem):
        client, _ = _client(private_pem, {("DELETE", "/v3/consents/C1"): httpx.Response(404)})
        assert client.revoke_consent("C1") is True

    def test_revoke_failure(self, private_pem):
        client, _ = _client(private_pem, {("DELETE", "/v3/consents/C1"): httpx.Response(502)})
        assert client.revoke_consent("C1") is False

    def test_revoke_transport_failure(self, private_pem):
        client, _ = _client(private_pem, {("DELETE", "/v3/consents/C1"): httpx.ConnectError("refused")})
        assert client.revoke_consent("C1") is False

    def test_list_consents(self, private_pem):
        body = {"consents": [
            {"consent_id": "C1", "status": "AUTHORIZED", "expires_at": "2026-05-29T12:00:00Z"},
            {"status": "AUTHORIZED"},
        ]}
        client, _ = _client(private_pem, {("GET", "/v3/consents"): httpx.Response(200, json=body)})

        consents = client.list_consents()

        assert [c.consent_id for c in consents] == ["C1"]
        assert consents[0].expires_at.year == 2026

    def test_list_consents_failure_returns_empty(self, private_pem):
        client, _ = _client(private_pem, {("GET", "/v3/consents"): httpx.Response(500)})
        assert client.list_consents() == []
