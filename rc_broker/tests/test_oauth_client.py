"""Tests for OAuthClient: authorize URL, code exchange, refresh grant."""
import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from rc_broker.errors import AuthorizationRejected, RefreshRejected, TokenExchangeFailed
from rc_broker.oauth_client import OAuthClient, build_authorize_url
from rc_broker.tests.fakes import REDIRECT_URI, make_token, token_response


@pytest.fixture
def oauth(config, http_client):
    return OAuthClient(config, http_client)


def test_build_authorize_url_includes_required_params():
    url = build_authorize_url(
        authorize_url="https://as.example/oauth/authorize",
        client_id="client1",
        redirect_uri="https://client.example/cb",
    )
    parsed = urlparse(url)
    assert url.startswith("https://as.example/oauth/authorize?")
    params = parse_qs(parsed.query)
    assert params == {
        "response_type": ["code"],
        "client_id": ["client1"],
        "redirect_uri": ["https://client.example/cb"],
    }
    assert "state=" not in url


def test_exchange_code_success(oauth, upstream):
    upstream.token_responses.append(token_response(access_token="at-1", refresh_token="rt-1", expires_in=7200))
    before = datetime.now(timezone.utc)
    token = oauth.exchange_code("the-code", REDIRECT_URI)

    assert token.access_token == "at-1"
    assert token.refresh_token == "rt-1"
    assert before + timedelta(seconds=7190) < token.expires_at
    assert upstream.token_calls() == [
        {"grant_type": "authorization_code", "code": "the-code", "redirect_uri": REDIRECT_URI}
    ]


def test_exchange_code_uses_basic_client_auth(oauth, upstream):
    upstream.token_responses.append(token_response())
    oauth.exchange_code("c", REDIRECT_URI)
    auth = upstream.calls[0].headers["authorization"]
    assert auth == "Basic " + base64.b64encode(b"client-id:client-secret").decode()


def test_exchange_code_redirect_uri_mismatch_rejected_without_network(oauth, upstream):
    with pytest.raises(AuthorizationRejected):
        oauth.exchange_code("c", REDIRECT_URI + "/")
    assert upstream.calls == []


def test_exchange_code_non_2xx(oauth, upstream):
    upstream.token_responses.append(httpx.Response(400, text='{"error":"invalid_grant"}'))
    with pytest.raises(TokenExchangeFailed) as exc_info:
        oauth.exchange_code("c", REDIRECT_URI)
    assert exc_info.value.status == 400
    assert "invalid_grant" in exc_info.value.body
    assert exc_info.value.timed_out is False


def test_exchange_code_timeout_is_distinguishable(oauth, upstream):
    upstream.token_responses.append(httpx.ConnectTimeout("slow"))
    with pytest.raises(TokenExchangeFailed) as exc_info:
        oauth.exchange_code("c", REDIRECT_URI)
    assert exc_info.value.status is None
    assert exc_info.value.timed_out is True
    assert exc_info.value.outcome == "timeout"


def test_exchange_code_malformed_body(oauth, upstream):
    upstream.token_responses.append(httpx.Response(200, json={"token_type": "Bearer"}))
    with pytest.raises(TokenExchangeFailed):
        oauth.exchange_code("c", REDIRECT_URI)


def test_refresh_success_replaces_both_tokens(oauth, upstream):
    old = make_token(-60, access_token="at-old", refresh_token="rt-old")
    upstream.token_responses.append(token_response(access_token="at-new", refresh_token="rt-new"))
    new = oauth.refresh(old)
    assert new.access_token == "at-new"
    assert new.refresh_token == "rt-new"
    assert new is not old
    assert upstream.token_calls() == [{"grant_type": "refresh_token", "refresh_token": "rt-old"}]


def test_refresh_rejected(oauth, upstream):
    upstream.token_responses.append(httpx.Response(401, json={"error": "invalid_grant"}))
    with pytest.raises(RefreshRejected) as exc_info:
        oauth.refresh(make_token(-60))
    assert exc_info.value.status == 401


def test_refresh_timeout(oauth, upstream):
    upstream.token_responses.append(httpx.ReadTimeout("slow"))
    with pytest.raises(RefreshRejected) as exc_info:
        oauth.refresh(make_token(-60))
    assert exc_info.value.timed_out is True


def test_refresh_without_refresh_token_skips_network(oauth, upstream):
    with pytest.raises(RefreshRejected):
        oauth.refresh(make_token(-60, refresh_token=""))
    assert upstream.calls == []


def test_exchange_code_out_of_range_expiry(oauth, upstream):
    upstream.token_responses.append(token_response(expires_in=10**12))
    with pytest.raises(TokenExchangeFailed):
        oauth.exchange_code("the-code", REDIRECT_URI)


def test_refresh_out_of_range_expiry(oauth, upstream):
    upstream.token_responses.append(token_response(expires_in=10**12))
    with pytest.raises(RefreshRejected):
        oauth.refresh(make_token(-60))
