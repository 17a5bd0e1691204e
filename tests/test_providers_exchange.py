import base64

import httpx
import pytest

from authflow.errors import InvalidRequest, UpstreamError
from authflow.exchange import TokenExchanger, parse_token_response
from authflow.providers import (
    PROVIDERS,
    ProviderKind,
    TokenResponseFormat,
    build_authorize_url,
    feature_providers,
    get_provider,
)
from tests.helpers import query_of

REDIRECT = "https://testserver/callback"


def test_catalog_kinds() -> None:
    assert get_provider("github").kind is ProviderKind.ANCHOR
    assert get_provider("google").is_anchor
    assert {p.name for p in feature_providers()} == {"gmail", "calendar", "drive", "notion", "slack"}
    for descriptor in PROVIDERS.values():
        assert descriptor.is_anchor == (descriptor.profile is not None)


def test_unknown_provider_is_invalid_request() -> None:
    with pytest.raises(InvalidRequest, match="Unknown provider"):
        get_provider("myspace")


def test_authorize_url_for_offline_provider() -> None:
    url = build_authorize_url(get_provider("gmail"), "google-client", f"{REDIRECT}/gmail", "tok")
    params = query_of(url)

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert params == {
        "client_id": "google-client",
        "redirect_uri": f"{REDIRECT}/gmail",
        "scope": "https://www.googleapis.com/auth/gmail.modify",
        "state": "tok",
        "response_type": "code",
        "access_type": "offline",
        "prompt": "consent",
    }


def test_authorize_url_is_deterministic_and_always_code() -> None:
    github = get_provider("github")
    first = build_authorize_url(github, "gh", REDIRECT, "s")
    second = build_authorize_url(github, "gh", REDIRECT, "s")
    params = query_of(first)

    assert first == second
    assert params["response_type"] == "code"
    assert params["scope"] == "read:user user:email"
    assert "access_type" not in params
    assert query_of(build_authorize_url(get_provider("notion"), "n", REDIRECT, "s"))["owner"] == "user"


def test_parse_form_and_json_bodies() -> None:
    form = httpx.Response(200, text="access_token=abc&scope=repo", headers={"content-type": "application/x-www-form-urlencoded"})
    as_json = httpx.Response(200, json={"access_token": "xyz"})
    unlabeled_json = httpx.Response(200, text='{"access_token": "def"}', headers={"content-type": "text/plain"})

    assert parse_token_response(form, TokenResponseFormat.FORM) == {"access_token": "abc", "scope": "repo"}
    assert parse_token_response(as_json, TokenResponseFormat.FORM)["access_token"] == "xyz"
    assert parse_token_response(unlabeled_json, TokenResponseFormat.FORM)["access_token"] == "def"


@pytest.mark.anyio
async def test_exchange_form_encoded_github(exchanger, upstream) -> None:
    credential = await exchanger.exchange(get_provider("github"), "code-1", f"{REDIRECT}/github")

    assert credential.access_token.startswith("gho_")
    assert credential.scope == "read:user"
    assert credential.refresh_token is None
    body = dict(httpx.QueryParams(upstream.requests[0].content.decode()))
    assert body["code"] == "code-1"
    assert body["client_id"] == "gh-client"
    assert body["grant_type"] == "authorization_code"


@pytest.mark.anyio
async def test_exchange_json_google_sets_expiry(exchanger) -> None:
    credential = await exchanger.exchange(get_provider("calendar"), "code-2", f"{REDIRECT}/calendar")

    assert credential.access_token.startswith("ya29_")
    assert credential.refresh_token.startswith("1//")
    assert credential.expires_at is not None


@pytest.mark.anyio
async def test_exchange_uses_basic_auth_when_declared(exchanger, upstream) -> None:
    await exchanger.exchange(get_provider("notion"), "code-3", f"{REDIRECT}/notion")

    request = upstream.requests[0]
    expected = base64.b64encode(b"notion-client:notion-secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert "client_secret" not in request.content.decode()


@pytest.mark.anyio
async def test_exchange_http_failure_carries_upstream_status(exchanger, upstream) -> None:
    upstream.fail("https://oauth2.googleapis.com/token", 401, '{"error": "invalid_client"}')

    with pytest.raises(UpstreamError) as exc:
        await exchanger.exchange(get_provider("gmail"), "code", REDIRECT)

    assert exc.value.status_code == 401
    assert exc.value.upstream_status == 401
    assert "invalid_client" in exc.value.upstream_body


@pytest.mark.anyio
async def test_exchange_without_access_token_is_upstream_error(exchanger, upstream) -> None:
    upstream.failures["https://github.com/login/oauth/access_token"] = httpx.Response(
        200, text="error=bad_verification_code&error_description=The+code+is+incorrect"
    )

    with pytest.raises(UpstreamError, match="The code is incorrect") as exc:
        await exchanger.exchange(get_provider("github"), "stale", REDIRECT)

    assert exc.value.status_code == 500


@pytest.mark.anyio
async def test_exchange_network_error_is_upstream_error(settings) -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    exchanger = TokenExchanger(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(boom)))

    with pytest.raises(UpstreamError):
        await exchanger.exchange(get_provider("slack"), "code", REDIRECT)


@pytest.mark.anyio
async def test_fetch_profile_maps_fields(exchanger) -> None:
    anchor = await exchanger.fetch_profile(get_provider("github"), "gho_1")

    assert (anchor.login, anchor.name, anchor.email) == ("octocat", "Octo Cat", "octo@example.com")


@pytest.mark.anyio
async def test_fetch_profile_failure(exchanger, upstream) -> None:
    upstream.fail("https://api.github.com/user", 403, "rate limited")

    with pytest.raises(UpstreamError) as exc:
        await exchanger.fetch_profile(get_provider("github"), "gho_1")

    assert exc.value.status_code == 403


@pytest.mark.anyio
async def test_fetch_profile_rejects_non_object_body(exchanger, upstream) -> None:
    upstream.profile = ["octocat"]

    with pytest.raises(UpstreamError, match="Invalid GitHub profile response"):
        await exchanger.fetch_profile(get_provider("github"), "gho_1")
