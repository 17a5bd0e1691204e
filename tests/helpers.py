"""Shared test helpers."""

from urllib.parse import parse_qs, urlparse

import httpx

from config import Settings

SERVER_URL = "https://testserver"
COOKIE_SECRET = "test-cookie-secret"
CLIENT_REDIRECT = "https://client.example/callback"

GITHUB_PROFILE = {"login": "octocat", "name": "Octo Cat", "email": "octo@example.com"}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """MockTransport handler standing in for every provider's token/profile endpoint."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, httpx.Response] = {}
        self.profile = dict(GITHUB_PROFILE)
        self._issued = 0

    def fail(self, url: str, status: int, body: str) -> None:
        self.failures[url] = httpx.Response(status, text=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.failures:
            return self.failures[url]

        self._issued += 1
        if url == "https://github.com/login/oauth/access_token":
            return httpx.Response(
                200,
                text=f"access_token=gho_{self._issued}&scope=read%3Auser&token_type=bearer",
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
        if url == "https://api.github.com/user":
            return httpx.Response(200, json=self.profile)
        if url == "https://oauth2.googleapis.com/token":
            return httpx.Response(200, json={
                "access_token": f"ya29_{self._issued}",
                "refresh_token": f"1//refresh_{self._issued}",
                "expires_in": 3600,
                "token_type": "Bearer",
            })
        if url == "https://api.notion.com/v1/oauth/token":
            return httpx.Response(200, json={"access_token": f"secret_{self._issued}", "token_type": "bearer"})
        return httpx.Response(404, text="not found")


def make_settings(**overrides) -> Settings:
    data = {
        "server_url": SERVER_URL,
        "cookie_secret": COOKIE_SECRET,
        "anchor_provider": "github",
        "providers": {
            "github": {"client_id": "gh-client", "client_secret": "gh-secret"},
            "google": {"client_id": "google-client", "client_secret": "google-secret"},
            "notion": {"client_id": "notion-client", "client_secret": "notion-secret"},
            "slack": {"client_id": "slack-client", "client_secret": "slack-secret"},
        },
    }
    data.update(overrides)
    return Settings(data)


def query_of(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}
