from collections.abc import Iterator
from types import SimpleNamespace

import httpx
import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from authflow import endpoints, jwt_utils
from authflow.approvals import ApprovalRegistry
from authflow.completion import AuthorizationCompleter
from authflow.credentials import CredentialStore
from authflow.csrf import CSRFGuard
from authflow.errors import register_error_handlers
from authflow.exchange import TokenExchanger
from authflow.flow import AuthorizationFlow
from authflow.identity import IdentityResolver
from authflow.issuer import TokenIssuer
from authflow.session import SessionBinder
from authflow.state_store import StateStore
from authflow.stores import InMemoryKeyValueStore
from config import Settings
from tests.helpers import CLIENT_REDIRECT, COOKIE_SECRET, SERVER_URL, FakeClock, FakeUpstream, make_settings


@pytest.fixture(autouse=True)
def jwt_secret() -> Iterator[None]:
    jwt_utils.set_secret("test-jwt-secret")
    yield
    jwt_utils.set_secret(None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def exchanger(settings: Settings, upstream: FakeUpstream) -> TokenExchanger:
    return TokenExchanger(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)))


@pytest.fixture
def server(settings: Settings, kv: InMemoryKeyValueStore, exchanger: TokenExchanger) -> SimpleNamespace:
    """Fully wired flow plus a FastAPI app serving the OAuth router."""
    credentials = CredentialStore(kv)
    issuer = TokenIssuer(kv, SERVER_URL)
    state_store = StateStore(kv)
    resolver = IdentityResolver(exchanger, credentials, settings.anchor_provider)
    flow = AuthorizationFlow(
        settings=settings,
        issuer=issuer,
        state_store=state_store,
        csrf=CSRFGuard(kv),
        binder=SessionBinder(),
        approvals=ApprovalRegistry(COOKIE_SECRET),
        resolver=resolver,
        credentials=credentials,
        completer=AuthorizationCompleter(issuer),
    )

    app = FastAPI()
    register_error_handlers(app)
    endpoints.init_oauth_routes(SERVER_URL, flow, issuer)
    app.include_router(endpoints.router)

    return SimpleNamespace(
        app=app,
        flow=flow,
        issuer=issuer,
        credentials=credentials,
        state_store=state_store,
        resolver=resolver,
    )


@pytest.fixture
def browser(server: SimpleNamespace) -> TestClient:
    # https base URL so __Host- (Secure) cookies are sent back
    return TestClient(server.app, base_url=SERVER_URL, follow_redirects=False)


@pytest.fixture
def client_id(server: SimpleNamespace) -> str:
    info = server.issuer.register_client({"client_name": "Test Client", "redirect_uris": [CLIENT_REDIRECT]})
    return info["client_id"]
