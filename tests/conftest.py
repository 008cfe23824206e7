import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from shim.app import create_app
from shim.auth.cookies import COOKIE_NAME, CookieCodec
from shim.auth.credentials import CredentialStore
from shim.auth.gateway import AuthGateway
from shim.auth.sessions import SessionStore
from shim.config import Settings

ADMIN_USER = "root"
ADMIN_PASS = "hunter2"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def users_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "users.db"


@pytest.fixture()
def credentials(users_path: Path) -> CredentialStore:
    return CredentialStore(users_path)


@pytest.fixture()
def session_store(clock) -> SessionStore:
    return SessionStore(anonymous_lifespan=3600, authenticated_lifespan=7200, clock=clock)


@pytest.fixture()
def settings(users_path: Path) -> Settings:
    return Settings(users_path=users_path, secret_key="test-secret", trust_proxy=True)


@pytest.fixture()
def gateway(settings, credentials, session_store) -> AuthGateway:
    credentials.register(ADMIN_USER, ADMIN_PASS)
    return AuthGateway(
        credentials,
        session_store,
        CookieCodec(settings.secret_key),
        login_path=settings.login_path,
        trust_proxy=settings.trust_proxy,
    )


@pytest.fixture()
def client(settings, gateway) -> TestClient:
    app = create_app(settings, gateway=gateway)
    return TestClient(app, headers={"X-Forwarded-For": "1.2.3.4", "User-Agent": "UA1"})


def login(client: TestClient, username: str = ADMIN_USER, password: str = ADMIN_PASS, redirect: str = ""):
    return client.post(
        "/login/",
        data={"username": username, "password": password, "redirect": redirect},
        follow_redirects=False,
    )


def session_id(client: TestClient, gateway: AuthGateway):
    return gateway.cookies.decode(client.cookies.get(COOKIE_NAME))
