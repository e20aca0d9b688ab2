import asyncio
import inspect
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Set env before any imports that might initialize settings or the runtime
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")
os.environ.setdefault("CLEANUP_ENABLED", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from voyagevault.service.errors import UnauthorizedError  # noqa: E402
from voyagevault.service.identity import IdentityAssertion  # noqa: E402
from voyagevault.service.runtime import reset_runtime_for_tests  # noqa: E402
from voyagevault.service.tokens import TokenService  # noqa: E402
from voyagevault.storage.memory import MemoryStore  # noqa: E402

TEST_SECRET = "Test-Secret-Key_for-Automation-Only-987654321!"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMailer:
    """Records dispatched codes instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send_verification_code(self, to_email: str, code: str) -> bool:
        if self.fail:
            return False
        self.sent.append((to_email, code))
        return True

    def last_code_for(self, email: str) -> str:
        return [code for to, code in self.sent if to == email][-1]


class FakeIdentityProvider:
    """Identity provider backed by in-memory id_token and auth-code tables."""

    def __init__(self):
        self.assertions: dict[str, IdentityAssertion] = {}
        self.auth_codes: dict[str, str] = {}

    def register(self, id_token: str, assertion: IdentityAssertion, *, auth_code=None):
        self.assertions[id_token] = assertion
        if auth_code:
            self.auth_codes[auth_code] = id_token

    async def verify_id_token(self, id_token: str) -> IdentityAssertion:
        assertion = self.assertions.get(id_token)
        if assertion is None:
            raise UnauthorizedError("invalid identity token")
        return assertion

    async def exchange_code(self, code: str) -> str:
        id_token = self.auth_codes.get(code)
        if id_token is None:
            raise UnauthorizedError("authorization code rejected")
        return id_token

    def authorization_url(self, state=None) -> str:
        return f"https://accounts.example.test/auth?state={state or ''}"


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def tokens(clock):
    return TokenService(TEST_SECRET, issuer="voyagevault", clock=clock)


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
