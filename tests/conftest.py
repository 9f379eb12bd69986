# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
import os
import sys
import logging
from datetime import datetime, timedelta, timezone

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from llmeval.services.auth_gate import LoginThrottle, TeacherAuthGate
from llmeval.services.interaction_logger import InteractionLogger
from llmeval.services.preferences_service import PreferencesStore
from llmeval.utils.security import hash_password

TEACHER_PASSWORD = "correct horse battery staple"
TEST_MAX_LOGIN_ATTEMPTS = 3


class FakeClock:
    """Wall clock for the logger: returns a settable aware datetime."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 8, 7, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self, value: float = 1000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeTimer:
    """Stands in for threading.Timer; fires only when a test calls fire()."""

    def __init__(self, interval, function, args=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class FakeTimerFactory:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=None) -> FakeTimer:
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture(scope="session")
def teacher_password() -> str:
    return TEACHER_PASSWORD


@pytest.fixture(scope="session")
def password_hash(teacher_password) -> str:
    # Low iteration count keeps the suite fast; the format is identical.
    return hash_password(teacher_password, iterations=1_000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "LLMEval" / "TeacherLogs"


@pytest.fixture
def interaction_logger(log_dir, clock):
    il = InteractionLogger(log_dir, user_id="student01", clock=clock)
    yield il
    il.close()


@pytest.fixture
def auth_gate(password_hash, monotonic, timer_factory) -> TeacherAuthGate:
    return TeacherAuthGate(password_hash, timeout_seconds=900, clock=monotonic, timer_factory=timer_factory)


@pytest.fixture
def preferences_store(tmp_path) -> PreferencesStore:
    return PreferencesStore(tmp_path / "LLMEval" / "teacher_preferences.json")


# --- TestClient Fixtures ---
@pytest.fixture
def client(interaction_logger, auth_gate, preferences_store, monotonic):
    """
    TestClient over the real app with test-scoped services installed on app.state.
    The lifespan handler is not run, so nothing touches the real storage root.
    """
    from llmeval.main import app
    app.state.interaction_logger = interaction_logger
    app.state.auth_gate = auth_gate
    app.state.preferences_store = preferences_store
    app.state.login_throttle = LoginThrottle(TEST_MAX_LOGIN_ATTEMPTS, lockout_seconds=60, clock=monotonic)
    logger.info("Creating TestClient with test-scoped services.")
    yield TestClient(app)
    for name in ("interaction_logger", "auth_gate", "preferences_store", "login_throttle"):
        if hasattr(app.state, name):
            delattr(app.state, name)


@pytest.fixture
def teacher_client(client, teacher_password):
    response = client.post("/auth/login", json={"password": teacher_password})
    assert response.status_code == 200, response.text
    return client


@pytest.fixture
def max_login_attempts() -> int:
    return TEST_MAX_LOGIN_ATTEMPTS
