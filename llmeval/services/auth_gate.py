# Gate in front of the teacher review surface: password check plus inactivity expiry
# llmeval/services/auth_gate.py
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from llmeval.models.enums import GateState
from llmeval.utils.logger import logger
from llmeval.utils.security import is_valid_hash, verify_password


class TeacherAuthGate:
    """
    LOCKED -> PROMPT_VISIBLE (request_access) -> AUTHENTICATED (correct password).
    Logout, cancel or the inactivity deadline lead back to LOCKED. Nothing is persisted,
    so a fresh gate always starts LOCKED.
    """

    def __init__(self, password_hash: Optional[str], timeout_seconds: float = 15 * 60,
                 clock: Callable[[], float] = time.monotonic,
                 timer_factory: Optional[Callable] = threading.Timer):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._password_hash = password_hash
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._state = GateState.LOCKED
        self._deadline: Optional[float] = None
        self._timer = None
        # Bumped on every arm/disarm so a stale timer callback can tell it is stale.
        self._generation = 0
        self.failed_attempts = 0

        if not is_valid_hash(password_hash):
            logger.warning("No valid teacher password hash configured; teacher access is disabled.")

    # --- Queries ---

    @property
    def state(self) -> GateState:
        with self._lock:
            self._expire_if_due()
            return self._state

    @property
    def is_authenticated(self) -> bool:
        return self.state == GateState.AUTHENTICATED

    @property
    def password_prompt_visible(self) -> bool:
        return self.state == GateState.PROMPT_VISIBLE

    @property
    def seconds_remaining(self) -> Optional[float]:
        with self._lock:
            self._expire_if_due()
            if self._state != GateState.AUTHENTICATED or self._deadline is None:
                return None
            return max(0.0, self._deadline - self._clock())

    # --- Transitions ---

    def request_access(self) -> GateState:
        with self._lock:
            self._expire_if_due()
            if self._state == GateState.LOCKED:
                self._state = GateState.PROMPT_VISIBLE
                logger.debug("Teacher password prompt shown.")
            return self._state

    def cancel(self) -> GateState:
        with self._lock:
            if self._state == GateState.PROMPT_VISIBLE:
                self._state = GateState.LOCKED
            return self._state

    def authenticate(self, candidate: str) -> bool:
        with self._lock:
            self._expire_if_due()
            if verify_password(candidate, self._password_hash):
                self._state = GateState.AUTHENTICATED
                self.failed_attempts = 0
                self._arm()
                logger.info("Teacher authenticated.")
                return True

            self.failed_attempts += 1
            if self._state != GateState.AUTHENTICATED:
                self._state = GateState.PROMPT_VISIBLE
            logger.warning(f"Teacher authentication failed (attempt {self.failed_attempts}).")
            return False

    def record_activity(self) -> None:
        """Pushes the inactivity deadline forward while authenticated."""
        with self._lock:
            self._expire_if_due()
            if self._state == GateState.AUTHENTICATED:
                self._arm()

    def logout(self) -> None:
        with self._lock:
            was_authenticated = self._state == GateState.AUTHENTICATED
            self._disarm()
            self._state = GateState.LOCKED
        if was_authenticated:
            logger.info("Teacher logged out.")

    # --- Deadline handling ---

    def _arm(self) -> None:
        self._disarm()
        self._deadline = self._clock() + self.timeout_seconds
        if self._timer_factory is not None:
            timer = self._timer_factory(self.timeout_seconds, self._on_timeout, args=(self._generation,))
            timer.daemon = True
            timer.start()
            self._timer = timer

    def _disarm(self) -> None:
        self._generation += 1
        self._deadline = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state != GateState.AUTHENTICATED:
                return
            self._expire("inactivity timer fired")

    def _expire_if_due(self) -> None:
        if (self._state == GateState.AUTHENTICATED and self._deadline is not None
                and self._clock() >= self._deadline):
            self._expire("inactivity deadline passed")

    def _expire(self, reason: str) -> None:
        self._disarm()
        self._state = GateState.LOCKED
        logger.info(f"Teacher session expired ({reason}).")


class LoginThrottle:
    """
    Refuses logins for `lockout_seconds` after `max_attempts` consecutive failures.
    One instance is shared by every client of a process, so reloading a page does not
    reset the count. The count starts over once a lockout has run out.
    """

    def __init__(self, max_attempts: int, lockout_seconds: float, clock: Callable[[], float] = time.monotonic):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._locked_until: Optional[float] = None

    @property
    def failures(self) -> int:
        return self._failures

    def retry_after(self) -> Optional[float]:
        with self._lock:
            if self._locked_until is None:
                return None
            remaining = self._locked_until - self._clock()
            if remaining <= 0:
                self._locked_until = None
                self._failures = 0
                return None
            return remaining

    def note_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.max_attempts:
                self._locked_until = self._clock() + self.lockout_seconds
                logger.warning(f"Teacher login locked for {self.lockout_seconds:.0f}s "
                               f"after {self._failures} failed attempts.")

    def reset(self) -> None:
        with self._lock:
            self._failures = 0
            self._locked_until = None


@dataclass
class LoginResult:
    authenticated: bool
    retry_after: Optional[float] = None # set when the attempt was refused without checking

def attempt_login(gate: TeacherAuthGate, throttle: LoginThrottle, password: str) -> LoginResult:
    """One login attempt through the throttle; shared by the API and the dashboard."""
    retry_after = throttle.retry_after()
    if retry_after is not None:
        return LoginResult(authenticated=False, retry_after=retry_after)
    if gate.authenticate(password):
        throttle.reset()
        return LoginResult(authenticated=True)
    throttle.note_failure()
    return LoginResult(authenticated=False)
