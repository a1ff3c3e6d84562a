# agent_runtime/verification_manager.py
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError, wait
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from . import config, metrics
from .budget_manager import BudgetManager
from .errors import BudgetExceededError, VerificationInProgressError, VerificationManagerError
from .logger import log, log_exception
from .retry import RetryPolicy

DEFAULT_CANCEL_GRACE_MILLIS = 5000
DEFAULT_CLOSE_TIMEOUT_MILLIS = 5000


class VerificationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class VerificationSnapshot:
    success: bool
    message: str
    payload: Any = None
    screenshot: Any = None
    attempt: int = 0


def _to_snapshot(result: Any, screenshot: Any, attempt: int) -> VerificationSnapshot:
    if isinstance(result, VerificationSnapshot):
        if result.screenshot is None:
            result.screenshot = screenshot
        result.attempt = attempt
        return result
    if isinstance(result, bool):
        return VerificationSnapshot(result, "Verification passed" if result else "Verification failed",
                                    screenshot=screenshot, attempt=attempt)
    if isinstance(result, tuple) and 2 <= len(result) <= 4:
        success, message = bool(result[0]), str(result[1])
        payload = result[2] if len(result) >= 3 else None
        # a screenshot returned by the check wins over the captured frame
        if len(result) == 4 and result[3] is not None:
            screenshot = result[3]
        return VerificationSnapshot(success, message, payload, screenshot, attempt)
    raise TypeError(f"Unsupported verification check result: {type(result).__name__}")


class VerificationManager:
    """
    Runs a verification check repeatedly on a dedicated worker thread until it
    passes or the retry policy is exhausted.

    Every attempt captures fresh screen state right before calling the check,
    and its outcome becomes the latest snapshot. Exhaustion is not an error:
    the latest (failed) snapshot is what the waiting caller gets back.
    Cancellation is advisory and only takes effect between attempts.
    """

    def __init__(self, capture: Callable[[], Any], policy: Optional[RetryPolicy] = None,
                 budget: Optional[BudgetManager] = None,
                 cancel_grace_millis: int = DEFAULT_CANCEL_GRACE_MILLIS,
                 close_timeout_millis: int = DEFAULT_CLOSE_TIMEOUT_MILLIS):
        self.capture = capture
        self.default_policy = policy or config.verification_retry_policy()
        self.budget = budget
        self.cancel_grace_millis = cancel_grace_millis
        self.close_timeout_millis = close_timeout_millis
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="verification")
        self._lock = threading.Lock()
        self._current: Optional[Future] = None
        self._current_policy: Optional[RetryPolicy] = None
        self._cancel_event = threading.Event()
        self._last_snapshot: Optional[VerificationSnapshot] = None
        self._state = VerificationState.IDLE
        self._attempts = 0
        self._closed = False

    # -------------------------
    # Lifecycle
    # -------------------------
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._cancel_event.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
        current = self._current
        if current is not None and not current.done():
            done, _ = wait([current], timeout=self.close_timeout_millis / 1000)
            if not done:
                log("WARN", "verification_close_timeout", "Verification worker did not terminate in time",
                    timeout_ms=self.close_timeout_millis)
                return
        # worker is idle at this point, joining its thread returns promptly
        self._executor.shutdown(wait=True)
        log("DEBUG", "verification_manager_closed", "Verification manager closed")

    # -------------------------
    # Accessors
    # -------------------------
    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_snapshot(self) -> Optional[VerificationSnapshot]:
        return self._last_snapshot

    def is_running(self) -> bool:
        current = self._current
        return current is not None and not current.done()

    # -------------------------
    # Submit / wait
    # -------------------------
    def submit(self, check: Callable[[Any], Any], policy: Optional[RetryPolicy] = None,
               description: str = "") -> None:
        if self._closed:
            raise VerificationManagerError("Verification manager is closed")
        with self._lock:
            self._stop_in_flight()
            policy = policy or self.default_policy
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            self._current_policy = policy
            self._last_snapshot = None
            self._attempts = 0
            self._state = VerificationState.RUNNING
            self._current = self._executor.submit(self._run, check, policy, cancel_event, description)
        log("INFO", "verification_submitted", "Verification submitted", description=description,
            max_retries=policy.max_retries, timeout_ms=policy.timeout_millis)

    def _stop_in_flight(self):
        current = self._current
        if current is None or current.done():
            return
        log("WARN", "verification_replacing", "A verification is still running, cancelling it before resubmitting")
        self._cancel_event.set()
        done, _ = wait([current], timeout=self.cancel_grace_millis / 1000)
        if not done:
            raise VerificationInProgressError(
                f"Previous verification did not stop within {self.cancel_grace_millis} ms")

    def cancel(self):
        current = self._current
        if current is None or current.done():
            return
        self._cancel_event.set()
        current.cancel()
        log("INFO", "verification_cancel_requested", "Verification cancellation requested")

    def wait_for_completion(self, timeout_millis: Optional[int] = None) -> VerificationSnapshot:
        current = self._current
        if current is None:
            raise VerificationManagerError("No verification has been submitted")
        if timeout_millis is None:
            timeout_millis = self._current_policy.timeout_millis
        timeout = timeout_millis / 1000 if timeout_millis > 0 else None

        log("INFO", "verification_waiting", "Waiting for verification to finish", timeout_ms=timeout_millis)
        try:
            return current.result(timeout=timeout)
        except FutureTimeoutError:
            log("WARN", "verification_wait_timeout",
                "Timeout while waiting for verification to finish, cancelling it and returning the last known result",
                attempts=self._attempts)
            self._cancel_event.set()
            current.cancel()
            if self._state == VerificationState.RUNNING:
                self._state = VerificationState.TIMED_OUT
                metrics.VERIFICATION_OUTCOMES.labels(outcome=self._state.value).inc()
            return self._last_snapshot or VerificationSnapshot(
                False, f"Verification did not complete within {timeout_millis} ms", attempt=self._attempts)
        except CancelledError:
            # cancelled before the worker picked it up
            if self._state == VerificationState.RUNNING:
                self._state = VerificationState.CANCELLED
                metrics.VERIFICATION_OUTCOMES.labels(outcome=self._state.value).inc()
            return self._last_snapshot or VerificationSnapshot(
                False, "Verification was cancelled before any attempt", attempt=self._attempts)
        except Exception as e:
            log_exception("verification_task_failed", "Verification task failed unexpectedly", e)
            if self._last_snapshot is not None:
                return self._last_snapshot
            return VerificationSnapshot(False, f"Verification error: {e}", attempt=self._attempts)

    # -------------------------
    # Worker
    # -------------------------
    def _run(self, check: Callable[[Any], Any], policy: RetryPolicy, cancel_event: threading.Event,
             description: str) -> VerificationSnapshot:
        try:
            return self._loop(check, policy, cancel_event, description)
        except Exception:
            if self._state == VerificationState.RUNNING:
                self._state = VerificationState.FAILED
                metrics.VERIFICATION_OUTCOMES.labels(outcome=VerificationState.FAILED.value).inc()
            raise

    def _loop(self, check: Callable[[Any], Any], policy: RetryPolicy, cancel_event: threading.Event,
              description: str) -> VerificationSnapshot:
        start = time.monotonic()
        log("INFO", "verification_started", "Starting the retriable verification", description=description)
        while True:
            if cancel_event.is_set():
                return self._finish(VerificationState.CANCELLED, start)

            if self.budget is not None:
                try:
                    self.budget.check_all_budgets()
                except BudgetExceededError as e:
                    self._last_snapshot = VerificationSnapshot(
                        False, str(e), screenshot=getattr(self._last_snapshot, "screenshot", None),
                        attempt=self._attempts)
                    return self._finish(VerificationState.FAILED, start)

            attempt = self._attempts + 1
            log("INFO", "verification_attempt", f"Attempt: {attempt}")
            screenshot = self.capture()
            snapshot = _to_snapshot(check(screenshot), screenshot, attempt)
            self._attempts = attempt
            self._last_snapshot = snapshot
            metrics.VERIFICATION_ATTEMPTS.inc()
            if self.budget is not None:
                self.budget.reset_tool_call_usage()

            if snapshot.success:
                return self._finish(VerificationState.SUCCEEDED, start)

            elapsed_ms = (time.monotonic() - start) * 1000
            if policy.is_time_bounded and elapsed_ms >= policy.timeout_millis:
                return self._finish(VerificationState.FAILED, start)
            if attempt > policy.max_retries:
                return self._finish(VerificationState.FAILED, start)

            if cancel_event.wait(policy.delay_for(attempt - 1) / 1000):
                return self._finish(VerificationState.CANCELLED, start)

    def _finish(self, state: VerificationState, start: float) -> VerificationSnapshot:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        if self._state == VerificationState.RUNNING:
            self._state = state
            metrics.VERIFICATION_OUTCOMES.labels(outcome=state.value).inc()
        snapshot = self._last_snapshot
        if snapshot is None:
            snapshot = VerificationSnapshot(False, "Verification was cancelled before any attempt",
                                            attempt=self._attempts)
            self._last_snapshot = snapshot
        if state == VerificationState.SUCCEEDED:
            log("INFO", "verification_passed", "Verification passed", attempts=self._attempts, elapsed_ms=elapsed_ms)
        else:
            log("WARN", "verification_finished_without_success",
                "Verification finished without success, returning the latest recorded result",
                state=state.value, attempts=self._attempts, elapsed_ms=elapsed_ms)
        return snapshot
