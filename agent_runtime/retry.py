# agent_runtime/retry.py
import functools
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type
from .logger import log


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry settings shared by every operation of the same kind.

    max_retries: retries allowed after the first attempt
    base_delay_millis: pause between attempts
    timeout_millis: overall budget for the sequence, <= 0 means unbounded
    backoff_multiplier: growth factor applied to the delay per attempt
    max_delay_millis: cap for the grown delay, <= 0 means no cap
    """
    max_retries: int
    base_delay_millis: int
    timeout_millis: int
    backoff_multiplier: float = 1.0
    max_delay_millis: int = 0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_millis < 0:
            raise ValueError(f"base_delay_millis must be >= 0, got {self.base_delay_millis}")
        if self.backoff_multiplier < 1.0:
            raise ValueError(f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}")

    @property
    def is_time_bounded(self) -> bool:
        return self.timeout_millis > 0

    def delay_for(self, attempt: int) -> int:
        """Delay in millis to wait after the given 0-based attempt."""
        delay = self.base_delay_millis * (self.backoff_multiplier ** max(attempt, 0))
        if self.max_delay_millis > 0:
            delay = min(delay, self.max_delay_millis)
        return int(delay)


class RetryState:
    """
    Counters of one logical retry sequence. Not meant to be shared between
    sequences; the lock only keeps the counters consistent.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts = 0
        self._start_time: Optional[float] = None

    def reset(self):
        with self._lock:
            self._attempts = 0
            self._start_time = None

    def increment_attempts(self) -> int:
        with self._lock:
            self._attempts += 1
            return self._attempts

    def start_if_not_started(self):
        with self._lock:
            if self._start_time is None:
                self._start_time = time.monotonic()

    @property
    def started(self) -> bool:
        return self._start_time is not None

    def elapsed_millis(self) -> int:
        start = self._start_time
        return 0 if start is None else int((time.monotonic() - start) * 1000)

    @property
    def attempts(self) -> int:
        return self._attempts


def retry(
    policy: RetryPolicy,
    allowed_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    before_try: Callable[[int, BaseException], None] = None
):
    """
    Decorator factory retrying a function according to `policy`.
    allowed_exceptions: exception classes that trigger another attempt.
    before_try: optional callable(attempt_index, error) called before each retry wait (for logging)
    """
    def deco(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            start = time.monotonic()
            for attempt in range(policy.max_retries + 1):
                try:
                    return fn(*args, **kwargs)
                except allowed_exceptions as e:
                    elapsed_ms = (time.monotonic() - start) * 1000
                    out_of_time = policy.is_time_bounded and elapsed_ms >= policy.timeout_millis
                    if attempt >= policy.max_retries or out_of_time:
                        log("ERROR", "retry_failed", f"{fn.__name__} failed after {attempt + 1} attempt(s)",
                            error=str(e))
                        raise
                    if before_try:
                        before_try(attempt, e)
                    wait_ms = policy.delay_for(attempt)
                    log("WARN", "retry_attempt",
                        f"Retrying {fn.__name__} in {wait_ms}ms (Attempt {attempt + 1}/{policy.max_retries + 1})",
                        error=str(e))
                    time.sleep(wait_ms / 1000)
        return wrapper
    return deco
