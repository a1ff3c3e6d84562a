# agent_runtime/budget_manager.py
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional
from . import config, metrics
from .errors import BudgetExceededError
from .logger import log


@dataclass
class TokenUsage:
    total: int = 0
    input: int = 0
    output: int = 0
    cached: int = 0

    def add(self, input_tokens: int, output_tokens: int, cached_tokens: int):
        # cached tokens are added on top, never subtracted from the input count
        self.total += input_tokens + output_tokens + cached_tokens
        self.input += input_tokens
        self.output += output_tokens
        self.cached += cached_tokens


class BudgetManager:
    """
    Resource ledger of one test run: token usage (overall and per model), tool
    calls and wall-clock time, each checked against its own ceiling.

    A ceiling <= 0 disables the corresponding check. One instance is created
    per run and handed to every component that calls a model.
    """

    def __init__(self, token_budget: Optional[int] = None, tool_calls_budget: Optional[int] = None,
                 time_budget_seconds: Optional[int] = None):
        self.token_budget = config.AGENT_TOKEN_BUDGET if token_budget is None else token_budget
        self.tool_calls_budget = config.AGENT_TOOL_CALLS_BUDGET if tool_calls_budget is None else tool_calls_budget
        self.time_budget_seconds = (config.AGENT_EXECUTION_TIME_BUDGET_SECONDS
                                    if time_budget_seconds is None else time_budget_seconds)
        self._lock = threading.Lock()
        self._usage = TokenUsage()
        self._usage_by_model: Dict[str, TokenUsage] = {}
        self._tool_calls = 0
        self._started_at = time.monotonic()

    # -------------------------
    # Tokens
    # -------------------------
    def consume_tokens(self, model_id: str, input_tokens: int, output_tokens: int, cached_tokens: int = 0):
        with self._lock:
            self._usage.add(input_tokens, output_tokens, cached_tokens)
            self._usage_by_model.setdefault(model_id, TokenUsage()).add(input_tokens, output_tokens, cached_tokens)
            total = self._usage.total
        metrics.TOKENS_CONSUMED.labels(model=model_id, kind="input").inc(input_tokens)
        metrics.TOKENS_CONSUMED.labels(model=model_id, kind="output").inc(output_tokens)
        metrics.TOKENS_CONSUMED.labels(model=model_id, kind="cached").inc(cached_tokens)
        log("DEBUG", "budget_tokens_consumed", "Model token usage recorded", model=model_id,
            input=input_tokens, output=output_tokens, cached=cached_tokens, total=total)

    def check_token_budget(self):
        total = self.accumulated_total_tokens
        if 0 < self.token_budget < total:
            metrics.BUDGET_VIOLATIONS.labels(budget="tokens").inc()
            log("ERROR", "budget_tokens_exceeded", "Token budget exceeded", used=total, limit=self.token_budget)
            raise BudgetExceededError(f"Token budget exceeded: used {total} of {self.token_budget} tokens")

    check_budget = check_token_budget

    @property
    def accumulated_total_tokens(self) -> int:
        return self._usage.total

    @property
    def accumulated_input_tokens(self) -> int:
        return self._usage.input

    @property
    def accumulated_output_tokens(self) -> int:
        return self._usage.output

    @property
    def accumulated_cached_tokens(self) -> int:
        return self._usage.cached

    def usage_for_model(self, model_id: str) -> TokenUsage:
        with self._lock:
            usage = self._usage_by_model.get(model_id, TokenUsage())
            return TokenUsage(usage.total, usage.input, usage.output, usage.cached)

    # -------------------------
    # Tool calls
    # -------------------------
    def consume_tool_calls(self, count: int = 1):
        with self._lock:
            self._tool_calls += count

    @property
    def tool_calls(self) -> int:
        return self._tool_calls

    def check_tool_call_budget(self):
        calls = self._tool_calls
        if 0 < self.tool_calls_budget < calls:
            metrics.BUDGET_VIOLATIONS.labels(budget="tool_calls").inc()
            log("ERROR", "budget_tool_calls_exceeded", "Tool call budget exceeded",
                used=calls, limit=self.tool_calls_budget)
            raise BudgetExceededError(f"Tool call budget exceeded: {calls} calls of {self.tool_calls_budget} allowed")

    def reset_tool_call_usage(self):
        with self._lock:
            self._tool_calls = 0

    # -------------------------
    # Wall-clock
    # -------------------------
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._started_at

    def check_time_budget(self):
        elapsed = self.elapsed_seconds()
        if 0 < self.time_budget_seconds < elapsed:
            metrics.BUDGET_VIOLATIONS.labels(budget="time").inc()
            log("ERROR", "budget_time_exceeded", "Execution time budget exceeded",
                elapsed_s=round(elapsed, 1), limit_s=self.time_budget_seconds)
            raise BudgetExceededError(
                f"Execution time budget exceeded: {elapsed:.1f}s of {self.time_budget_seconds}s")

    def check_all_budgets(self):
        self.check_token_budget()
        self.check_tool_call_budget()
        self.check_time_budget()

    # -------------------------
    # Run boundary
    # -------------------------
    def reset(self):
        with self._lock:
            self._usage = TokenUsage()
            self._usage_by_model.clear()
            self._tool_calls = 0
            self._started_at = time.monotonic()
        log("INFO", "budget_reset", "Budget ledger reset")

    def usage(self) -> dict:
        with self._lock:
            return {
                "total_tokens": self._usage.total,
                "input_tokens": self._usage.input,
                "output_tokens": self._usage.output,
                "cached_tokens": self._usage.cached,
                "tool_calls": self._tool_calls,
                "elapsed_seconds": round(time.monotonic() - self._started_at, 3),
                "by_model": {model: vars(u).copy() for model, u in self._usage_by_model.items()},
            }
