# agent_runtime/config.py
import os
from dotenv import load_dotenv
from .errors import ConfigError
from .retry import RetryPolicy

load_dotenv()

def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")

def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")

# Retry / timeouts
MAX_RETRIES = _int_env("MAX_RETRIES", 10)
TEST_STEP_EXECUTION_RETRY_INTERVAL_MILLIS = _int_env("TEST_STEP_EXECUTION_RETRY_INTERVAL_MILLIS", 1000)
TEST_STEP_EXECUTION_RETRY_TIMEOUT_MILLIS = _int_env("TEST_STEP_EXECUTION_RETRY_TIMEOUT_MILLIS", 10000)
VERIFICATION_RETRY_TIMEOUT_MILLIS = _int_env("VERIFICATION_RETRY_TIMEOUT_MILLIS", 10000)
RETRY_BACKOFF_MULTIPLIER = _float_env("RETRY_BACKOFF_MULTIPLIER", 1.0)
RETRY_MAX_DELAY_MILLIS = _int_env("RETRY_MAX_DELAY_MILLIS", 0)

# Budgets
AGENT_TOKEN_BUDGET = _int_env("AGENT_TOKEN_BUDGET", 1000000)
AGENT_TOOL_CALLS_BUDGET = _int_env("AGENT_TOOL_CALLS_BUDGET", 5)
AGENT_EXECUTION_TIME_BUDGET_SECONDS = _int_env("AGENT_EXECUTION_TIME_BUDGET_SECONDS", 3000)

# Vector DB
VECTOR_DB_URL = os.getenv("VECTOR_DB_URL", "http://localhost:6333")
VECTOR_DB_KEY = os.getenv("VECTOR_DB_KEY", "")
VECTOR_DB_COLLECTION = os.getenv("VECTOR_DB_COLLECTION", "ui_elements")
VECTOR_DB_STARTUP_MAX_RETRIES = _int_env("VECTOR_DB_STARTUP_MAX_RETRIES", 0)
VECTOR_DB_STARTUP_RETRY_DELAY_MILLIS = _int_env("VECTOR_DB_STARTUP_RETRY_DELAY_MILLIS", 1000)

# Retrieval / matching
EMBEDDING_MODEL_NAME = os.getenv("EMBEDDING_MODEL_NAME", "BAAI/bge-small-en-v1.5")
RETRIEVER_TOP_N = _int_env("RETRIEVER_TOP_N", 5)
ELEMENT_RETRIEVAL_MIN_TARGET_SCORE = _float_env("ELEMENT_RETRIEVAL_MIN_TARGET_SCORE", 0.85)
VISUAL_SIMILARITY_THRESHOLD = _float_env("VISUAL_SIMILARITY_THRESHOLD", 0.8)
TEMPLATE_MATCH_MERGE_THRESHOLD = _float_env("TEMPLATE_MATCH_MERGE_THRESHOLD", 0.3)

# Display
DISPLAY_SCALE_X = _float_env("DISPLAY_SCALE_X", 1.0)
DISPLAY_SCALE_Y = _float_env("DISPLAY_SCALE_Y", 1.0)

# Observability (0 disables the exporter)
PROMETHEUS_METRICS_PORT = _int_env("PROMETHEUS_METRICS_PORT", 0)


def action_retry_policy():
    return RetryPolicy(
        max_retries=MAX_RETRIES,
        base_delay_millis=TEST_STEP_EXECUTION_RETRY_INTERVAL_MILLIS,
        timeout_millis=TEST_STEP_EXECUTION_RETRY_TIMEOUT_MILLIS,
        backoff_multiplier=RETRY_BACKOFF_MULTIPLIER,
        max_delay_millis=RETRY_MAX_DELAY_MILLIS,
    )

def verification_retry_policy():
    return RetryPolicy(
        max_retries=MAX_RETRIES,
        base_delay_millis=TEST_STEP_EXECUTION_RETRY_INTERVAL_MILLIS,
        timeout_millis=VERIFICATION_RETRY_TIMEOUT_MILLIS,
        backoff_multiplier=RETRY_BACKOFF_MULTIPLIER,
        max_delay_millis=RETRY_MAX_DELAY_MILLIS,
    )

def vector_db_startup_policy():
    return RetryPolicy(
        max_retries=VECTOR_DB_STARTUP_MAX_RETRIES,
        base_delay_millis=VECTOR_DB_STARTUP_RETRY_DELAY_MILLIS,
        timeout_millis=0,
        backoff_multiplier=2.0,
    )
