from prometheus_client import start_http_server, Counter, Histogram
import threading
from .logger import log

# Metrics
VERIFICATION_ATTEMPTS = Counter("agent_verification_attempts_total", "Total verification check attempts")
VERIFICATION_OUTCOMES = Counter("agent_verification_outcomes_total", "Finished verifications by outcome", ["outcome"])
TOKENS_CONSUMED = Counter("agent_tokens_consumed_total", "Model tokens consumed", ["model", "kind"])
BUDGET_VIOLATIONS = Counter("agent_budget_violations_total", "Budget checks that failed", ["budget"])
TEMPLATE_MATCH_SECONDS = Histogram("agent_template_match_seconds", "Duration of template matching on a screenshot")

_metrics_server_started = False
_metrics_lock = threading.Lock()

def start_metrics_server(port: int) -> bool:
    global _metrics_server_started
    if port <= 0:
        return False
    with _metrics_lock:
        if _metrics_server_started:
            return True
        start_http_server(port)
        _metrics_server_started = True
        log("INFO", "metrics_server_started", f"Prometheus metrics server started on port {port}")
        return True
