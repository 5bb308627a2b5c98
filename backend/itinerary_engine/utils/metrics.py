"""Prometheus metrics for parsing, execution and batch validation."""

from prometheus_client import Counter, Histogram

# Parser metrics
intent_parse_total = Counter(
    "intent_parse_total",
    "Parsed messages by producing tier and intent type",
    ["method", "intent"],
)

llm_calls_total = Counter(
    "llm_calls_total",
    "LLM fallback calls by outcome",
    ["outcome"],
)

llm_latency_ms = Histogram(
    "llm_latency_ms",
    "LLM fallback latency in milliseconds",
    ["outcome"],
    buckets=[50, 100, 250, 500, 1000, 2000, 4000, 8000, 16000],
)

# Executor metrics
action_executions_total = Counter(
    "action_executions_total",
    "Executed intents by outcome",
    ["intent", "outcome"],
)

action_latency_ms = Histogram(
    "action_latency_ms",
    "Intent execution latency in milliseconds",
    ["intent"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

# Batch metrics
validation_issues_total = Counter(
    "validation_issues_total",
    "Issues reported by the batch validator",
    ["type", "severity"],
)

remediation_changes_total = Counter(
    "remediation_changes_total",
    "Automatic corrections applied by the remediator",
    ["type"],
)


class PrometheusEngineMetrics:
    """Prometheus-based engine metrics implementation."""

    def inc_parse(self, method: str, intent: str) -> None:
        """Count a parsed message."""
        intent_parse_total.labels(method=method, intent=intent).inc()

    def record_llm_call(self, outcome: str, latency_ms: float) -> None:
        """Record an LLM call outcome and latency."""
        llm_calls_total.labels(outcome=outcome).inc()
        llm_latency_ms.labels(outcome=outcome).observe(latency_ms)

    def record_execution(self, intent: str, outcome: str, latency_ms: float) -> None:
        """Record an executor run."""
        action_executions_total.labels(intent=intent, outcome=outcome).inc()
        action_latency_ms.labels(intent=intent).observe(latency_ms)

    def inc_issue(self, issue_type: str, severity: str) -> None:
        """Count a validation issue."""
        validation_issues_total.labels(type=issue_type, severity=severity).inc()

    def inc_remediation(self, change_type: str) -> None:
        """Count a remediation change."""
        remediation_changes_total.labels(type=change_type).inc()
