"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_deliveries = Counter(
    "clabot_webhook_deliveries_total",
    "Total GitHub webhook deliveries",
    ["event", "outcome"],
)

# Compliance metrics
pr_decisions = Counter(
    "clabot_pr_decisions_total",
    "Total decisions applied to pull requests",
    ["kind", "conclusion"],
)

# Recheck metrics
recheck_runs = Counter(
    "clabot_recheck_runs_total",
    "Total bulk recheck runs",
    ["trigger", "status"],
)

recheck_duration = Histogram(
    "clabot_recheck_duration_seconds",
    "Bulk recheck run duration",
    ["trigger"],
)

recheck_schedule_failures = Counter(
    "clabot_recheck_schedule_failures_total",
    "Bulk recheck runs that could not be scheduled",
    ["trigger"],
)

# GitHub metrics
github_api_errors = Counter(
    "clabot_github_api_errors_total",
    "GitHub API calls that failed",
    ["operation"],
)
