# src/archivemind/infrastructure/monitoring/metrics.py
"""
Prometheus counters for the channel lifecycle. Exposed by the API under `/metrics`.
"""

from prometheus_client import Counter, Histogram

SWEEPS = Counter("am_sweeps_total", "Completed inactivity sweeps")
SWEEP_DURATION = Histogram("am_sweep_duration_seconds", "Wall time of one inactivity sweep")

WARNINGS_SENT = Counter("am_warnings_sent_total", "Archive warnings posted", ["warning_type"])

ARCHIVES = Counter("am_archives_total", "Archive attempts by outcome", ["outcome"])
RESTORES = Counter("am_restores_total", "Restore attempts by outcome", ["outcome"])
FORGOTTEN = Counter("am_forgotten_deletions_total", "Compliance deletions by outcome", ["outcome"])

RESOURCES_RESCUED = Counter("am_resources_rescued_total", "Resources extracted from history", ["type"])
RESOURCES_SAVED = Counter("am_resources_saved_total", "Resource rows written")
RESOURCE_SAVE_FAILURES = Counter("am_resource_save_failures_total", "Resource rows that failed to persist")

PLATFORM_RETRIES = Counter("am_platform_retries_total", "Platform calls retried after a transient failure")
