"""
Prometheus metrics for application monitoring.

This module defines all Prometheus metrics used throughout the application:
- API request metrics (requests, duration, in-progress)
- File lifecycle metrics (uploads, downloads, evictions)
- Reclaimer metrics (runs, duration, orphans)
- Storage metrics (files, bytes)
"""
from prometheus_client import Counter, Gauge, Histogram, Info


# ============================================================================
# API Metrics
# ============================================================================

api_requests_total = Counter(
    "api_requests_total",
    "Total number of API requests",
    ["method", "endpoint", "status"],
)

api_request_duration_seconds = Histogram(
    "api_request_duration_seconds",
    "API request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 300.0, 1800.0],
)

api_requests_in_progress = Gauge(
    "api_requests_in_progress",
    "Number of API requests currently being processed",
    ["method", "endpoint"],
)

api_rate_limit_exceeded_total = Counter(
    "api_rate_limit_exceeded_total",
    "Requests rejected by the per-client rate limiter",
)


# ============================================================================
# File Lifecycle Metrics
# ============================================================================

files_uploaded_total = Counter(
    "files_uploaded_total",
    "Total number of files admitted",
)

files_uploaded_bytes_total = Counter(
    "files_uploaded_bytes_total",
    "Total bytes admitted",
)

upload_size_bytes = Histogram(
    "upload_size_bytes",
    "Size of admitted uploads",
    buckets=[
        1_024,            # 1 KB
        1_048_576,        # 1 MB
        10_485_760,       # 10 MB
        104_857_600,      # 100 MB
        1_073_741_824,    # 1 GB
        10_737_418_240,   # 10 GB
        53_687_091_200,   # 50 GB
    ],
)

uploads_rejected_total = Counter(
    "uploads_rejected_total",
    "Uploads rejected during admission",
    ["reason"],
)

downloads_total = Counter(
    "downloads_total",
    "Downloads started (counted before streaming)",
)

downloads_bytes_total = Counter(
    "downloads_bytes_total",
    "Bytes served by started downloads",
)

downloads_denied_total = Counter(
    "downloads_denied_total",
    "Download attempts that were refused",
    ["reason"],
)

evictions_total = Counter(
    "evictions_total",
    "Objects removed from storage",
    ["reason", "trigger"],
)


# ============================================================================
# Reclaimer Metrics
# ============================================================================

reclaim_runs_total = Counter(
    "reclaim_runs_total",
    "Background reclaimer runs",
    ["sweep"],
)

reclaim_duration_seconds = Histogram(
    "reclaim_duration_seconds",
    "Duration of reclaimer sweeps",
    ["sweep"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300],
)

reclaim_errors_total = Counter(
    "reclaim_errors_total",
    "Per-record failures during reclaimer sweeps",
    ["sweep"],
)

orphans_removed_total = Counter(
    "orphans_removed_total",
    "Stored blobs removed because no ledger record referenced them",
)

reclaim_last_success_timestamp = Gauge(
    "reclaim_last_success_timestamp_seconds",
    "Unix time of the last completed reclaimer run",
)


# ============================================================================
# Storage Metrics
# ============================================================================

storage_files = Gauge(
    "storage_files",
    "Number of objects in the ledger",
)

storage_used_bytes = Gauge(
    "storage_used_bytes",
    "Total bytes of objects in the ledger",
)


# ============================================================================
# System Metrics
# ============================================================================

app_info = Info(
    "app",
    "Application information",
)

app_uptime_seconds = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)


# ============================================================================
# Helper Functions
# ============================================================================

def record_api_request(method: str, endpoint: str, status: int, duration: float):
    """Record API request metrics."""
    api_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
    api_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)


def record_upload(size_bytes: int):
    """Record an admitted upload."""
    files_uploaded_total.inc()
    files_uploaded_bytes_total.inc(size_bytes)
    upload_size_bytes.observe(size_bytes)


def record_upload_rejected(reason: str):
    """Record an upload refused during admission."""
    uploads_rejected_total.labels(reason=reason).inc()


def record_download(size_bytes: int):
    """Record a started download."""
    downloads_total.inc()
    downloads_bytes_total.inc(size_bytes)


def record_download_denied(reason: str):
    """Record a refused download (not_found or gone)."""
    downloads_denied_total.labels(reason=reason).inc()


def record_eviction(reason: str, trigger: str):
    """Record an object removal."""
    evictions_total.labels(reason=reason, trigger=trigger).inc()


def record_reclaim_run(sweep: str, duration_seconds: float, errors: int):
    """Record one reclaimer sweep."""
    reclaim_runs_total.labels(sweep=sweep).inc()
    reclaim_duration_seconds.labels(sweep=sweep).observe(duration_seconds)
    if errors:
        reclaim_errors_total.labels(sweep=sweep).inc(errors)


def record_orphans_removed(count: int):
    """Record removed orphan blobs."""
    if count:
        orphans_removed_total.inc(count)


def update_storage_metrics(total_files: int, total_bytes: int):
    """Update storage gauges from ledger aggregates."""
    storage_files.set(total_files)
    storage_used_bytes.set(total_bytes)
