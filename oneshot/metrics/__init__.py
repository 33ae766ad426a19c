"""
Metrics module for application monitoring.

This module provides Prometheus metrics collection and helper functions.
"""
from oneshot.metrics.prometheus import (
    # API Metrics
    api_requests_total,
    api_request_duration_seconds,
    api_requests_in_progress,
    api_rate_limit_exceeded_total,

    # File Lifecycle Metrics
    files_uploaded_total,
    files_uploaded_bytes_total,
    upload_size_bytes,
    uploads_rejected_total,
    downloads_total,
    downloads_bytes_total,
    downloads_denied_total,
    evictions_total,

    # Reclaimer Metrics
    reclaim_runs_total,
    reclaim_duration_seconds,
    reclaim_errors_total,
    orphans_removed_total,
    reclaim_last_success_timestamp,

    # Storage Metrics
    storage_files,
    storage_used_bytes,

    # System Metrics
    app_info,
    app_uptime_seconds,

    # Helper Functions
    record_api_request,
    record_upload,
    record_upload_rejected,
    record_download,
    record_download_denied,
    record_eviction,
    record_reclaim_run,
    record_orphans_removed,
    update_storage_metrics,
)

__all__ = [
    # API Metrics
    "api_requests_total",
    "api_request_duration_seconds",
    "api_requests_in_progress",
    "api_rate_limit_exceeded_total",

    # File Lifecycle Metrics
    "files_uploaded_total",
    "files_uploaded_bytes_total",
    "upload_size_bytes",
    "uploads_rejected_total",
    "downloads_total",
    "downloads_bytes_total",
    "downloads_denied_total",
    "evictions_total",

    # Reclaimer Metrics
    "reclaim_runs_total",
    "reclaim_duration_seconds",
    "reclaim_errors_total",
    "orphans_removed_total",
    "reclaim_last_success_timestamp",

    # Storage Metrics
    "storage_files",
    "storage_used_bytes",

    # System Metrics
    "app_info",
    "app_uptime_seconds",

    # Helper Functions
    "record_api_request",
    "record_upload",
    "record_upload_rejected",
    "record_download",
    "record_download_denied",
    "record_eviction",
    "record_reclaim_run",
    "record_orphans_removed",
    "update_storage_metrics",
]
