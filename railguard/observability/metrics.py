"""
Metrics definitions for RailGuard.

This module defines Prometheus metrics for monitoring the GPS
locating and alerting pipeline.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
fixes_received = Counter(
    "gps_fixes_received_total",
    "Number of raw GPS fixes received",
    ["source"]
)

fixes_rejected = Counter(
    "gps_fixes_rejected_total",
    "Number of GPS fixes rejected before locating",
    ["reason"]
)

fixes_located = Counter(
    "gps_fixes_located_total",
    "Number of GPS fixes projected onto track geometry",
    ["confidence"]
)

alerts_emitted = Counter(
    "alerts_emitted_total",
    "Number of alert events emitted",
    ["type", "level"]
)

alerts_suppressed = Counter(
    "alerts_suppressed_total",
    "Number of alerts suppressed by cooldown",
    ["type"]
)

delivery_failures = Counter(
    "alert_delivery_failures_total",
    "Alert persistence or notification failures",
    ["sink"]
)

monitor_ticks_skipped = Counter(
    "proximity_ticks_skipped_total",
    "Proximity monitor ticks skipped because the previous tick was still running"
)

publish_retries = Counter(
    "publish_retries_total",
    "MQTT publish retries",
    ["topic"]
)

# 히스토그램 메트릭
locate_seconds = Histogram(
    "locate_duration_seconds",
    "Time spent projecting a fix onto track geometry",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5]
)

gps_update_seconds = Histogram(
    "gps_update_duration_seconds",
    "Total GPS update processing latency",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

monitor_tick_seconds = Histogram(
    "proximity_tick_duration_seconds",
    "Time spent in one proximity monitor tick",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

# 게이지 메트릭
monitor_pairs_checked = Gauge(
    "proximity_pairs_checked",
    "Overlapping authority pairs checked in the last tick"
)

cooldown_entries = Gauge(
    "cooldown_cache_entries",
    "Current number of entries in the alert cooldown cache"
)

outbox_size = Gauge(
    "outbox_size",
    "Current number of items in the notification outbox"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
