"""
Prometheus metrics for availability, fulfillment and channel manager calls.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from resort_booking.metrics import fulfillment_outcomes
    >>> fulfillment_outcomes.labels(outcome="confirmed").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Channel Manager API Metrics
# =============================================================================

channel_requests = Counter(
    "resort_channel_requests_total",
    "Total channel manager API requests made",
    ["endpoint", "method", "status_code"],
)
"""
Counter for channel manager API requests.

Labels:
    endpoint: API endpoint path (e.g., "rates", "reservations")
    method: HTTP method
    status_code: HTTP status code, or "error" when no response was received
"""

channel_latency = Histogram(
    "resort_channel_latency_seconds",
    "Channel manager API request latency in seconds",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

# =============================================================================
# Availability Metrics
# =============================================================================

availability_remote_fallbacks = Counter(
    "resort_availability_remote_fallbacks_total",
    "Availability checks that fell back to the local ledger because the channel call failed",
    ["operation"],
)
"""
Labels:
    operation: availability, calendar or fulfillment
"""

rate_cache_hits = Counter(
    "resort_rate_cache_hits_total",
    "Day-rate cache hits for the availability calendar",
)

rate_cache_misses = Counter(
    "resort_rate_cache_misses_total",
    "Day-rate cache misses for the availability calendar",
)

# =============================================================================
# Fulfillment Metrics
# =============================================================================

fulfillment_outcomes = Counter(
    "resort_fulfillment_outcomes_total",
    "Outcomes of booking fulfillment attempts",
    ["outcome"],
)
"""
Labels:
    outcome: confirmed, already_fulfilled or insufficient_availability
"""

allocation_races = Counter(
    "resort_allocation_races_total",
    "Allocations rejected by the per-unit overlap constraint",
)

remote_reservation_failures = Counter(
    "resort_remote_reservation_failures_total",
    "Channel reservation calls that failed after local allocation",
    ["operation"],
)
"""
Labels:
    operation: create or cancel
"""

unsynced_booking_units = Gauge(
    "resort_unsynced_booking_units",
    "Allocated units of confirmed bookings with no channel reservation id",
)
"""Gauge set by the maintenance job; anything above zero needs reconciliation."""

bookings_cancelled = Counter(
    "resort_bookings_cancelled_total",
    "Bookings moved to CANCELLED",
    ["reason"],
)

# =============================================================================
# Affiliate and Notification Metrics
# =============================================================================

commissions_recorded = Counter(
    "resort_commissions_recorded_total",
    "Affiliate commission records created",
)

notifications_sent = Counter(
    "resort_notifications_total",
    "Notification delivery attempts",
    ["kind", "status"],
)
"""
Labels:
    kind: BOOKING_CONFIRMATION, BOOKING_CANCELLATION or COMMISSION_EARNED
    status: sent or failed
"""
