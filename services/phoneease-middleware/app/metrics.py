"""Prometheus collectors exported at ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "phoneease_registrations_total",
    "Registration attempts by outcome.",
    ["outcome"],
)

COMPENSATIONS = Counter(
    "phoneease_compensations_total",
    "Sub-account rollbacks attempted after a failed registration step.",
    ["result"],
)

GENERATIONS = Counter(
    "phoneease_generations_total",
    "Generative-text requests by backend and outcome.",
    ["backend", "outcome"],
)
