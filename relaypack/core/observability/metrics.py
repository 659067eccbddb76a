from __future__ import annotations

from collections import Counter
from typing import Dict

from prometheus_client import Counter as PromCounter
from prometheus_client import Histogram

# In-process counters (snapshot-able, reset between tests)
_STEPS = Counter()
_NAMED = Counter()

_PROM_STEPS = PromCounter(
    "relaypack_pipeline_steps_total",
    "Pipeline step executions",
    ["step", "outcome"],
)

_PROM_STEP_SECONDS = Histogram(
    "relaypack_pipeline_step_seconds",
    "Wall time spent in a pipeline step",
    ["step"],
    buckets=(1, 5, 15, 60, 300, 900, 1800, 3600, float("inf")),
)

_PROM_RUNS = PromCounter(
    "relaypack_pipeline_runs_total",
    "Pipeline runs by final state",
    ["state"],
)

_PROM_HTTP = PromCounter(
    "relaypack_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)


def reset_metrics() -> None:
    """
    Test helper: clears in-process counters to avoid cross-test leakage.
    Prometheus collectors are process-global and are not reset.
    """
    _STEPS.clear()
    _NAMED.clear()


def observe_step(step: str, outcome: str, seconds: float) -> None:
    _STEPS[f"{step}|{outcome}"] += 1
    _PROM_STEPS.labels(step=step, outcome=outcome).inc()
    _PROM_STEP_SECONDS.labels(step=step).observe(max(0.0, seconds))


def observe_run(state: str) -> None:
    _NAMED[f"runs_{state}"] += 1
    _PROM_RUNS.labels(state=state).inc()


def inc_http(method: str, path: str, status: int | None = None) -> None:
    m = (method or "UNKNOWN").upper()
    s = status if status is not None else "unknown"
    _NAMED["requests_total"] += 1
    _PROM_HTTP.labels(method=m, path=path or "/", status=str(s)).inc()


def inc_named(name: str, value: int = 1) -> None:
    _NAMED[name] += int(value)


def snapshot() -> Dict[str, int]:
    out: Dict[str, int] = {}
    out.update({f"step:{k}": v for k, v in _STEPS.items()})
    out.update(dict(_NAMED))
    return out
