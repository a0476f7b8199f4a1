"""Named dashboard metrics and their cache lifetimes"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Tuple

from callinsight.metrics import queries

LIVE_CALLS = "live_calls"
CALL_SUMMARY = "call_summary"
LEAD_QUALITY = "lead_quality"
CTA_SUMMARY = "cta_summary"
AGENT_PERFORMANCE = "agent_performance"
AGENTS = "agents"


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    ttl: float
    compute: Callable[..., Awaitable[Any]]
    requires_agent: bool = False
    windowed: bool = True
    refreshed_by_ingestion: bool = True


METRICS: Dict[str, MetricDefinition] = {
    definition.name: definition
    for definition in (
        MetricDefinition(LIVE_CALLS, ttl=30, compute=queries.live_calls, windowed=False),
        MetricDefinition(CALL_SUMMARY, ttl=300, compute=queries.call_summary),
        MetricDefinition(LEAD_QUALITY, ttl=300, compute=queries.lead_quality),
        MetricDefinition(CTA_SUMMARY, ttl=300, compute=queries.cta_summary),
        MetricDefinition(
            AGENT_PERFORMANCE,
            ttl=300,
            compute=queries.agent_performance,
            requires_agent=True,
        ),
        MetricDefinition(
            AGENTS,
            ttl=1800,
            compute=queries.agents,
            windowed=False,
            refreshed_by_ingestion=False,
        ),
    )
}

# Metrics whose cached values go stale when a call is ingested
INGESTION_METRICS: Tuple[str, ...] = tuple(
    name for name, definition in METRICS.items()
    if definition.refreshed_by_ingestion and not definition.requires_agent
)


def get_metric(name: str) -> MetricDefinition:
    """Raises KeyError for unknown metric names"""
    return METRICS[name]
