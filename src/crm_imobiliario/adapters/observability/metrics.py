from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

registry = CollectorRegistry()

FEED_EVENTS_PUBLISHED = Counter(
    "crm_feed_events_published_total",
    "Eventos publicados no feed de mudancas",
    ["backend", "table", "kind"],
    registry=registry,
)

STORE_REQUEST_LATENCY = Histogram(
    "crm_store_request_seconds",
    "Latencia das chamadas ao record store",
    ["backend", "operation"],
    registry=registry,
)

FEED_EVENTS_APPLIED = Counter(
    "crm_feed_events_applied_total",
    "Eventos do feed aplicados aos caches",
    ["table", "kind"],
    registry=registry,
)

FEED_EVENTS_IGNORED = Counter(
    "crm_feed_events_ignored_total",
    "Eventos do feed descartados pelos caches (duplicados, ids desconhecidos, malformados)",
    ["table", "kind"],
    registry=registry,
)

STAGE_TRANSITIONS = Counter(
    "crm_stage_transitions_total",
    "Transicoes de estagio solicitadas",
    ["table", "stage", "outcome"],
    registry=registry,
)

WEBHOOK_DELIVERIES = Counter(
    "crm_webhook_deliveries_total",
    "Entregas de webhooks de automacao",
    ["event", "status"],
    registry=registry,
)

WEBHOOK_LATENCY = Histogram(
    "crm_webhook_request_seconds",
    "Latencia das entregas de webhooks",
    ["event"],
    registry=registry,
)


def render_latest() -> tuple[bytes, str]:
    """Payload no formato de exposição do Prometheus + content-type."""
    return generate_latest(registry), CONTENT_TYPE_LATEST
