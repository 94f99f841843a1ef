from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)
BOOKING_ACTIONS = ("created", "conflict", "confirmed", "cancelled", "rescheduled")


class Metrics:
    """Prometheus collectors for the booking service.

    Every ``record_*`` call is a no-op while disabled, so call sites never
    check the flag themselves.
    """

    def __init__(self, enabled: bool = False) -> None:
        self._configure(enabled)

    def _configure(self, enabled: bool) -> None:
        self.enabled = enabled
        self.registry = CollectorRegistry(auto_describe=True)
        self.bookings: Counter | None = None
        self.authorization_decisions: Counter | None = None
        self.http_5xx: Counter | None = None
        self.http_latency: Histogram | None = None
        if not enabled:
            return

        self.bookings = Counter(
            "bookings_total",
            "Booking scheduler outcomes by action.",
            ["action"],
            registry=self.registry,
        )
        self.authorization_decisions = Counter(
            "authorization_decisions_total",
            "Access resolver decisions.",
            ["result"],
            registry=self.registry,
        )
        self.http_5xx = Counter(
            "http_5xx_total",
            "Server error responses by route template.",
            ["method", "path"],
            registry=self.registry,
        )
        self.http_latency = Histogram(
            "http_request_latency_seconds",
            "Request latency by route template.",
            ["method", "path", "status_class"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )
        # Pre-create booking series so dashboards see zeroes instead of gaps.
        for action in BOOKING_ACTIONS:
            self.bookings.labels(action=action)

    def record_booking(self, action: str) -> None:
        if self.bookings is not None:
            self.bookings.labels(action=action).inc()

    def record_authorization(self, allowed: bool) -> None:
        if self.authorization_decisions is not None:
            self.authorization_decisions.labels(result="allow" if allowed else "deny").inc()

    def record_http_5xx(self, method: str, path: str) -> None:
        if self.http_5xx is not None:
            self.http_5xx.labels(method=method, path=path).inc()

    def record_http_latency(self, method: str, path: str, status_code: int, duration_seconds: float) -> None:
        if self.http_latency is None:
            return
        status_class = f"{status_code // 100}xx" if status_code else "unknown"
        self.http_latency.labels(method=method, path=path, status_class=status_class).observe(
            max(0.0, duration_seconds)
        )

    def render(self) -> tuple[bytes, str]:
        if not self.enabled:
            return b"", CONTENT_TYPE_LATEST
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


metrics = Metrics(enabled=False)


def configure_metrics(enabled: bool) -> Metrics:
    """Reset the shared collectors; the module-level instance keeps its identity."""

    metrics._configure(enabled)
    return metrics
