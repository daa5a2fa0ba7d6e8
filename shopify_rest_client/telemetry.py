"""OpenTelemetry helpers for metrics instrumentation."""

from typing import Optional

try:
    from opentelemetry import metrics
except ImportError:  # pragma: no cover
    metrics = None


_request_duration_histogram = None


def get_request_duration_histogram() -> Optional[object]:
    """
    Return a histogram for Shopify API call durations.

    The meter comes from whatever provider the application installed; with none
    installed, OpenTelemetry hands out a no-op meter.
    """
    global _request_duration_histogram
    if metrics is None:
        return None
    if _request_duration_histogram is None:
        meter = metrics.get_meter("shopify_rest_client")
        _request_duration_histogram = meter.create_histogram(
            name="shopify.api.request.duration",
            unit="ms",
            description="Duration of Shopify REST Admin API calls",
        )
    return _request_duration_histogram
