from shuttle.monitoring.metrics import get_metrics, record_event, record_request, reset_metrics

__all__ = ["get_metrics", "record_event", "record_request", "reset_metrics"]
