from fastapi import APIRouter, Response

from habitmomentum.core.metrics import METRICS


router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics_endpoint():
    """Prometheus text exposition of in-process counters and gauges."""
    payload = METRICS.export_prometheus()
    return Response(content=payload, media_type="text/plain")
