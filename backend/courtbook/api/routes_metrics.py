from fastapi import APIRouter, HTTPException, Request, Response

from courtbook.infra.metrics import Metrics

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint(request: Request) -> Response:
    collector: Metrics | None = getattr(request.app.state, "metrics", None)
    if collector is None or not collector.enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    body, content_type = collector.render()
    return Response(content=body, media_type=content_type)
