from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from storefront import config
from storefront.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    """
    Liveness plus database reachability.
    Returns 503 when the pool cannot hand out a working connection.
    """
    database_ok = check_connection()
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "service": config.SERVICE_NAME,
        "version": config.API_VERSION,
        "database": "connected" if database_ok else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)

