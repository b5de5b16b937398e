from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health", summary="Health check endpoint", response_description="Application health status")
async def health_check(request: Request):
    """
    Checks the health of the application.
    Reports the Solana network the API is configured for; no RPC call is made.
    """
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "network": request.app.state.settings.SOLANA_NETWORK,
    }


@router.get("/version", summary="Application version endpoint", response_description="Application name and version")
async def get_version(request: Request):
    """
    Returns the current application name and version.
    """
    settings = request.app.state.settings
    return {"app_name": settings.APP_NAME, "version": settings.APP_VERSION}
