"""Public-facing routes."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict:
    """Health check endpoint. Reports sandbox/live mode, never credentials."""
    config = request.app.state.payfast_config
    return {"status": "ok", "payfast_mode": "sandbox" if config.sandbox else "live"}
