"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from churpay.observability.correlation import (
    CORRELATION_ID_HEADER,
    reset_correlation_id,
    resolve_correlation_id,
    set_correlation_id,
)
from churpay.payfast.config import PayFastConfig, load_config

from .routers import public
from .routes import donations, webhooks_payfast


def create_app(config: PayFastConfig | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        config: Explicit gateway config. If None, read from the environment;
                missing merchant credentials abort startup.

    Returns:
        Configured FastAPI application.

    Raises:
        ConfigurationError: If required PayFast settings are missing.
    """
    if config is None:
        config = load_config()

    app = FastAPI(
        title="ChurPay Payments",
        docs_url=None,
        redoc_url=None,
    )
    # Read-only for the process lifetime
    app.state.payfast_config = config

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(donations.router)
    app.include_router(webhooks_payfast.router)

    return app
