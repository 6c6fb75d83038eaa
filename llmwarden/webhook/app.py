"""
Admission webhook server.

POST /mutate-v1-pod                             pod credential injection
POST /validate-llmwarden-io-v1alpha1-llmaccess  LLMAccess validation
GET  /healthz, /readyz                          probes
GET  /metrics                                   Prometheus exposition
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from llmwarden.webhook.admission import AdmissionReview
from llmwarden.webhook.injector import PodInjector
from llmwarden.webhook.validator import AccessValidator

if TYPE_CHECKING:
    from llmwarden.config import WebhookConfig
    from llmwarden.context import Context
    from llmwarden.kube.client import ResourceClient

logger = logging.getLogger(__name__)

MUTATE_POD_PATH = "/mutate-v1-pod"
VALIDATE_ACCESS_PATH = "/validate-llmwarden-io-v1alpha1-llmaccess"


def create_webhook_app(
    client: ResourceClient,
    ctx: Context,
    ready: Callable[[], bool] | None = None,
) -> FastAPI:
    """Create the FastAPI app serving both admission webhooks."""
    app = FastAPI(title="llmwarden admission webhooks", docs_url=None, redoc_url=None)
    injector = PodInjector(client, ctx)
    validator = AccessValidator()

    async def _decode(request: Request) -> AdmissionReview | JSONResponse:
        try:
            review = AdmissionReview.model_validate(await request.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            return JSONResponse({"error": f"invalid AdmissionReview: {e}"}, status_code=400)
        if review.request is None:
            return JSONResponse({"error": "AdmissionReview has no request"}, status_code=400)
        return review

    @app.post(MUTATE_POD_PATH)
    async def mutate_pod(request: Request):
        review = await _decode(request)
        if isinstance(review, JSONResponse):
            return review
        response = await injector.handle(review.request)
        return review.respond(response).to_dict()

    @app.post(VALIDATE_ACCESS_PATH)
    async def validate_access(request: Request):
        review = await _decode(request)
        if isinstance(review, JSONResponse):
            return review
        response = validator.handle(review.request)
        return review.respond(response).to_dict()

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz():
        if ready is not None and not ready():
            return JSONResponse({"status": "not ready"}, status_code=503)
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        return Response(content=ctx.metrics.render(), media_type=ctx.metrics.content_type)

    return app


async def serve_webhook(
    config: WebhookConfig,
    client: ResourceClient,
    ctx: Context,
    ready: Callable[[], bool] | None = None,
) -> None:
    """Run the webhook server until cancelled."""
    import uvicorn

    app = create_webhook_app(client, ctx, ready=ready)
    options = {}
    if config.tls_enabled:
        options = {"ssl_certfile": config.tls_cert_file, "ssl_keyfile": config.tls_key_file}
    else:
        logger.warning("TLS not configured; serving admission webhooks over plain HTTP")
    uvi_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level="warning",
        **options,
    )
    server = uvicorn.Server(uvi_config)
    logger.info("Webhook server listening on %s:%d", config.host, config.port)
    await server.serve()
