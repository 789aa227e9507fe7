from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .proxy import ProvisioningContext, StarterProxy
from .tracking import CountingExceptionTracker

LOGGER = logging.getLogger("Provisioner.API")


def create_app(proxy: StarterProxy, context: ProvisioningContext) -> FastAPI:
    app = FastAPI(title="Worker Provisioner", version="0.1.0")

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - FastAPI lifecycle glue
        proxy.before_registration()

    @app.get("/live")
    async def live() -> Dict[str, str]:
        return {"status": "alive"}

    def _ready_payload() -> JSONResponse:
        fleet = proxy.fleet
        completed = proxy.setup_completed
        tracker = context.tracker
        content: Dict[str, Any] = {
            "status": "ready" if completed else "provisioning",
            "setup_completed": completed,
            "startup_workers_created": fleet.created if fleet else 0,
            "startup_workers_target": fleet.containers_to_create if fleet else 0,
            "registered_proxies": context.proxies.count(),
            "tracked_exceptions": (
                tracker.snapshot()
                if isinstance(tracker, CountingExceptionTracker)
                else {}
            ),
        }
        status_code = 200 if completed else 503
        return JSONResponse(status_code=status_code, content=content)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        return _ready_payload()

    @app.get("/health")
    async def health() -> JSONResponse:
        response = _ready_payload()
        response.headers["X-Deprecation-Notice"] = "Use /ready instead of /health."
        return response

    @app.get("/registration")
    async def registration() -> Dict[str, Any]:
        return proxy.registration.as_dict()

    @app.get("/resource-usage")
    async def resource_usage() -> Dict[str, float]:
        return {"percent": proxy.resource_usage_percent()}

    @app.post("/session")
    async def new_session(request: Request) -> Dict[str, Any]:
        try:
            requested = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload.") from exc
        if not isinstance(requested, dict):
            raise HTTPException(
                status_code=422, detail="Requested capability must be a JSON object."
            )

        await run_in_threadpool(proxy.get_new_session, requested)
        return {"session": None}

    @app.put("/proxies/{proxy_id}")
    async def register_proxy(proxy_id: str) -> Dict[str, int]:
        count = context.proxies.register(proxy_id)
        LOGGER.info("Proxy '%s' registered; %s proxies known.", proxy_id, count)
        return {"registered_proxies": count}

    @app.delete("/proxies/{proxy_id}")
    async def unregister_proxy(proxy_id: str) -> Dict[str, int]:
        count = context.proxies.unregister(proxy_id)
        LOGGER.info("Proxy '%s' unregistered; %s proxies known.", proxy_id, count)
        return {"registered_proxies": count}

    return app
