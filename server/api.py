"""FastAPI server for Relayhub."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket, status
from starlette.websockets import WebSocketState

import relayhub
from relayhub.config import RelayConfig
from relayhub.registry import ConnectionRegistry
from server.demo_routes import router as demo_router
from server.models import BroadcastRequest, BroadcastResponse, HealthResponse, OutboundEnvelope
from server.relay import make_relay_handler
from server.websocket import WebSocketConnection

log = logging.getLogger(__name__)
router = APIRouter()


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_config(request: Request) -> RelayConfig:
    return request.app.state.config


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
def health(registry: ConnectionRegistry = Depends(get_registry)):
    return HealthResponse(status="ok", version=relayhub.__version__, **registry.stats())


# ------------------------------------------------------------------
# Broadcast
# ------------------------------------------------------------------


async def _read_broadcast(request: Request) -> BroadcastRequest:
    """Accept the demo page's urlencoded form as well as a JSON body."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(422, "Body is not valid JSON")
        message = data.get("message") if isinstance(data, dict) else None
    else:
        form = await request.form()
        message = form.get("message")
    if not isinstance(message, str):
        raise HTTPException(422, "Field 'message' is required")
    return BroadcastRequest(message=message)


@router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast(
    request: Request,
    registry: ConnectionRegistry = Depends(get_registry),
    config: RelayConfig = Depends(get_config),
):
    body = await _read_broadcast(request)
    payload = OutboundEnvelope(message=body.message).to_json()
    report = await registry.send_all(config.broadcast_key, payload, strict=False)
    if not report.ok:
        log.warning(
            "Broadcast on %s: %d of %d deliveries failed",
            config.broadcast_key,
            len(report.failed),
            len(report),
        )
    return BroadcastResponse(delivered=len(report.delivered), failed=len(report.failed))


# ------------------------------------------------------------------
# WebSocket
# ------------------------------------------------------------------


async def ws_endpoint(websocket: WebSocket, key: str):
    registry: ConnectionRegistry = websocket.app.state.registry
    config: RelayConfig = websocket.app.state.config

    owner = websocket.query_params.get(config.owner_param)
    if not owner:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    registration = registry.register(
        owner,
        key,
        WebSocketConnection(websocket),
        make_relay_handler(registry, owner, key),
    )
    log.info("Accepted connection #%s for owner=%s key=%s", registration.id, owner, key)
    try:
        await registration.listen()
    except Exception:
        log.exception("Connection #%s for owner=%s key=%s failed", registration.id, owner, key)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def create_app(
    config: RelayConfig | None = None,
    registry: ConnectionRegistry | None = None,
) -> FastAPI:
    """Build the app around one registry instance shared by every route."""
    config = config or RelayConfig.from_env()
    registry = registry or ConnectionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        registry.clear()

    app = FastAPI(
        title="Relayhub",
        description="Route real-time messages between websocket connections.",
        version=relayhub.__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry

    app.include_router(router)
    app.include_router(demo_router)
    app.add_api_websocket_route(f"{config.websocket_path.rstrip('/')}/{{key}}", ws_endpoint)
    return app


app = create_app()


# ------------------------------------------------------------------
# Entrypoint
# ------------------------------------------------------------------


def run():
    import uvicorn

    config = app.state.config
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("server.api:app", host=config.host, port=config.port)


if __name__ == "__main__":
    run()
