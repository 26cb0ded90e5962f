import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import dashboard, schedule_config, schedule_slots
from config import config
from db.database import create_tables, is_database_available
from event_listener import start_event_listener, stop_event_listener
from services.errors import SchedulingError
from websocket import build_connected_message, build_error_message, build_pong_message, manager

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if is_database_available():
        create_tables()
    if config.WEBSOCKET_ENABLED:
        await start_event_listener(manager)
    yield
    stop_event_listener()


app = FastAPI(title="Carpool Scheduler API", lifespan=lifespan)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(schedule_config.router)
app.include_router(schedule_slots.router)
app.include_router(dashboard.router)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health():
    return {
        "status": "ok",
        "database": is_database_available(),
        "websocket_connections": manager.get_connection_count(),
    }


@app.websocket("/ws/groups/{group_id}")
async def group_events_ws(websocket: WebSocket, group_id: str):
    """Push schedule slot events of one group; answers 'ping' with 'pong'."""
    if not await manager.connect(websocket, group_id):
        return
    await manager.send_to_client(websocket, build_connected_message(group_id))
    try:
        while True:
            text = await websocket.receive_text()
            if text.strip().lower() == "ping":
                await manager.send_to_client(websocket, build_pong_message())
            else:
                await manager.send_to_client(
                    websocket,
                    build_error_message(group_id, "UNSUPPORTED_MESSAGE", "Only 'ping' is accepted"),
                )
    except WebSocketDisconnect:
        logger.debug(f"WebSocket client left group {group_id}")
    finally:
        await manager.disconnect(websocket, group_id)
