# tracking_api/main.py
# Main FastAPI application for the BIM tracking service

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import authenticate_token, get_current_user
from .beacons import PostgresBeaconRegistry
from .config import Settings, configure_logging, get_settings
from .db import Database
from .errors import ErrorKind, Forbidden, NotFound, TrackingError
from .memory import MemoryBeaconRegistry, MemoryCredentialStore, MemoryEntityStore
from .notifier import Notifier
from .schemas import (
    Beacon,
    BeaconUidUpdate,
    EntityKind,
    Location,
    ProximityReport,
    TrackedItem,
    TrackedItemIn,
    TrackedUser,
)
from .services import TrackedItemService, TrackedUserService
from .store import PostgresEntityStore
from .users import PostgresCredentialStore

logger = logging.getLogger("tracking_api")

STATUS_BY_KIND = {
    ErrorKind.unauthorized: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.store_unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}

WS_PING_INTERVAL_S = 30.0


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    app = FastAPI(title="BIM Tracking Service", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db: Optional[Database] = None
    if settings.store_backend == "memory":
        store = MemoryEntityStore(history_limit=settings.history_limit)
        users = MemoryCredentialStore()
        beacons = MemoryBeaconRegistry()
    else:
        db = Database(settings)
        store = PostgresEntityStore(db, history_limit=settings.history_limit)
        users = PostgresCredentialStore(db)
        beacons = PostgresBeaconRegistry(db)

    notifier = Notifier(maxsize=settings.notification_queue_size)
    user_service = TrackedUserService(store, users, notifier, beacons, settings)
    item_service = TrackedItemService(store, users, notifier)

    app.state.settings = settings
    app.state.db = db
    app.state.store = store
    app.state.users = users
    app.state.beacons = beacons
    app.state.notifier = notifier

    @app.exception_handler(TrackingError)
    async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
        code = STATUS_BY_KIND[exc.kind]
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=code, content={"message": exc.message, "data": None})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = {".".join(str(part) for part in err["loc"]): err["msg"] for err in exc.errors()}
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"message": "Validation failed", "data": {"fields": fields}},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        if db is not None:
            try:
                await db.connect()
            except TrackingError:
                logger.exception("database pool connection failed")
                raise
        notifier.start()
        logger.info("tracking service started (store=%s)", settings.store_backend)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await notifier.stop()
        if db is not None:
            await db.disconnect()

    # ==================== TRACKED USERS ====================

    @app.put("/tracked-users/me", response_model=TrackedUser)
    async def put_my_location(location: Location, current=Depends(get_current_user)):
        uid, _ = current
        return await user_service.put_tracked_user(uid, location)

    @app.put("/tracked-users/me/proximity", response_model=TrackedUser)
    async def put_my_proximity(report: ProximityReport, current=Depends(get_current_user)):
        uid, _ = current
        return await user_service.put_tracked_user_from_readings(uid, report.readings)

    @app.get("/tracked-users", response_model=List[TrackedUser])
    async def list_tracked_users(current=Depends(get_current_user)):
        return await user_service.list_tracked_users()

    @app.get("/tracked-users/{user_id}", response_model=TrackedUser)
    async def get_tracked_user(user_id: str, current=Depends(get_current_user)):
        return await user_service.get_tracked_user(user_id)

    # ==================== TRACKED ITEMS ====================

    @app.put("/tracked-items/{code}", response_model=TrackedItem)
    async def put_tracked_item(code: str, item: TrackedItemIn, current=Depends(get_current_user)):
        uid, _ = current
        return await item_service.put_tracked_item(
            uid, code, item.name, item.description, item.location
        )

    @app.get("/tracked-items", response_model=List[TrackedItem])
    async def list_tracked_items(current=Depends(get_current_user)):
        return await item_service.list_tracked_items()

    @app.get("/tracked-items/{code}", response_model=TrackedItem)
    async def get_tracked_item(code: str, current=Depends(get_current_user)):
        return await item_service.get_tracked_item(code)

    # ==================== BEACONS ====================

    @app.get("/projects/{project_id}/beacons", response_model=List[Beacon])
    async def list_beacons(project_id: str, current=Depends(get_current_user)):
        return await beacons.list_beacons(project_id)

    @app.get("/projects/{project_id}/active-beacons", response_model=List[Beacon])
    async def list_active_beacons(project_id: str, current=Depends(get_current_user)):
        return await beacons.list_active_beacons(project_id)

    @app.get("/projects/{project_id}/beacons/{beacon_id}", response_model=Beacon)
    async def get_beacon(project_id: str, beacon_id: str, current=Depends(get_current_user)):
        return await beacons.get_beacon(project_id, beacon_id)

    @app.patch("/projects/{project_id}/beacons/{beacon_id}", response_model=Beacon)
    async def set_beacon_uid(
        project_id: str,
        beacon_id: str,
        update: BeaconUidUpdate,
        current=Depends(get_current_user),
    ):
        uid, role = current
        if role not in {"admin", "operator"}:
            raise Forbidden("Not authorized")
        beacon = await beacons.set_beacon_uid(project_id, beacon_id, update.id_beacon)
        logger.info("beacon %s/%s assigned %s by %s", project_id, beacon_id, update.id_beacon, uid)
        return beacon

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "store": settings.store_backend,
            "ws_clients": notifier.subscriber_count,
            "queues": {"notifications": notifier.pending},
        }

    # ==================== WEBSOCKET ====================

    @app.websocket("/ws/tracking")
    async def ws_tracking(websocket: WebSocket):
        """Initial snapshot of tracked users and items, then live updates."""
        try:
            await authenticate_token(settings, users, websocket.query_params.get("token"))
        except TrackingError as e:
            logger.info("rejected websocket client: %s", e.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        queue = notifier.subscribe()
        logger.info("websocket client connected (total: %d)", notifier.subscriber_count)
        try:
            for kind in EntityKind:
                try:
                    records = await store.list_all(kind)
                except NotFound:
                    continue
                for record in records:
                    await websocket.send_json(
                        {"type": kind.value, "data": record.model_dump(mode="json", by_alias=True)}
                    )

            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=WS_PING_INTERVAL_S)
                except asyncio.TimeoutError:
                    message = {"type": "ping"}
                await websocket.send_json(message)

        except WebSocketDisconnect:
            logger.info("websocket client disconnected")
        finally:
            notifier.unsubscribe(queue)
            logger.info("websocket client removed (total: %d)", notifier.subscriber_count)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("tracking_api.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
