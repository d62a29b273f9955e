# portwatch/router.py
import logging
from typing import List

from fastapi import APIRouter, Request, WebSocket

from .broadcaster import Broadcaster, ObserverConnection
from .models import PortsInfo, ServiceRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])
ws_router = APIRouter(tags=["observers"])


def get_broadcaster(app) -> Broadcaster:
    return app.state.broadcaster


@router.get("", response_model=List[ServiceRecord])
async def scan_once(request: Request):
    snapshot = await get_broadcaster(request.app).scanner.run_scan()
    return list(snapshot)


@router.get("/ports", response_model=PortsInfo)
async def configured_ports(request: Request):
    scanner = get_broadcaster(request.app).scanner
    self_port = scanner.config.self_port
    return {"ports": [p for p in scanner.ports() if p != self_port], "self_port": self_port}


@ws_router.websocket("/ws")
async def observe(websocket: WebSocket):
    broadcaster = get_broadcaster(websocket.app)
    await websocket.accept()
    observer = ObserverConnection(websocket)
    try:
        await broadcaster.subscribe(observer)
        # push-only channel, anything the client sends is ignored
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        broadcaster.unsubscribe(observer)
