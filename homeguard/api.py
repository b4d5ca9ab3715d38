from __future__ import annotations
import asyncio, json, logging, time
from typing import Any, Dict, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from homeguard.ble import discover
from homeguard.config import DeviceConfig, build_reconciler
from homeguard.errors import ConfigurationError
from homeguard.reconciler import Reconciler

logger = logging.getLogger("homeguard.api")

app = FastAPI(title="HomeGuard API", version="0.1.0")

_reconciler: Optional[Reconciler] = None
_listen_task: Optional[asyncio.Task] = None
_subscribers: Set["asyncio.Queue[Tuple[str, Dict[str, Any]]]"] = set()


class ModeChange(BaseModel):
    enabled: bool


def _broadcast(event: str, payload: Dict[str, Any]) -> None:
    for queue in list(_subscribers):
        queue.put_nowait((event, payload))


def _require_session() -> Reconciler:
    if _reconciler is None:
        raise HTTPException(status_code=503, detail="No device session; POST /session/start first")
    return _reconciler


@app.get("/health")
async def health():
    return {"status": "ok", "time": time.time()}


@app.get("/scan")
async def scan(
    timeout: float = Query(6.0, gt=0, le=60, description="Scan duration in seconds"),
    uart_only: bool = Query(False, description="Only devices advertising the UART service"),
):
    try:
        devices = await discover(timeout=timeout, uart_only=uart_only)
    except Exception as exc:
        logger.exception("BLE scan failed")
        raise HTTPException(status_code=500, detail=f"Scan failed: {exc}")
    return [device.to_dict() for device in devices]


@app.post("/session/start")
async def start_session(
    variant: Optional[str] = Query(None, description="bluetooth, tcp or http"),
    base_url: Optional[str] = Query(None, description="Controller base URL (http)"),
    address: Optional[str] = Query(None, description="Bluetooth MAC address"),
    channel: Optional[int] = Query(None, ge=1, le=30, description="RFCOMM channel"),
    link: Optional[str] = Query(None, description="rfcomm or ble"),
    host: Optional[str] = Query(None, description="Controller host (tcp)"),
    port: Optional[int] = Query(None, ge=1, le=65535, description="Controller port (tcp)"),
    db_path: Optional[str] = Query(None, description="History database (http)"),
    metrics_log: Optional[str] = Query(None, description="Optional CSV diagnostics log"),
):
    global _reconciler, _listen_task
    if _reconciler is not None:
        return {"status": "already-running", "endpoint": _reconciler.transport.endpoint}
    try:
        config = DeviceConfig.from_env().with_overrides(
            variant=variant,
            base_url=base_url,
            bt_address=address,
            bt_channel=channel,
            bt_link=link,
            tcp_host=host,
            tcp_port=port,
            db_path=db_path,
            metrics_log=metrics_log,
        )
        reconciler = build_reconciler(config)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    reconciler.subscribe(_broadcast)
    state = await reconciler.start()
    _reconciler = reconciler
    if hasattr(reconciler.transport, "messages") and state.is_connected:
        _listen_task = asyncio.create_task(reconciler.listen())
    return {
        "status": "started",
        "variant": reconciler.profile.name,
        "endpoint": reconciler.transport.endpoint,
        "connection": state.to_dict(),
    }


@app.post("/session/stop")
async def stop_session():
    global _reconciler, _listen_task
    if _reconciler is None:
        return {"status": "idle"}
    reconciler = _reconciler
    _reconciler = None
    await reconciler.stop()
    if _listen_task:
        _listen_task.cancel()
        try:
            await _listen_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("listener task ended with an error")
        _listen_task = None
    return {"status": "stopped"}


@app.get("/status")
async def status():
    if _reconciler is None:
        return {"status": "idle"}
    return {"status": "running", **_reconciler.snapshot()}


@app.post("/modes/{mode}")
async def set_mode(mode: str, change: ModeChange):
    reconciler = _require_session()
    try:
        accepted = await reconciler.toggle(mode, change.enabled)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not accepted:
        notice = reconciler.last_notice
        raise HTTPException(status_code=409, detail=notice.message if notice else "mode change rejected")
    return reconciler.snapshot()


@app.get("/history")
async def history():
    reconciler = _require_session()
    return [record.to_dict() for record in reconciler.history]


@app.delete("/history")
async def clear_history():
    reconciler = _require_session()
    await reconciler.clear_history()
    return {"status": "cleared"}


@app.get("/notices")
async def notices():
    reconciler = _require_session()
    return [notice.to_dict() for notice in reconciler.notifier.recent()]


async def _pump(ws: WebSocket, queue: "asyncio.Queue[Tuple[str, Dict[str, Any]]]") -> None:
    while True:
        event, payload = await queue.get()
        await ws.send_text(json.dumps({"event": event, "payload": payload}))


@app.websocket("/events")
async def events(ws: WebSocket):
    queue: "asyncio.Queue[Tuple[str, Dict[str, Any]]]" = asyncio.Queue()
    _subscribers.add(queue)
    await ws.accept()
    sender = asyncio.create_task(_pump(ws, queue))
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        return
    finally:
        _subscribers.discard(queue)
        sender.cancel()
