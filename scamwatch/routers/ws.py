"""WebSocket router: /ws/reports (approved set), /ws/admin (whole collection)."""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from scamwatch.connections import connection_manager
from scamwatch.store.base import Predicate, approved_only, match_all

router = APIRouter(tags=["ws"])

POLICY_UNAUTHORIZED = 4401


async def _serve_feed(websocket: WebSocket, predicate: Predicate) -> None:
    """Send a snapshot on connect and after every change until the client leaves."""
    await connection_manager.connect(websocket, websocket.app.state.store, predicate)
    try:
        while True:
            try:
                _ = await websocket.receive_text()
            except WebSocketDisconnect:
                break
    finally:
        await connection_manager.disconnect(websocket)


@router.websocket("/ws/reports")
async def ws_reports(websocket: WebSocket):
    """Public feed of approved reports."""
    await websocket.accept()
    await _serve_feed(websocket, approved_only)


@router.websocket("/ws/admin")
async def ws_admin(websocket: WebSocket, secret: str = ""):
    """Moderator feed of every report, pending included."""
    await websocket.accept()
    if not websocket.app.state.authenticator.authenticate(secret):
        await websocket.close(code=POLICY_UNAUTHORIZED)
        return
    await _serve_feed(websocket, match_all)
