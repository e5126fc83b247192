import logging

from fastapi import WebSocket, WebSocketDisconnect

from pingmon.ws.subscribers import WebSocketSubscriber

log = logging.getLogger(__name__)

async def monitor_ws(websocket: WebSocket):
    """Live feed: registers the socket until the client goes away. Inbound text is ignored."""
    await websocket.accept()
    registry = websocket.app.state.registry
    subscriber = WebSocketSubscriber(websocket)
    registry.add(subscriber)
    try:
        while True:
            data = await websocket.receive_text()
            log.debug("Ignoring message from subscriber %s: %s", subscriber.id, data)
    except WebSocketDisconnect as e:
        log.info("WebSocket %s closed (code %s)", subscriber.id, e.code)
    finally:
        registry.remove(subscriber)
        subscriber.close()
