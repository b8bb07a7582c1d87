import asyncio
import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket, status
from pydantic import ValidationError

from . import events
from .config import SESSION_CAPACITY
from .storage import UploadStore

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    WAITING = "waiting"
    PAIRED = "paired"
    CLOSED = "closed"


@dataclass
class Connection:
    id: str
    username: str
    peer_id: Optional[str] = None
    state: ConnectionState = ConnectionState.CONNECTING


class PairingManager:
    """
    Owns the connection table and pairs the first two arrivals into one
    1:1 session.

    Every handler holds ``self._lock`` for its whole run, so a handler never
    sees a table with only one side of a pairing.
    """

    def __init__(self, store: Optional[UploadStore] = None, capacity: int = SESSION_CAPACITY):
        self.store = store
        self.capacity = capacity
        self.connections: Dict[str, Connection] = {}
        self._sockets: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    # ------------- outbound -------------
    async def _send(self, websocket: WebSocket, event: str, data: Any):
        try:
            await websocket.send_text(json.dumps({"type": event, "data": data}))
        except Exception as e:
            logger.error(f"Failed to send '{event}': {e}")

    async def _send_to(self, connection_id: str, event: str, data: Any):
        websocket = self._sockets.get(connection_id)
        if websocket is not None:
            await self._send(websocket, event, data)

    def _live_peer(self, connection_id: str) -> Optional[Connection]:
        sender = self.connections.get(connection_id)
        if sender is None or sender.peer_id is None:
            return None
        return self.connections.get(sender.peer_id)

    # ------------- lifecycle -------------
    async def on_connect(self, websocket: WebSocket) -> Optional[Connection]:
        """Register a new socket. Returns ``None`` when the session is full."""
        connection_id = uuid.uuid4().hex

        async with self._lock:
            # accept under the lock so arrivals are seated in accept order
            await websocket.accept()
            logger.info(f"User connected: {connection_id}")
            if len(self.connections) >= self.capacity:
                logger.info(f"User {connection_id} rejected, session full ({self.capacity} users)")
                await self._send(websocket, events.SYSTEM_MESSAGE, events.CAPACITY_NOTICE)
                try:
                    await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
                except Exception as e:
                    logger.error(f"Failed to close rejected socket {connection_id}: {e}")
                return None

            conn = Connection(id=connection_id, username=f"User {connection_id[:4]}")
            self.connections[connection_id] = conn
            self._sockets[connection_id] = websocket

            if len(self.connections) == self.capacity:
                first, second = list(self.connections.values())
                first.peer_id, second.peer_id = second.id, first.id
                first.state = second.state = ConnectionState.PAIRED
                await self._send_to(first.id, events.CHAT_READY,
                                    {"peerId": second.id, "peerUsername": second.username})
                await self._send_to(second.id, events.CHAT_READY,
                                    {"peerId": first.id, "peerUsername": first.username})
                logger.info(f"Pairing complete: {first.id} <-> {second.id}")
            else:
                conn.state = ConnectionState.WAITING
                await self._send(websocket, events.WAITING_FOR_PEER, events.WAITING_NOTICE)
            return conn

    async def on_disconnect(self, connection_id: str):
        async with self._lock:
            self._sockets.pop(connection_id, None)
            conn = self.connections.pop(connection_id, None)
            if conn is None:
                return
            conn.state = ConnectionState.CLOSED
            logger.info(f"User disconnected: {connection_id}")

            peer = self.connections.pop(conn.peer_id, None) if conn.peer_id else None
            if peer is None:
                return
            # the whole session ends; the peer does not go back to waiting
            peer.state = ConnectionState.CLOSED
            peer_socket = self._sockets.pop(peer.id, None)
            if peer_socket is not None:
                await self._send(peer_socket, events.PEER_DISCONNECTED, events.PEER_LEFT_NOTICE)
            logger.info(f"Peer {peer.id} removed as well")

    # ------------- relay -------------
    async def on_text_message(self, connection_id: str, payload: events.ChatMessageIn):
        async with self._lock:
            peer = self._live_peer(connection_id)
            if peer is None:
                logger.debug(f"Dropped message from unpaired {connection_id}")
                return
            sender = self.connections[connection_id]
            logger.info(f"Message from {sender.id} to {peer.id}")
            await self._send_to(peer.id, events.CHAT_MESSAGE, {
                "senderId": sender.id,
                "username": sender.username,
                "text": payload.text,
                "timestamp": payload.timestamp,
            })

    async def on_file_message(self, connection_id: str, payload: events.FileMessageIn):
        async with self._lock:
            peer = self._live_peer(connection_id)
            if peer is None:
                logger.debug(f"Dropped file from unpaired {connection_id}")
                return
            try:
                raw = base64.b64decode(payload.fileBuffer, validate=True)
            except (binascii.Error, ValueError) as e:
                logger.warning(f"Dropped file '{payload.filename}' from {connection_id}: bad fileBuffer ({e})")
                return

            sender = self.connections[connection_id]
            logger.info(f"File from {sender.id} to {peer.id}: {payload.filename} ({len(raw)} bytes)")
            self._persist(payload.filename, raw)
            await self._send_to(peer.id, events.FILE_MESSAGE, {
                "senderId": sender.id,
                "username": sender.username,
                "filename": payload.filename,
                "fileBuffer": payload.fileBuffer,
                "fileType": payload.fileType,
                "timestamp": payload.timestamp,
            })

    async def dispatch(self, connection_id: str, message: Dict[str, Any]):
        """Route one decoded inbound frame to its handler."""
        message_type = message.get("type") if isinstance(message, dict) else None
        data = message.get("data") if isinstance(message, dict) else None
        try:
            if message_type == events.CHAT_MESSAGE:
                await self.on_text_message(connection_id, events.ChatMessageIn(**(data or {})))
            elif message_type == events.FILE_MESSAGE:
                await self.on_file_message(connection_id, events.FileMessageIn(**(data or {})))
            else:
                logger.warning(f"Ignoring unknown message type {message_type!r} from {connection_id}")
        except (ValidationError, TypeError) as e:
            logger.warning(f"Ignoring malformed '{message_type}' from {connection_id}: {e}")

    # ------------- persistence -------------
    def _persist(self, filename: str, data: bytes):
        if self.store is None:
            return
        task = asyncio.create_task(self._write(filename, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, filename: str, data: bytes):
        try:
            await asyncio.to_thread(self.store.save, filename, data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to store file '{filename}': {e}")

    async def drain(self):
        """Wait for file writes still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------- status -------------
    def snapshot(self) -> List[Dict[str, Any]]:
        return [
            {"id": c.id, "username": c.username, "peerId": c.peer_id, "state": c.state.value}
            for c in self.connections.values()
        ]
