"""Event names and inbound payload models for the /ws protocol.

Every frame in either direction is JSON text shaped as
``{"type": <event name>, "data": <payload>}``.
"""

from typing import Any, Optional

from pydantic import BaseModel

# server -> client
WAITING_FOR_PEER = "waiting for peer"
CHAT_READY = "chat ready"
SYSTEM_MESSAGE = "system message"
PEER_DISCONNECTED = "peer disconnected"

# both directions
CHAT_MESSAGE = "chat message"
FILE_MESSAGE = "file message"

WAITING_NOTICE = "Waiting for the other user to start the 1:1 chat..."
CAPACITY_NOTICE = "The chat is at full capacity (2 users). Please try again later."
PEER_LEFT_NOTICE = "The other user left the chat."


class ChatMessageIn(BaseModel):
    text: Any = None
    timestamp: Any = None


class FileMessageIn(BaseModel):
    filename: str
    fileBuffer: str  # base64 of the raw file bytes
    fileType: Optional[str] = None
    timestamp: Any = None
