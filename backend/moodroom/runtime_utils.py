from __future__ import annotations

import hashlib
import random
import time
import uuid
from typing import Any

from .runtime_constants import MESSAGE_ID_CHARS, MESSAGE_ID_LENGTH, UNKNOWN_IDENTITY


def now_ms() -> int:
    return int(time.time() * 1000)


def random_id() -> str:
    return str(uuid.uuid4())


def random_message_id(length: int = MESSAGE_ID_LENGTH) -> str:
    # Short and collision-tolerant; uniqueness is only needed within one room's history.
    return "".join(random.choice(MESSAGE_ID_CHARS) for _ in range(max(4, length)))


def sanitize_room_id(raw: Any) -> str:
    return str(raw or "").strip()


def sanitize_display_name(raw: Any) -> str:
    return str(raw or "").strip()


def mask_identity(identity: str | None) -> str:
    if not identity:
        return "none"
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:10]


def resolve_client_identity(websocket: Any, trust_forwarded_for: bool = True) -> str:
    """Derive the network identity used for reaction deduplication.

    Prefers the first hop of ``X-Forwarded-For`` when the deployment sits
    behind a proxy, then the socket peer host.
    """
    headers = getattr(websocket, "headers", None) or {}
    if trust_forwarded_for:
        forwarded_for = str(headers.get("x-forwarded-for") or "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    client = getattr(websocket, "client", None)
    host = getattr(client, "host", None) if client is not None else None
    return str(host) if host else UNKNOWN_IDENTITY
