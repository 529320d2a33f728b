"""
In-memory storage for guest-written content and uploaded media.

Only data that already passed the security pipeline is written here.
"""

import threading
import uuid
from datetime import UTC, datetime
from typing import Any


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class GuestContentRepository:
    def __init__(self):
        self._rsvps: list[dict[str, Any]] = []
        self._wishes: list[dict[str, Any]] = []
        self._media: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def add_rsvp(self, invitation_id: str, data: dict[str, Any]) -> dict[str, Any]:
        record = {
            "id": str(uuid.uuid4()),
            "invitation_id": invitation_id,
            "guest_name": data["guest_name"],
            "pax": data.get("pax", 1),
            "is_attending": data.get("is_attending", True),
            "phone_number": data.get("phone_number"),
            "message": data.get("message"),
            "slot": data.get("slot"),
            "created_at": _now_iso(),
        }
        with self._lock:
            self._rsvps.append(record)
        return record

    def add_wish(self, invitation_id: str, name: str, message: str) -> dict[str, Any]:
        record = {
            "id": str(uuid.uuid4()),
            "invitation_id": invitation_id,
            "name": name,
            "message": message,
            "created_at": _now_iso(),
        }
        with self._lock:
            self._wishes.append(record)
        return record

    def add_media(self, owner_id: str, metadata: dict[str, Any]) -> dict[str, Any]:
        record = {"id": str(uuid.uuid4()), "owner_id": owner_id, **metadata}
        with self._lock:
            self._media.append(record)
        return record

    def rsvps(self, invitation_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [r for r in self._rsvps if invitation_id in (None, r["invitation_id"])]

    def wishes(self, invitation_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [w for w in self._wishes if invitation_id in (None, w["invitation_id"])]

    def media(self, owner_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [m for m in self._media if owner_id in (None, m["owner_id"])]

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {"rsvps": len(self._rsvps), "wishes": len(self._wishes), "media": len(self._media)}
