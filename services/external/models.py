from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ExternalState(Enum):
    LIVE = "LIVE"
    OFFLINE = "OFFLINE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ExternalSource:
    id: str
    url: str

    @classmethod
    def from_payload(cls, payload: Any) -> "ExternalSource":
        if not isinstance(payload, dict):
            return cls(id="", url="")
        return cls(
            id=str(payload.get("id") or payload.get("PK") or ""),
            url=str(payload.get("url") or "").strip(),
        )


@dataclass(frozen=True)
class ExternalStatusResult:
    id: str
    url: str
    state: ExternalState
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "state": self.state.value,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload
