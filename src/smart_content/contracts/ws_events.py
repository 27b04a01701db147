"""
Контракты событий completion bridge и WebSocket (runtime, Python-описание).

Зачем:
- одна форма payload для bridge (worker -> api) и для push клиенту
- единая точка, чтобы не разъезжались названия событий
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

from .versions import WS_SCHEMA_VERSION

# =============================================================================
# ТИПЫ СОБЫТИЙ
# =============================================================================
WSEventType = Literal["job_completed", "pong", "error"]

JOB_COMPLETED = "job_completed"


# =============================================================================
# ВЫХОД: job_completed (worker -> bridge -> server -> client)
# =============================================================================
@dataclass
class JobCompletedEvent:
    user_id: str
    job_id: str
    status: str
    generated_content: str
    completed_at: str
    event_type: Literal["job_completed"] = JOB_COMPLETED
    schema_version: str = WS_SCHEMA_VERSION

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> JobCompletedEvent:
        return cls(
            user_id=str(raw["user_id"]),
            job_id=str(raw["job_id"]),
            status=str(raw["status"]),
            generated_content=str(raw.get("generated_content") or ""),
            completed_at=str(raw.get("completed_at") or ""),
            schema_version=str(raw.get("schema_version") or WS_SCHEMA_VERSION),
        )


# =============================================================================
# ВЫХОД: error (server -> client)
# =============================================================================
@dataclass
class ErrorEvent:
    code: str
    message: str
    event_type: Literal["error"] = "error"
    schema_version: str = WS_SCHEMA_VERSION

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)
