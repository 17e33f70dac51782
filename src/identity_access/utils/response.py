from __future__ import annotations

from typing import Any

from identity_access.utils.time_utils import now_ms


def success(data: Any = None, message: str = "request processed successfully") -> dict[str, Any]:
    body: dict[str, Any] = {"status": "success", "message": message, "timestamp": now_ms()}
    if data is not None:
        body["data"] = data
    return body


def failure(message: str) -> dict[str, Any]:
    return {"status": "failure", "message": message, "timestamp": now_ms()}
