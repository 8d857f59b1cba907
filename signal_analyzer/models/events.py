"""Inbound webhook payload models."""

from typing import Any

from pydantic import BaseModel, Field

from signal_analyzer.errors import UnsupportedSignalShapeError


class SignalWebhookPayload(BaseModel):
    """Signals pushed to a webhook endpoint.

    Senders post a single record, a bare list of records, or a
    ``{"signals": [...]}`` envelope. All three collapse into ``signals``.
    """

    token: str | None = None
    signals: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_body(cls, body: Any) -> "SignalWebhookPayload":
        if isinstance(body, list):
            return cls(signals=[r for r in body if isinstance(r, dict)])

        if isinstance(body, dict):
            token = body.get("token")
            if isinstance(body.get("signals"), list):
                return cls(token=token, signals=body["signals"])
            record = {k: v for k, v in body.items() if k != "token"}
            return cls(token=token, signals=[record] if record else [])

        raise UnsupportedSignalShapeError(
            f"webhook body must be an object or array, got {type(body).__name__}"
        )
