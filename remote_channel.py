"""
Remote action channel: asks the execution target (a browser tab) to perform
one action or check, and turns its reply into a RemoteResponse.

Three kinds of failure are kept apart because they point at different causes:

* the message could not be sent at all (TransportError),
* it was sent but nothing answered (NoResponseError),
* something answered, but with an invalid reply or an application error
  (InvalidResponseError / RemoteActionError).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, ClassVar, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field

from workflow_errors import (
    InvalidResponseError,
    NoResponseError,
    RemoteActionError,
    TransportError,
)

logger = logging.getLogger(__name__)


class MessageTarget(Protocol):
    """Anything that can deliver a request message and return the raw reply."""

    target_id: Union[int, str]

    async def send_message(self, message: dict[str, Any]) -> Any:
        ...


# --- Requests ---


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message_type: ClassVar[str]

    def to_message(self) -> dict[str, Any]:
        return {"type": self.message_type, "payload": self.model_dump(by_alias=True)}


class ExecuteAction(_Request):
    message_type: ClassVar[str] = "EXECUTE_ACTION"

    action: str
    selector: Optional[str] = None
    value: Any = None


class CheckCondition(_Request):
    message_type: ClassVar[str] = "CHECK_CONDITION"

    condition_type: str = Field(alias="conditionType")
    selector: str
    equals_value: Optional[str] = Field(default=None, alias="equalsValue")


class ExecuteCode(_Request):
    message_type: ClassVar[str] = "EXECUTE_JS_HATCH"

    code: str
    value: Any = None
    selector: Optional[str] = None


class CheckElement(_Request):
    message_type: ClassVar[str] = "CHECK_ELEMENT"

    selector: str


RemoteRequest = Union[ExecuteAction, CheckCondition, ExecuteCode, CheckElement]


# --- Responses ---


class RemoteResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    data: Any = None
    exists: Optional[bool] = None


def _describe(raw: Any) -> str:
    try:
        return json.dumps(raw)
    except (TypeError, ValueError):
        return repr(raw)


def parse_response(target_id: Union[int, str], raw: Any) -> RemoteResponse:
    """Check a raw reply and build a RemoteResponse, raising on any failure."""
    if raw is None:
        raise NoResponseError(
            f"No response received from target {target_id}. "
            "Is the page handler attached and listening?"
        )

    if not isinstance(raw, dict) or not isinstance(raw.get("success"), bool):
        raise InvalidResponseError(
            f"Invalid response structure received from target: {_describe(raw)}"
        )

    if not raw["success"]:
        raise RemoteActionError(f"Target reported error: {raw.get('error') or 'Unknown error'}")

    exists = raw.get("exists")
    return RemoteResponse(
        success=True,
        error=raw.get("error"),
        data=raw.get("data"),
        exists=exists if isinstance(exists, bool) else None,
    )


class RemoteActionChannel:
    """Sends one request at a time to a target and waits for its reply."""

    def __init__(self):
        self._lock = asyncio.Lock()

    async def send(self, target: MessageTarget, request: RemoteRequest) -> RemoteResponse:
        message = request.to_message()
        async with self._lock:
            logger.debug(f"Sending message to target {target.target_id}: {message}")
            try:
                raw = await target.send_message(message)
            except Exception as e:
                raise TransportError(
                    f"Error sending message to target {target.target_id}: {e}"
                ) from e
            logger.debug(f"Received response from target {target.target_id}: {raw}")

        return parse_response(target.target_id, raw)
