"""Error responses for pagination and loader failures.

Invalid paging input is answered with 400 and a Result body:

    {"messages": [{"code": "InvalidCursor", "messageType": "Error",
                   "text": "Invalid pagination cursor: malformed cursor",
                   "timestamp": "..."}]}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import cast

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.types import ExceptionHandler

from enterprise_perf.errors import BatchLoadError, PaginationError

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    ERROR = "Error"
    EXCEPTION = "Exception"


class Message(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    model_config = {"extra": "forbid"}

    messages: list[Message]


def error_result(code: str, text: str, message_type: MessageType = MessageType.ERROR) -> Result:
    return Result(
        messages=[
            Message(
                code=code,
                messageType=message_type,
                text=text,
                timestamp=datetime.now(UTC).isoformat(),
            )
        ]
    )


async def pagination_exception_handler(request: Request, exc: PaginationError) -> JSONResponse:
    """400 for invalid limit, offset or cursor."""
    return JSONResponse(
        status_code=400,
        content=error_result(exc.code, str(exc)).model_dump(by_alias=True, mode="json"),
    )


async def batch_load_exception_handler(request: Request, exc: BatchLoadError) -> JSONResponse:
    logger.error(f"Batch load contract violation: {exc}")
    return JSONResponse(
        status_code=500,
        content=error_result(
            "InternalServerError", "An unexpected error occurred", MessageType.EXCEPTION
        ).model_dump(by_alias=True, mode="json"),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(
        PaginationError, cast(ExceptionHandler, pagination_exception_handler)
    )
    app.add_exception_handler(
        BatchLoadError, cast(ExceptionHandler, batch_load_exception_handler)
    )
