"""
FastAPI application for the multimodal chat backend.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pydantic
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from structlog.contextvars import bound_contextvars

from .adapters.tanstack_stream import encode_chunk, encode_done
from .deps import Deps, build_deps
from .domain.models import Message
from .errors import MediachatError, ValidationError
from .logging import configure_logging, get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


class ChatRequest(pydantic.BaseModel):
    conversation_id: str = pydantic.Field(min_length=1)
    messages: list[Message] = pydantic.Field(default_factory=list)


class ContinuationRequest(pydantic.BaseModel):
    conversation_id: str = pydantic.Field(min_length=1)
    approvals: dict[str, Any] = pydantic.Field(default_factory=dict)
    tool_results: dict[str, Any] = pydantic.Field(default_factory=dict)


class DeleteFilesRequest(pydantic.BaseModel):
    keys: list[str] = pydantic.Field(default_factory=list)


def _sse_headers() -> dict[str, str]:
    """Standard SSE response headers."""
    return {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    }


async def _parse(request: Request, model: type[pydantic.BaseModel]) -> Any:
    body = await request.body()
    try:
        return model.model_validate_json(body or b"{}")
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid request: {exc.errors(include_url=False)}") from exc


def create_app(settings: Settings | None = None, deps: Deps | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = deps or build_deps(settings)

    app = FastAPI(
        title="mediachat",
        description="Multimodal chat with tool approval",
        version="0.1.0",
    )
    app.state.deps = deps

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MediachatError)
    async def mediachat_error(_: Request, exc: MediachatError) -> JSONResponse:
        if exc.status_code == 403:
            logger.warning("forbidden", error=exc.message)
        return JSONResponse({"detail": exc.detail()}, status_code=exc.status_code)

    @app.post("/api/continuation")
    async def continuation(request: Request) -> JSONResponse:
        body = await _parse(request, ContinuationRequest)
        delivered = deps.hub.push(
            body.conversation_id,
            {"approvals": body.approvals, "tool_results": body.tool_results},
        )
        return JSONResponse({"status": "ok", "delivered": delivered})

    @app.post("/api/chat")
    async def chat(request: Request) -> StreamingResponse:
        body = await _parse(request, ChatRequest)
        conversation_id = body.conversation_id

        turn = deps.start_turn(conversation_id, body.messages)

        async def stream() -> AsyncIterator[bytes]:
            with bound_contextvars(conversation_id=conversation_id, turn_id=turn.turn_id):
                async for chunk in turn.chunks():
                    yield encode_chunk(chunk).encode("utf-8")
                yield encode_done().encode("utf-8")

        return StreamingResponse(stream(), headers=_sse_headers())

    @app.post("/api/conversations/{conversation_id}/upload")
    async def upload(conversation_id: str, file: UploadFile = File(...)) -> dict:
        with bound_contextvars(conversation_id=conversation_id):
            # Read one byte past the limit so oversize files are detected without buffering them whole.
            data = await file.read(deps.media.max_upload_bytes + 1)
            result = await deps.media.upload(
                conversation_id,
                filename=file.filename or "file",
                content_type=file.content_type,
                data=data,
            )
        return {
            "key": result.key,
            "url": result.url,
            "name": result.name,
            "contentType": result.content_type,
            "size": result.size,
        }

    @app.get("/api/conversations/{conversation_id}/files/{key:path}")
    async def serve_file(conversation_id: str, key: str) -> Response:
        served = await deps.media.open(conversation_id, key)
        return Response(
            content=served.body, media_type=served.content_type, headers=served.headers
        )

    @app.get("/api/conversations/{conversation_id}/files-meta/{key:path}")
    async def file_metadata(conversation_id: str, key: str) -> dict:
        return await deps.media.metadata(conversation_id, key)

    @app.post("/api/conversations/{conversation_id}/delete-files")
    async def delete_files(conversation_id: str, request: Request) -> dict:
        body = await _parse(request, DeleteFilesRequest)
        deleted = await deps.media.delete(conversation_id, body.keys)
        logger.info("files_deleted", conversation_id=conversation_id, deleted=deleted)
        return {"deleted": deleted}

    @app.get("/api/conversations/{conversation_id}/messages")
    async def get_messages(conversation_id: str) -> dict:
        messages = deps.conversations.get(conversation_id)
        return {
            "messages": [m.model_dump(mode="json", by_alias=True) for m in messages]
        }

    @app.delete("/api/conversations/{conversation_id}")
    async def clear_conversation(conversation_id: str) -> dict:
        deps.conversations.clear(conversation_id)
        deps.hub.discard(conversation_id)
        cancelled = deps.scheduler.cancel_all(conversation_id)
        deleted = await deps.media.clear(conversation_id)
        logger.info(
            "conversation_cleared",
            conversation_id=conversation_id,
            files=deleted,
            tasks=cancelled,
        )
        return {"status": "ok", "deletedFiles": deleted}

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {
            "status": "ok",
            "model": settings.llm_model,
        }

    return app


def _default_app() -> FastAPI:
    configure_logging()
    return create_app()


app = _default_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
