"""FastAPI application exposing the copilot over HTTP."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import PurePosixPath

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, StreamingResponse

from fleet_copilot.ai.orchestrator import SSE_HEADERS, StreamingOrchestrator
from fleet_copilot.app import FleetCopilotApp
from fleet_copilot.errors import ThreadNotFoundError
from fleet_copilot.fleet.media_store import STORAGE_PATH
from fleet_copilot.log import get_logger
from fleet_copilot.server.schemas import (
    ChatRequest,
    DeleteResponse,
    HealthResponse,
    ThreadDetail,
    ThreadListResponse,
    ThreadMessage,
    ThreadSummary,
)
from fleet_copilot.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)

ALLOWED_STORAGE_PREFIXES = (STORAGE_PATH,)
STORAGE_CACHE_CONTROL = "public, max-age=3600"


def get_copilot(request: Request) -> FleetCopilotApp:
    return request.app.state.copilot


def get_threads(copilot: FleetCopilotApp = Depends(get_copilot)) -> ThreadRepository:
    return copilot.threads


def get_orchestrator(copilot: FleetCopilotApp = Depends(get_copilot)) -> StreamingOrchestrator:
    if copilot.orchestrator is None:
        raise RuntimeError("Application has not been started")
    return copilot.orchestrator


def create_app(copilot: FleetCopilotApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await copilot.start()
        try:
            yield
        finally:
            await copilot.stop()

    app = FastAPI(
        title="Fleet Copilot API",
        description="Conversational assistant over fleet telematics",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.copilot = copilot

    if copilot.config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=copilot.config.server.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    @app.post("/api/copilot/send")
    async def send(
        payload: ChatRequest,
        request: Request,
        orchestrator: StreamingOrchestrator = Depends(get_orchestrator),
    ) -> StreamingResponse:
        try:
            turn = await orchestrator.prepare_turn(payload.message, payload.thread_id)
        except ThreadNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

        return StreamingResponse(
            orchestrator.stream_turn(turn, is_disconnected=request.is_disconnected),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/copilot/threads", response_model=ThreadListResponse)
    async def list_threads(threads: ThreadRepository = Depends(get_threads)) -> ThreadListResponse:
        records = await threads.list_threads()
        return ThreadListResponse(
            threads=[
                ThreadSummary(
                    thread_id=r.thread_id,
                    title=r.title,
                    created_at=r.created_at,
                    updated_at=r.updated_at,
                    total_tokens=r.total_tokens,
                )
                for r in records
            ]
        )

    @app.get("/api/copilot/threads/{thread_id}", response_model=ThreadDetail)
    async def get_thread(thread_id: str, threads: ThreadRepository = Depends(get_threads)) -> ThreadDetail:
        thread = await threads.get_thread(thread_id)
        if thread is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
        messages = await threads.get_display_messages(thread_id)
        return ThreadDetail(
            thread_id=thread.thread_id,
            title=thread.title,
            created_at=thread.created_at,
            updated_at=thread.updated_at,
            total_input_tokens=thread.total_input_tokens,
            total_output_tokens=thread.total_output_tokens,
            total_tokens=thread.total_tokens,
            messages=[
                ThreadMessage(id=m.id, role=m.role, content=m.content, created_at=m.created_at) for m in messages
            ],
        )

    @app.delete("/api/copilot/threads/{thread_id}", response_model=DeleteResponse)
    async def delete_thread(thread_id: str, threads: ThreadRepository = Depends(get_threads)) -> DeleteResponse:
        if await threads.get_thread(thread_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
        await threads.delete_thread(thread_id)
        return DeleteResponse()

    @app.get("/storage/{path:path}")
    async def storage(path: str, copilot: FleetCopilotApp = Depends(get_copilot)) -> FileResponse:
        parts = PurePosixPath(path).parts
        if not parts or parts[0] not in ALLOWED_STORAGE_PREFIXES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        try:
            full_path = copilot.blobs.resolve(path)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied") from e
        if not await copilot.blobs.exists(path):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        return FileResponse(full_path, headers={"Cache-Control": STORAGE_CACHE_CONTROL})

    @app.get("/health", response_model=HealthResponse)
    async def health(copilot: FleetCopilotApp = Depends(get_copilot)) -> HealthResponse:
        checks = await copilot.health()
        return HealthResponse(status="ok" if all(checks.values()) else "degraded", checks=checks)

    return app
