"""HTTP API: streamed question answering and vectorization requests.

Consumable API without business logic; pure delegation to the container.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from study_qa.application.use_cases.answer_question import SessionController
from study_qa.config.composition import Container, build_container
from study_qa.domain.errors import DocumentNotFound, ValidationError
from study_qa.domain.models import Question

logger = logging.getLogger(__name__)


class AskRequestModel(BaseModel):
    """Request model for /v1/qa/stream."""

    question: str = Field(min_length=1)
    document_id: str = Field(min_length=1)


class VectorizeResponseModel(BaseModel):
    """Response model for /v1/documents/{id}/vectorize."""

    status: str
    document_id: str
    task_id: str


def encode_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _sse_events(session: SessionController, question: Question) -> AsyncIterator[str]:
    events = session.run(question)
    try:
        async for event in events:
            yield encode_sse(event.to_wire())
    finally:
        # client went away (or we are done): stop any in-flight model call
        session.cancel()
        await events.aclose()


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app around a container (default: from environment)."""
    ctr = container or build_container()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        worker_task: asyncio.Task[None] | None = None
        stop = asyncio.Event()
        if ctr.settings.run_worker:
            worker = ctr.get_worker()
            worker_task = asyncio.create_task(worker.run(stop))
        try:
            yield
        finally:
            stop.set()
            if worker_task is not None:
                worker_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await worker_task

    app = FastAPI(title="Study QA API", version="1.0.0", lifespan=lifespan)
    app.state.container = ctr

    @app.post("/v1/qa/stream")
    async def ask_stream(
        req: AskRequestModel,
        x_user_id: str | None = Header(default=None),
    ) -> StreamingResponse:
        """Answer a question as a stream of server-sent events.

        Each event is ``data: {"fragment": "..."}``; the last one is
        ``data: {"done": true, "answer": ..., "pipelineUsed": ..., "success": ...}``.
        """
        if not x_user_id:
            raise HTTPException(status_code=401, detail="missing X-User-Id")
        try:
            question = Question(
                text=req.question, source_document_id=req.document_id, user_id=x_user_id
            )
        except ValidationError as ex:
            raise HTTPException(status_code=422, detail=str(ex)) from ex

        session = ctr.new_session()
        return StreamingResponse(
            _sse_events(session, question),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post(
        "/v1/documents/{document_id}/vectorize",
        status_code=202,
        response_model=VectorizeResponseModel,
    )
    async def vectorize(document_id: str) -> VectorizeResponseModel:
        """Queue (re)vectorization of a document; the work happens in the worker."""
        result = await ctr.get_scheduler().schedule(document_id)
        if not result.ok:
            if isinstance(result.error, DocumentNotFound):
                raise HTTPException(status_code=404, detail=str(result.error))
            logger.error("vectorization request for %s failed: %s", document_id, result.error)
            raise HTTPException(status_code=503, detail="work queue unavailable")
        return VectorizeResponseModel(
            status="accepted", document_id=document_id, task_id=str(result.value)
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "study-qa"}

    return app


def main() -> None:
    import uvicorn

    from study_qa.config.logging import configure_logging
    from study_qa.config.settings import AppSettings

    settings = AppSettings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(build_container(settings)), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
