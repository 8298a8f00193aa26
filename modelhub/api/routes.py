"""Chat and health endpoints.

POST /api/chat - relay a text completion or an image generation
GET /health - component health check
"""

import time

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from modelhub.api.schemas import ChatRequest
from modelhub.core.database import new_id
from modelhub.core.errors import EndpointNotFoundError
from modelhub.core.history import assemble_messages
from modelhub.core.images import ImageGenerationCall
from modelhub.core.recorder import TurnRecorder
from modelhub.core.relay import TextCompletionCall
from modelhub.core.resolver import resolve_endpoint

logger = structlog.get_logger(__name__)

router = APIRouter()

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.post("/api/chat")
def chat(request: ChatRequest, req: Request):
    """Resolve the endpoint, record the user turn and open the streamed reply."""
    start = time.monotonic()
    store = req.app.state.store
    blobs = req.app.state.blobs
    transport = getattr(req.app.state, "upstream_transport", None)

    logger.info("chat.request", endpoint_id=request.endpoint_id, session_id=request.session_id,
                msg_len=len(request.message), has_image=bool(request.image_path),
                use_history=request.use_history, save=request.save_to_db)

    try:
        endpoint = resolve_endpoint(store, request.endpoint_id)
    except EndpointNotFoundError as e:
        logger.warning("chat.endpoint_not_found", endpoint_id=request.endpoint_id)
        raise HTTPException(status_code=404, detail=str(e))

    recorder = TurnRecorder(store, request.session_id, enabled=request.save_to_db)
    user_message_id = new_id()
    recorder.record("user", request.message, image_path=request.image_path,
                    message_id=user_message_id)

    if endpoint.is_image:
        call = ImageGenerationCall(endpoint, request.message, recorder, blobs, transport=transport)
        logger.info("chat.dispatched", kind="image", model=endpoint.model,
                    setup_ms=int((time.monotonic() - start) * 1000))
        return StreamingResponse(call.frames(), media_type="text/plain", headers=STREAM_HEADERS)

    try:
        messages = assemble_messages(
            store,
            blobs,
            session_id=request.session_id,
            exclude_message_id=user_message_id,
            system_prompt=endpoint.system_prompt,
            message=request.message,
            image_path=request.image_path,
            use_history=request.use_history,
        )
    except Exception as e:
        logger.error("chat.history_failed", session_id=request.session_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load conversation history.")

    call = TextCompletionCall(endpoint, messages, recorder, transport=transport)
    logger.info("chat.dispatched", kind="text", model=endpoint.model, messages=len(messages),
                setup_ms=int((time.monotonic() - start) * 1000))
    return StreamingResponse(
        call.frames(),
        media_type="text/plain",
        headers=STREAM_HEADERS,
        background=BackgroundTask(call.persist),
    )


@router.get("/health")
def health(req: Request):
    """Check health of the store and the uploads directory."""
    components = {}

    try:
        req.app.state.store.count_messages()
        components["database"] = "ok"
    except Exception:
        components["database"] = "error"

    components["uploads"] = "ok" if req.app.state.blobs.root.is_dir() else "error"

    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "modelhub-api"}
