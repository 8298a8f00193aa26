"""Administrative endpoints: platforms, API keys, endpoints, sessions,
message listing, image upload and provider model catalogs."""

import os
from pathlib import PurePosixPath

import structlog
from fastapi import APIRouter, File, Header, HTTPException, Request, UploadFile

from modelhub.api.schemas import (
    ApiKeyIn,
    ApiKeyRecord,
    DeletedResponse,
    EndpointIn,
    EndpointRecord,
    MessageRecord,
    PlatformRecord,
    ProviderModel,
    SessionIn,
    SessionRecord,
    UploadResponse,
)
from modelhub.core.catalog import LISTERS, CatalogError, InvalidProviderKeyError
from modelhub.core.providers import classify_model

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")

PROVIDER_LABELS = {
    "together": "Together AI",
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google": "Google AI",
}


def _endpoint_record(endpoint, platform, key) -> EndpointRecord:
    return EndpointRecord(
        id=endpoint.id,
        name=endpoint.name,
        platform_id=endpoint.platform_id,
        custom_base_url=endpoint.custom_base_url or "",
        api_key_id=endpoint.api_key_id,
        api_key=key.api_key,
        model=endpoint.model,
        model_type=endpoint.model_type,
        system_prompt=endpoint.system_prompt or "",
        temperature=endpoint.temperature,
        created_at=endpoint.created_at,
        platform_base_url=platform.base_url,
        is_custom=bool(platform.is_custom),
    )


def _endpoint_fields(payload: EndpointIn) -> dict:
    fields = payload.model_dump()
    fields["model_type"] = payload.model_type or classify_model(payload.model).value
    return fields


@router.get("/platforms", response_model=list[PlatformRecord])
def list_platforms(req: Request):
    return req.app.state.store.list_platforms()


# API keys

@router.get("/api-keys", response_model=list[ApiKeyRecord])
def list_api_keys(req: Request):
    return req.app.state.store.list_api_keys()


@router.post("/api-keys", response_model=ApiKeyRecord)
def create_api_key(payload: ApiKeyIn, req: Request):
    try:
        row = req.app.state.store.create_api_key(payload.name, payload.api_key)
    except Exception as e:
        logger.error("admin.api_key_create_failed", name=payload.name, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    logger.info("admin.api_key_created", key_id=row.id, name=row.name)
    return row


@router.put("/api-keys/{key_id}", response_model=ApiKeyRecord)
def update_api_key(key_id: str, payload: ApiKeyIn, req: Request):
    row = req.app.state.store.update_api_key(key_id, payload.name, payload.api_key)
    if row is None:
        raise HTTPException(status_code=404, detail="API key not found")
    return row


@router.delete("/api-keys/{key_id}", response_model=DeletedResponse)
def delete_api_key(key_id: str, req: Request):
    req.app.state.store.delete_api_key(key_id)
    return DeletedResponse()


# Endpoints

@router.get("/endpoints", response_model=list[EndpointRecord])
def list_endpoints(req: Request):
    return [_endpoint_record(*row) for row in req.app.state.store.list_endpoints()]


@router.post("/endpoints", response_model=EndpointRecord)
def create_endpoint(payload: EndpointIn, req: Request):
    store = req.app.state.store
    try:
        row = store.create_endpoint(**_endpoint_fields(payload))
    except Exception as e:
        logger.error("admin.endpoint_create_failed", name=payload.name, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    bundle = store.get_endpoint_bundle(row.id)
    if bundle is None:
        # Dangling platform or API key reference.
        store.delete_endpoint(row.id)
        raise HTTPException(status_code=400, detail="Unknown platform_id or api_key_id")
    logger.info("admin.endpoint_created", endpoint_id=row.id, model=row.model,
                model_type=row.model_type)
    return _endpoint_record(*bundle)


@router.put("/endpoints/{endpoint_id}", response_model=EndpointRecord)
def update_endpoint(endpoint_id: str, payload: EndpointIn, req: Request):
    store = req.app.state.store
    if store.update_endpoint(endpoint_id, **_endpoint_fields(payload)) is None:
        raise HTTPException(status_code=404, detail="Endpoint not found")
    bundle = store.get_endpoint_bundle(endpoint_id)
    if bundle is None:
        raise HTTPException(status_code=400, detail="Unknown platform_id or api_key_id")
    return _endpoint_record(*bundle)


@router.delete("/endpoints/{endpoint_id}", response_model=DeletedResponse)
def delete_endpoint(endpoint_id: str, req: Request):
    req.app.state.store.delete_endpoint(endpoint_id)
    return DeletedResponse()


# Sessions and messages

@router.get("/sessions", response_model=list[SessionRecord])
def list_sessions(req: Request):
    return req.app.state.store.list_sessions()


@router.post("/sessions", response_model=SessionRecord)
def create_session(payload: SessionIn, req: Request):
    return req.app.state.store.create_session(payload.endpoint_id, payload.name)


@router.delete("/sessions/{session_id}", response_model=DeletedResponse)
def delete_session(session_id: str, req: Request):
    req.app.state.store.delete_session(session_id)
    return DeletedResponse()


@router.get("/sessions/{session_id}/messages", response_model=list[MessageRecord])
def list_messages(session_id: str, req: Request):
    try:
        return req.app.state.store.get_messages(session_id)
    except Exception as e:
        logger.error("admin.messages_failed", session_id=session_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch session messages")


# Uploads

@router.post("/upload", response_model=UploadResponse)
def upload_image(req: Request, image: UploadFile | None = File(None)):
    """Store an uploaded image under the uploads directory."""
    if image is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed!")

    max_bytes = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    data = image.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    suffix = PurePosixPath(image.filename or "").suffix
    ref = req.app.state.blobs.save(data, prefix="image", suffix=suffix)
    filename = ref.rsplit("/", 1)[-1]
    logger.info("admin.upload_stored", filename=filename, size=len(data))
    return UploadResponse(
        message="File uploaded successfully",
        path=ref,
        filename=filename,
        originalName=image.filename or "",
        size=len(data),
    )


# Provider model catalogs

@router.get("/{provider}/models", response_model=list[ProviderModel])
def list_provider_models(provider: str, req: Request, authorization: str | None = Header(None)):
    lister = LISTERS.get(provider)
    if lister is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    api_key = authorization[len("Bearer "):]
    label = PROVIDER_LABELS[provider]
    transport = getattr(req.app.state, "upstream_transport", None)
    try:
        return lister(api_key, transport=transport)
    except InvalidProviderKeyError:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid {label} API key. Please check your API key and try again.",
        )
    except (CatalogError, KeyError, TypeError, ValueError) as e:
        logger.error("admin.catalog_failed", provider=provider, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to fetch models from {label}")
