"""Model catalogs for the built-in providers.

Each lister takes a caller-supplied API key and returns `ProviderModel`-shaped
dicts sorted by id.
"""

import httpx
import structlog

from modelhub.core.providers import ModelKind, classify_model

logger = structlog.get_logger(__name__)

CATALOG_TIMEOUT = 30.0

ANTHROPIC_MODELS = [
    {"id": "claude-3-5-sonnet-20241022", "name": "Claude 3.5 Sonnet"},
    {"id": "claude-3-5-haiku-20241022", "name": "Claude 3.5 Haiku"},
    {"id": "claude-3-opus-20240229", "name": "Claude 3 Opus"},
    {"id": "claude-3-sonnet-20240229", "name": "Claude 3 Sonnet"},
    {"id": "claude-3-haiku-20240307", "name": "Claude 3 Haiku"},
]

_OPENAI_FAMILIES = ("gpt", "dall-e", "whisper", "tts")


class InvalidProviderKeyError(Exception):
    """The provider rejected the supplied API key."""
    pass


class CatalogError(Exception):
    """Listing models failed for any other reason."""
    pass


def _model(model_id: str, name: str | None = None, type_: str = "text",
           context_length: int | None = None, pricing: dict | None = None) -> dict:
    return {
        "id": model_id,
        "name": name or model_id,
        "type": type_,
        "context_length": context_length,
        "pricing": pricing,
    }


def _get_json(url: str, transport: httpx.BaseTransport | None, rejected: tuple[int, ...],
              headers: dict | None = None, params: dict | None = None):
    try:
        with httpx.Client(timeout=CATALOG_TIMEOUT, transport=transport) as client:
            response = client.get(url, headers=headers, params=params)
    except httpx.HTTPError as e:
        raise CatalogError(str(e)) from e
    if response.status_code in rejected:
        raise InvalidProviderKeyError(f"{url} rejected the API key ({response.status_code})")
    if response.status_code >= 400:
        raise CatalogError(f"{url} returned {response.status_code}")
    return response.json()


def _as_dict(body, source: str) -> dict:
    if not isinstance(body, dict):
        raise CatalogError(f"{source} returned an unexpected response shape")
    return body


def list_together_models(api_key: str, transport: httpx.BaseTransport | None = None) -> list[dict]:
    """Serverless Together models (those with input pricing)."""
    body = _get_json("https://api.together.xyz/v1/models", transport, rejected=(401,),
                     headers={"Authorization": f"Bearer {api_key}"})
    rows = body if isinstance(body, list) else body.get("data", [])
    models = [
        _model(m["id"], m.get("display_name"), m.get("type") or "text",
               m.get("context_length"), m.get("pricing"))
        for m in rows
        if isinstance(m.get("pricing"), dict) and m["pricing"].get("input") is not None
    ]
    return sorted(models, key=lambda m: m["id"])


def list_openai_models(api_key: str, transport: httpx.BaseTransport | None = None) -> list[dict]:
    body = _get_json("https://api.openai.com/v1/models", transport, rejected=(401,),
                     headers={"Authorization": f"Bearer {api_key}"})
    body = _as_dict(body, "OpenAI")
    models = [
        _model(m["id"], type_=classify_model(m["id"]).value)
        for m in body.get("data", [])
        if any(family in m["id"] for family in _OPENAI_FAMILIES)
    ]
    return sorted(models, key=lambda m: m["id"])


def list_anthropic_models(api_key: str, transport: httpx.BaseTransport | None = None) -> list[dict]:
    # No public listing API; the key is not checked.
    return [_model(m["id"], m["name"], ModelKind.TEXT.value, 200000) for m in ANTHROPIC_MODELS]


def list_google_models(api_key: str, transport: httpx.BaseTransport | None = None) -> list[dict]:
    body = _get_json("https://generativelanguage.googleapis.com/v1beta/models", transport,
                     rejected=(400, 403), params={"key": api_key})
    body = _as_dict(body, "Google")
    models = []
    for m in body.get("models", []):
        if "gemini" not in m["name"]:
            continue
        model_id = m["name"].replace("models/", "")
        models.append(_model(model_id, m.get("displayName") or model_id))
    return sorted(models, key=lambda m: m["id"])


LISTERS = {
    "together": list_together_models,
    "openai": list_openai_models,
    "anthropic": list_anthropic_models,
    "google": list_google_models,
}
