"""Endpoint resolution: merge endpoint, platform and credential into one
immutable configuration for a chat call."""

from dataclasses import dataclass

import structlog

from modelhub.core.database import ChatStore
from modelhub.core.errors import EndpointNotFoundError
from modelhub.core.providers import Provider, detect_provider

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolvedEndpoint:
    """Everything the chat core needs to call an upstream provider.

    Attributes:
        id: Endpoint identifier.
        name: Display name.
        platform_id: Owning platform.
        is_custom: Whether `base_url` came from the endpoint's custom URL.
        base_url: The authoritative upstream base URL.
        api_key: Credential secret.
        model: Upstream model id.
        model_type: "text" or "image".
        system_prompt: Possibly empty system prompt.
        temperature: Sampling temperature.
        provider: Provider family tag used for payload shaping.
    """
    id: str
    name: str
    platform_id: str
    is_custom: bool
    base_url: str
    api_key: str
    model: str
    model_type: str
    system_prompt: str
    temperature: float
    provider: Provider

    @property
    def is_image(self) -> bool:
        return self.model_type == "image"


def resolve_endpoint(store: ChatStore, endpoint_id: str) -> ResolvedEndpoint:
    """Look up an endpoint and resolve its base URL, credential and provider.

    Raises:
        EndpointNotFoundError: If no endpoint with that id exists.
    """
    bundle = store.get_endpoint_bundle(endpoint_id)
    if bundle is None:
        raise EndpointNotFoundError(f"Endpoint not found: {endpoint_id}")

    endpoint, platform, key = bundle
    is_custom = bool(platform.is_custom)
    base_url = endpoint.custom_base_url if is_custom else platform.base_url

    resolved = ResolvedEndpoint(
        id=endpoint.id,
        name=endpoint.name,
        platform_id=platform.id,
        is_custom=is_custom,
        base_url=base_url or "",
        api_key=key.api_key,
        model=endpoint.model,
        model_type=endpoint.model_type or "text",
        system_prompt=endpoint.system_prompt or "",
        temperature=endpoint.temperature if endpoint.temperature is not None else 0.7,
        provider=detect_provider(base_url or ""),
    )
    logger.debug("resolver.resolved", endpoint_id=endpoint_id, platform=platform.id,
                 provider=resolved.provider.value, model=resolved.model,
                 model_type=resolved.model_type, has_key=bool(resolved.api_key))
    return resolved
