"""Provider dispatch: model classification, upstream URL derivation and
image-generation payload shapes.

The provider family is decided once, when an endpoint is resolved, by running
`detect_provider` over its base URL (see `resolver.py`).
"""

from enum import Enum

from modelhub.core.errors import UnsupportedOperationError


class ModelKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class Provider(str, Enum):
    TOGETHER = "together"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    CUSTOM = "custom"


IMAGE_MODEL_FRAGMENTS = (
    "flux", "dall-e", "midjourney", "stable-diffusion", "playground-v2",
    "stable-diffusion-xl", "kandinsky", "imagen", "firefly",
)

IMAGE_GENERATIONS_PATH = "/images/generations"
CHAT_COMPLETIONS_PATH = "/chat/completions"


def classify_model(model_id: str) -> ModelKind:
    """Guess whether a model generates images from its name."""
    lowered = model_id.lower()
    if any(fragment in lowered for fragment in IMAGE_MODEL_FRAGMENTS):
        return ModelKind.IMAGE
    return ModelKind.TEXT


def detect_provider(base_url: str) -> Provider:
    """Map a base URL to a provider family by substring."""
    if "together.xyz" in base_url:
        return Provider.TOGETHER
    if "openai.com" in base_url:
        return Provider.OPENAI
    if "anthropic.com" in base_url:
        return Provider.ANTHROPIC
    if "googleapis.com" in base_url:
        return Provider.GOOGLE
    return Provider.CUSTOM


def resolve_url(base_url: str, is_image: bool) -> str:
    """Derive the concrete upstream URL for a text or image call.

    Args:
        base_url: Provider base URL, possibly already carrying the suffix.
        is_image: True for image generation, False for chat completions.

    Returns:
        The URL to POST to.
    """
    clean = base_url[:-1] if base_url.endswith("/") else base_url

    if is_image:
        # Kept apart so provider-specific image routes can diverge.
        if "together" in clean:
            return clean if clean.endswith(IMAGE_GENERATIONS_PATH) else clean + IMAGE_GENERATIONS_PATH
        if "openai" in clean:
            return clean if clean.endswith(IMAGE_GENERATIONS_PATH) else clean + IMAGE_GENERATIONS_PATH
        return clean if clean.endswith(IMAGE_GENERATIONS_PATH) else clean + IMAGE_GENERATIONS_PATH

    return clean if clean.endswith(CHAT_COMPLETIONS_PATH) else clean + CHAT_COMPLETIONS_PATH


def build_image_payload(
    base_url: str,
    model: str,
    prompt: str,
    provider: Provider | None = None,
) -> dict:
    """Build the image-generation request body for a provider family.

    Args:
        base_url: Provider base URL, used only when `provider` is None.
        model: Upstream model id.
        prompt: The user's prompt.
        provider: Provider tag resolved with the endpoint.

    Returns:
        JSON-serializable request body.

    Raises:
        UnsupportedOperationError: If the provider has no image API.
    """
    if provider is None:
        provider = detect_provider(base_url)

    if provider is Provider.TOGETHER:
        return {
            "model": model,
            "prompt": prompt,
            "width": 1024,
            "height": 1024,
            "steps": 20,
            "n": 1,
            "response_format": "b64_json",
        }
    if provider is Provider.ANTHROPIC:
        raise UnsupportedOperationError("Anthropic does not currently support image generation")
    if provider is Provider.GOOGLE:
        raise UnsupportedOperationError(
            "Google AI does not currently support image generation through this API"
        )

    # OpenAI and OpenAI-compatible custom endpoints
    return {
        "model": model,
        "prompt": prompt,
        "n": 1,
        "size": "1024x1024",
        "response_format": "b64_json",
    }


def build_chat_payload(model: str, messages: list[dict], temperature: float) -> dict:
    return {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "stream": True,
    }


def auth_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
