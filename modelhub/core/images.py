"""Image generation orchestration.

A single non-streaming upstream call, reported to the caller as a chunked
plain-text body of `PROGRESS:` lines followed by exactly one `COMPLETE:` or
`ERROR:` line.
"""

import base64
import json
import os
import time
from collections.abc import Callable, Iterator

import httpx
import structlog

from modelhub.core.blobs import BlobStore
from modelhub.core.errors import (
    NoImageDataError,
    StreamTimeoutError,
    UpstreamHTTPError,
    describe_error,
    describe_status,
    extract_error_detail,
    one_line,
)
from modelhub.core.providers import auth_headers, build_image_payload, resolve_url
from modelhub.core.recorder import TurnRecorder
from modelhub.core.resolver import ResolvedEndpoint

logger = structlog.get_logger(__name__)


def progress(text: str) -> bytes:
    return f"PROGRESS:{text}\n".encode("utf-8")


def extract_image_base64(body: dict, fetch: Callable[[str], bytes]) -> str:
    """Find the generated image in an upstream response body.

    Tries `data[0].b64_json`, then `data[0].url` (downloaded and encoded),
    then Together's `output.choices[0].image_base64`. `fetch` downloads a URL
    and returns its bytes.

    Raises:
        NoImageDataError: If none of the shapes carry an image.
    """
    data = body.get("data") if isinstance(body, dict) else None
    if isinstance(data, list) and data and isinstance(data[0], dict):
        first = data[0]
        if first.get("b64_json"):
            return first["b64_json"]
        if first.get("url"):
            logger.debug("images.fetch_url")
            return base64.b64encode(fetch(first["url"])).decode("ascii")

    output = body.get("output") if isinstance(body, dict) else None
    if isinstance(output, dict):
        choices = output.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            if choices[0].get("image_base64"):
                return choices[0]["image_base64"]

    raise NoImageDataError("No image data received from API")


def failure_reason(exc: Exception) -> str:
    if isinstance(exc, UpstreamHTTPError):
        return exc.detail or describe_status(exc.status)
    if isinstance(exc, (httpx.HTTPError, StreamTimeoutError)):
        return describe_error(exc)
    return str(exc) or "Image generation failed"


class ImageGenerationCall:
    """One image generation request relayed to the caller as progress lines."""

    def __init__(
        self,
        endpoint: ResolvedEndpoint,
        prompt: str,
        recorder: TurnRecorder,
        blobs: BlobStore,
        transport: httpx.BaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.endpoint = endpoint
        self.prompt = prompt
        self.recorder = recorder
        self.blobs = blobs
        self.transport = transport
        self.timeout = timeout or float(os.environ.get("IMAGE_TIMEOUT", "120"))

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StreamTimeoutError(f"Image generation exceeded {self.timeout:g}s")
        return remaining

    def _read_before(self, response: httpx.Response, deadline: float) -> bytes:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            self._remaining(deadline)
        return b"".join(chunks)

    def _fetch(self, client: httpx.Client, url: str, deadline: float) -> bytes:
        # Provider CDN links are pre-signed; no credentials are sent.
        with client.stream("GET", url, timeout=self._remaining(deadline)) as image:
            image.raise_for_status()
            return self._read_before(image, deadline)

    def frames(self) -> Iterator[bytes]:
        yield progress("Initializing image generation...")
        try:
            url = resolve_url(self.endpoint.base_url, is_image=True)
            payload = build_image_payload(self.endpoint.base_url, self.endpoint.model,
                                          self.prompt, provider=self.endpoint.provider)
            logger.info("images.request", url=url, model=self.endpoint.model)
            yield progress("Sending request to image generation API...")

            deadline = time.monotonic() + self.timeout
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                with client.stream("POST", url, json=payload,
                                   headers=auth_headers(self.endpoint.api_key)) as response:
                    if response.status_code >= 400:
                        response.read()
                        raise UpstreamHTTPError(response.status_code, extract_error_detail(response))
                    body = json.loads(self._read_before(response, deadline))

                yield progress("Processing generated image...")
                image_b64 = extract_image_base64(
                    body, lambda image_url: self._fetch(client, image_url, deadline))

            image_ref = self.blobs.save(base64.b64decode(image_b64))
            yield progress("Saving image and response...")

            content = f'Generated image for: "{self.prompt}"'
            self.recorder.record("assistant", content, image_path=image_ref)
            logger.info("images.complete", model=self.endpoint.model, image_path=image_ref)
            result = {"content": content, "image_path": image_ref, "success": True}
            yield f"COMPLETE:{json.dumps(result)}\n".encode("utf-8")

        except Exception as e:
            reason = one_line(failure_reason(e))
            logger.error("images.failed", model=self.endpoint.model, error=reason,
                         error_type=type(e).__name__)
            self.recorder.record("assistant", f"Error generating image: {reason}")
            yield f"ERROR:{reason}\n".encode("utf-8")
