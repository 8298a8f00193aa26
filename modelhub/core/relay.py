"""Streaming relay for upstream chat completions.

`StreamRelay` is a pull-based state machine: it is fed raw upstream byte
chunks and yields the frames to write to the caller. It never assumes chunk
boundaries line up with SSE lines. `TextCompletionCall` drives one upstream
request through it and persists the accumulated reply once the caller's
response has ended.
"""

import codecs
import json
import os
import time
from collections.abc import Iterator
from enum import Enum

import httpx
import structlog

from modelhub.core.errors import (
    StreamTimeoutError,
    UpstreamHTTPError,
    describe_error,
    extract_error_detail,
    one_line,
)
from modelhub.core.providers import auth_headers, build_chat_payload, resolve_url
from modelhub.core.recorder import TurnRecorder
from modelhub.core.resolver import ResolvedEndpoint

logger = structlog.get_logger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"


class RelayState(str, Enum):
    OPEN = "open"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


class SSELineBuffer:
    """Reassembles newline-terminated lines from arbitrary byte chunks."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left after the final chunk."""
        tail = (self._pending + self._decoder.decode(b"", final=True)).rstrip("\r")
        self._pending = ""
        return [tail] if tail else []


class StreamRelay:
    """Re-frames upstream SSE events and accumulates the streamed text.

    Exactly one terminal frame (`[DONE]` or an error line) is ever produced;
    anything fed after that is ignored.
    """

    def __init__(self):
        self.state = RelayState.OPEN
        self._lines = SSELineBuffer()
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def finished(self) -> bool:
        return self.state in (RelayState.DONE, RelayState.ERROR)

    def feed(self, chunk: bytes) -> Iterator[str]:
        if self.finished:
            return
        self.state = RelayState.STREAMING
        for line in self._lines.feed(chunk):
            yield from self._handle_line(line)
            if self.finished:
                return

    def close(self) -> Iterator[str]:
        """Upstream ended: drain the partial line, then terminate normally."""
        if self.finished:
            return
        for line in self._lines.flush():
            yield from self._handle_line(line)
        yield from self.finish()

    def finish(self) -> Iterator[str]:
        if self.finished:
            return
        self.state = RelayState.DONE
        yield DONE_FRAME

    def fail(self, message: str) -> Iterator[str]:
        if self.finished:
            return
        self.state = RelayState.ERROR
        yield f"ERROR: {one_line(message)}\n"

    def _handle_line(self, line: str) -> Iterator[str]:
        if self.finished or not line.startswith(DATA_PREFIX):
            return
        data = line[len(DATA_PREFIX):].strip()
        if data == DONE_SENTINEL:
            yield from self.finish()
            return

        try:
            parsed = json.loads(data)
        except ValueError:
            logger.warning("relay.bad_fragment", fragment=data[:200])
            return

        choice = _first_choice(parsed)
        if choice is None:
            return
        delta = choice.get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        if content:
            self._parts.append(content)
            yield f"{DATA_PREFIX}{data}\n\n"
        elif choice.get("finish_reason"):
            logger.debug("relay.finish_reason", reason=choice["finish_reason"])
            yield from self.finish()


def _first_choice(parsed) -> dict | None:
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    return choices[0]


class TextCompletionCall:
    """One streaming chat completion relayed to the caller."""

    def __init__(
        self,
        endpoint: ResolvedEndpoint,
        messages: list[dict],
        recorder: TurnRecorder,
        transport: httpx.BaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.endpoint = endpoint
        self.messages = messages
        self.recorder = recorder
        self.transport = transport
        self.timeout = timeout or float(os.environ.get("TEXT_STREAM_TIMEOUT", "300"))
        self.relay = StreamRelay()

    def frames(self) -> Iterator[bytes]:
        """Yield caller-facing bytes as upstream chunks arrive."""
        url = resolve_url(self.endpoint.base_url, is_image=False)
        payload = build_chat_payload(self.endpoint.model, self.messages, self.endpoint.temperature)
        deadline = time.monotonic() + self.timeout
        logger.info("relay.request", url=url, model=self.endpoint.model, messages=len(self.messages))

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                with client.stream("POST", url, json=payload,
                                   headers=auth_headers(self.endpoint.api_key)) as response:
                    if response.status_code >= 400:
                        response.read()
                        raise UpstreamHTTPError(response.status_code, extract_error_detail(response))

                    for chunk in response.iter_bytes():
                        for frame in self.relay.feed(chunk):
                            yield frame.encode("utf-8")
                        if self.relay.finished:
                            break
                        if time.monotonic() > deadline:
                            raise StreamTimeoutError(f"No stream termination within {self.timeout:.0f}s")

            for frame in self.relay.close():
                yield frame.encode("utf-8")
            logger.info("relay.done", model=self.endpoint.model, chars=len(self.relay.text))

        except Exception as e:
            logger.error("relay.failed", model=self.endpoint.model, error=str(e),
                         error_type=type(e).__name__)
            for frame in self.relay.fail(describe_error(e)):
                yield frame.encode("utf-8")

    def persist(self) -> None:
        """Record the assistant reply. Runs after the response has been sent."""
        if self.relay.state is not RelayState.DONE:
            return
        self.recorder.record("assistant", self.relay.text)
