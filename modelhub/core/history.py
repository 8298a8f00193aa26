"""History assembly for upstream chat completion calls.

Rebuilds a session's prior turns into the OpenAI-style message list,
inlining stored user images as base64 data URIs.
"""

import base64
from pathlib import PurePosixPath

import structlog

from modelhub.core.blobs import BlobStore
from modelhub.core.database import ChatStore

logger = structlog.get_logger(__name__)


def mime_type_for(ref: str) -> str:
    return "image/png" if PurePosixPath(ref).suffix.lower() == ".png" else "image/jpeg"


def image_data_uri(blobs: BlobStore, ref: str) -> str | None:
    """Encode a stored image as a data URI, or None if the file is gone."""
    data = blobs.read(ref)
    if data is None:
        logger.warning("history.image_missing", ref=ref)
        return None
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type_for(ref)};base64,{encoded}"


def build_content(blobs: BlobStore, text: str, image_ref: str | None) -> str | list[dict]:
    """Plain text, or a text + image_url part list when the image still exists."""
    if image_ref:
        uri = image_data_uri(blobs, image_ref)
        if uri:
            return [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": uri}},
            ]
    return text


def assemble_messages(
    store: ChatStore,
    blobs: BlobStore,
    session_id: str | None,
    exclude_message_id: str | None,
    system_prompt: str,
    message: str,
    image_path: str | None = None,
    use_history: bool = True,
) -> list[dict]:
    """Build the ordered message list for an upstream chat call.

    Args:
        store: Conversation store.
        blobs: Image blob store.
        session_id: Session whose prior turns are replayed, if any.
        exclude_message_id: Id of the pending user turn, already persisted.
        system_prompt: Endpoint system prompt; skipped when empty.
        message: Current user message.
        image_path: Optional blob reference attached to the current message.
        use_history: Whether prior turns are replayed at all.

    Returns:
        List of {"role", "content"} dicts, current user turn last.
    """
    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    if use_history and session_id:
        for row in store.get_messages(session_id, exclude_id=exclude_message_id):
            # Only user turns carry images upstream.
            ref = row.image_path if row.role == "user" else None
            messages.append({"role": row.role, "content": build_content(blobs, row.content, ref)})

    messages.append({"role": "user", "content": build_content(blobs, message, image_path)})
    logger.debug("history.assembled", session_id=session_id, count=len(messages))
    return messages
