"""Best-effort persistence of chat turns."""

import structlog

from modelhub.core.database import ChatStore, new_id

logger = structlog.get_logger(__name__)


class TurnRecorder:
    """Records turns for one chat call.

    Writes happen only when saving is enabled and a session is bound. Each
    write is independent; a failure is logged and never reaches the caller.
    """

    def __init__(self, store: ChatStore, session_id: str | None, enabled: bool = True):
        self.store = store
        self.session_id = session_id
        self.enabled = enabled

    @property
    def active(self) -> bool:
        return bool(self.enabled and self.session_id)

    def record(
        self,
        role: str,
        content: str,
        image_path: str | None = None,
        message_id: str | None = None,
    ) -> str | None:
        """Insert a turn.

        Returns:
            The message id, or None if nothing was written.
        """
        if not self.active:
            return None
        message_id = message_id or new_id()
        try:
            self.store.add_message(self.session_id, role, content,
                                   image_path=image_path, message_id=message_id)
        except Exception as e:
            logger.error("recorder.persist_failed", session_id=self.session_id,
                         role=role, error=str(e))
            return None
        return message_id
