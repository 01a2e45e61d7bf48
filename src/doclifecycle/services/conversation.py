"""Cascade cleanup invoked by the chat layer after it deletes messages.

The lifecycle store never observes message deletion on its own. Once the chat
layer has removed messages or a whole conversation it calls into this module,
which detaches the affected versions and then deletes whatever is left both
standalone and unpublished. Published versions survive as standalone rows.
"""

import structlog
from pydantic import BaseModel, Field

from doclifecycle.services.lifecycle_store import LifecycleStore


class CleanupResult(BaseModel):
    """Counts from one cascade cleanup pass."""

    unlinked: int = Field(ge=0)
    deleted: int = Field(ge=0)

    model_config = {"frozen": True}


class ConversationCleanup:
    def __init__(
        self,
        store: LifecycleStore,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._logger = logger or structlog.get_logger(__name__)

    async def messages_deleted(self, workspace_id: str, message_ids: list[str]) -> CleanupResult:
        """Handle deletion of individual messages, e.g. after a message edit."""
        unlinked = await self._store.unlink_messages(message_ids, workspace_id)
        deleted = await self._store.clean_orphaned_versions(workspace_id)
        self._logger.info(
            "conversation_messages_cleaned",
            workspace_id=workspace_id,
            message_count=len(message_ids),
            unlinked=unlinked,
            deleted=deleted,
        )
        return CleanupResult(unlinked=unlinked, deleted=deleted)

    async def chat_deleted(self, workspace_id: str, chat_id: str) -> CleanupResult:
        """Handle deletion of an entire conversation."""
        unlinked = await self._store.unlink_chat(chat_id, workspace_id)
        deleted = await self._store.clean_orphaned_versions(workspace_id)
        self._logger.info(
            "conversation_chat_cleaned",
            workspace_id=workspace_id,
            chat_id=chat_id,
            unlinked=unlinked,
            deleted=deleted,
        )
        return CleanupResult(unlinked=unlinked, deleted=deleted)
