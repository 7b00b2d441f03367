"""
Attachment store -- boundary for receipt blobs.

The kernel never inspects blob contents.  It stores what the requestor
uploaded and keeps only the returned key (with name and MIME type) on the
expense; policy checks look at presence alone.
"""

from __future__ import annotations

from typing import Protocol
from uuid import uuid4

from expense_kernel.domain.dtos import AttachmentRef, AttachmentUpload
from expense_kernel.logging_config import get_logger

logger = get_logger("services.attachment_store")


class AttachmentStore(Protocol):
    def put(self, name: str, mime_type: str, data: bytes) -> str:
        """Store a blob and return a stable key for later retrieval."""
        ...

    def get(self, key: str) -> tuple[str, str, bytes]:
        """Return ``(name, mime_type, data)`` for a key.

        Raises:
            KeyError: if the key is unknown.
        """
        ...


class InMemoryAttachmentStore:
    """Process-local store, for tests and single-process deployments."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[str, str, bytes]] = {}

    def put(self, name: str, mime_type: str, data: bytes) -> str:
        key = f"att-{uuid4().hex}"
        self._blobs[key] = (name, mime_type, bytes(data))
        logger.debug(
            "attachment_stored",
            extra={"storage_key": key, "mime_type": mime_type, "size": len(data)},
        )
        return key

    def get(self, key: str) -> tuple[str, str, bytes]:
        return self._blobs[key]

    def __contains__(self, key: str) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


def store_attachment(
    store: AttachmentStore,
    attachment: AttachmentUpload | AttachmentRef | None,
) -> AttachmentRef | None:
    """Persist an upload and return its reference; pass references through."""
    if attachment is None:
        return None
    if isinstance(attachment, AttachmentRef):
        return attachment
    key = store.put(attachment.name, attachment.mime_type, attachment.data)
    return AttachmentRef(attachment.name, attachment.mime_type, key)
