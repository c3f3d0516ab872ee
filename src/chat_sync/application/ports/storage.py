from __future__ import annotations

from typing import Protocol


class FileStorage(Protocol):
    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Store the payload and return its public URL.

        Raises ``AttachmentError`` when the file is refused for size or type
        and ``StorageError`` when the storage itself fails.
        """
        ...
