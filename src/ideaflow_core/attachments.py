"""Attachment byte storage on the local filesystem."""
import asyncio
import logging
import os
from pathlib import Path

from .schemas import Attachment

logger = logging.getLogger("ideaflow-core.attachments")


def safe_file_name(file_name: str) -> str:
    """Strip directory components and reject empty names."""
    name = os.path.basename(file_name.replace("\\", "/")).strip()
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid attachment file name: {file_name!r}")
    return name


class LocalAttachmentStorage:
    """Stores attachment bytes under ``root_dir/<entity_type>/<entity_id>/``."""

    def __init__(self, root_dir: str, base_url: str = "/attachments"):
        self.root_dir = Path(root_dir)
        self.base_url = base_url.rstrip("/")

    async def save(self, entity_type: str, entity_id: int, file_name: str, content: bytes) -> Attachment:
        """
        Write ``content`` and return its {file_name, url} reference.

        An existing file with the same name is overwritten.
        """
        name = safe_file_name(file_name)
        target_dir = self.root_dir / entity_type / str(entity_id)
        target = target_dir / name

        def _write() -> None:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        await asyncio.to_thread(_write)
        logger.info(f"Stored attachment {name} ({len(content)} bytes) for {entity_type} #{entity_id}")
        return Attachment(file_name=name, url=f"{self.base_url}/{entity_type}/{entity_id}/{name}")
