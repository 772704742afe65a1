"""Download chat attachments so the assistant can read them from disk."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Iterable

import httpx

from clawde.errors import AttachmentError
from clawde.transport import Attachment

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_S = 60.0
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", Path(name).name).strip("._")
    return cleaned or "attachment"


class AttachmentDownloader:
    def __init__(self, directory: Path, *, client: httpx.AsyncClient | None = None) -> None:
        self.directory = directory
        self._client = client

    async def download_all(self, attachments: Iterable[Attachment]) -> list[Path]:
        """Fetch every attachment; on failure, files already fetched are removed."""
        paths: list[Path] = []
        try:
            if self._client is not None:
                for attachment in attachments:
                    paths.append(await self._download(self._client, attachment))
            else:
                async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_S, follow_redirects=True) as client:
                    for attachment in attachments:
                        paths.append(await self._download(client, attachment))
        except BaseException:
            cleanup(paths)
            raise
        return paths

    async def _download(self, client: httpx.AsyncClient, attachment: Attachment) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / f"{int(time.time() * 1000)}-{safe_filename(attachment.filename)}"
        try:
            async with client.stream("GET", attachment.url) as response:
                if response.status_code != 200:
                    raise AttachmentError(
                        f"Failed to download {attachment.filename}: HTTP {response.status_code}"
                    )
                with target.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as exc:
            cleanup([target])
            raise AttachmentError(f"Failed to download {attachment.filename}: {exc}") from exc
        except BaseException:
            cleanup([target])
            raise
        logger.info("Saved attachment %s to %s", attachment.filename, target)
        return target


def cleanup(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove attachment %s: %s", path, exc)


__all__ = ["AttachmentDownloader", "DOWNLOAD_TIMEOUT_S", "cleanup", "safe_filename"]
