"""Hugging Face Hub client for fetching model and vocabulary files.

Only the two operations the preload flow needs are implemented: listing the
GGUF files in a repository and streaming a single file to disk. Failures
are logged and reported as ``False`` / empty results; callers decide how to
surface them.
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Union
from urllib.parse import quote, urlparse

import httpx
import structlog

logger = structlog.get_logger("embedding_service.huggingface")

DEFAULT_ENDPOINT = "https://huggingface.co/"


@dataclass(frozen=True)
class GgufFileDetails:
    """A GGUF file published in a model repository."""
    filename: str
    content_length: int = 0
    object_id: Optional[str] = None

    def __post_init__(self):
        if self.content_length < 0:
            raise ValueError("content_length must be non-negative")


class HuggingFaceClient:
    """Async client for the Hugging Face model repository."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        chunk_size: int = 8192,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_bytes_written=None,
    ):
        """Configure the client.

        Parameters
        - api_key: Bearer token sent with every request when set
        - endpoint: Base URL of the hub; a trailing slash is appended
        - chunk_size: Streaming buffer size in bytes (>= 1)
        - timeout: Per-request timeout in seconds
        - transport: Optional ``httpx`` transport (tests use ``MockTransport``)
        - on_bytes_written: Optional callback receiving the byte count of each
          completed download
        """
        parsed = urlparse(endpoint or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid endpoint: {endpoint!r}")
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        self.endpoint = endpoint if endpoint.endswith("/") else endpoint + "/"
        self.api_key = api_key
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._transport = transport
        self._on_bytes_written = on_bytes_written

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    def file_url(self, model_id: str, filename: str) -> str:
        return f"{self.endpoint}{model_id}/resolve/main/{quote(filename)}"

    async def list_gguf_files(self, model_id: str) -> List[GgufFileDetails]:
        """List the ``.gguf`` files at the root of ``model_id``'s main branch."""
        if not model_id:
            raise ValueError("model_id is required")

        url = f"{self.endpoint}api/models/{model_id}/tree/main"
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning("Failed to list repository files", url=url, error=str(e))
            return []

        if not response.is_success:
            logger.warning("Failure response listing files", url=url, status=response.status_code)
            return []
        if not response.content:
            logger.warning("No response body listing files", url=url)
            return []

        try:
            entries = response.json()
        except ValueError as e:
            logger.warning("Malformed file listing", url=url, error=str(e))
            return []

        files = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            path = entry.get("path")
            if not path or not str(path).endswith(".gguf"):
                continue
            size = entry.get("size")
            files.append(GgufFileDetails(
                filename=str(path),
                content_length=size if isinstance(size, int) and size > 0 else 0,
                object_id=entry.get("oid"),
            ))

        logger.debug("Listed GGUF files", model_id=model_id, count=len(files))
        return files

    async def download_file(
        self,
        model_id: str,
        remote_filename: str,
        local_path: Union[str, Path],
    ) -> bool:
        """Stream ``remote_filename`` from ``model_id`` into ``local_path``.

        Data is written to a uniquely named temporary sibling first and moved
        over ``local_path`` only once complete, so an existing file is
        overwritten atomically, concurrent downloads of the same target never
        share a partial file, and a failed or cancelled download leaves
        nothing behind.
        """
        if not model_id:
            raise ValueError("model_id is required")
        if not remote_filename:
            raise ValueError("remote_filename is required")
        if not local_path:
            raise ValueError("local_path is required")

        local_path = Path(local_path)
        partial_path: Optional[Path] = None
        url = self.file_url(model_id, remote_filename)

        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        logger.warning("Failure response from hub", url=url, status=response.status_code)
                        return False

                    with tempfile.NamedTemporaryFile(
                        dir=local_path.parent,
                        prefix=f"{local_path.name}.",
                        suffix=".part",
                        delete=False,
                    ) as f:
                        partial_path = Path(f.name)
                        written = await self._write_stream(response, f, url)

            if written == 0:
                logger.warning("Response body is empty", url=url)
                partial_path.unlink(missing_ok=True)
                return False

            os.replace(partial_path, local_path)
        except asyncio.CancelledError:
            self._discard(partial_path)
            logger.info("Download cancelled", url=url)
            raise
        except (httpx.HTTPError, OSError) as e:
            self._discard(partial_path)
            logger.error("Error during download", url=url, error=str(e))
            return False

        if self._on_bytes_written is not None:
            self._on_bytes_written(written)
        logger.info("Downloaded file", url=url, path=str(local_path), bytes=written)
        return True

    @staticmethod
    def _discard(path: Optional[Path]) -> None:
        if path is not None:
            path.unlink(missing_ok=True)

    async def _write_stream(self, response: httpx.Response, f: BinaryIO, url: str) -> int:
        loop = asyncio.get_running_loop()
        total = int(response.headers.get("Content-Length") or 0)
        written = 0
        next_milestone = 10
        async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
            # disk writes stay off the event loop
            await loop.run_in_executor(None, f.write, chunk)
            written += len(chunk)
            if total:
                progress = written * 100 // total
                if progress >= next_milestone:
                    logger.debug(
                        "Download progress",
                        url=url,
                        progress_pct=progress,
                        bytes=written,
                        total_bytes=total
                    )
                    next_milestone = (progress // 10 + 1) * 10
        return written
