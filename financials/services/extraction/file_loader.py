"""Reading of source documents from local paths or URLs."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from financials.core.exceptions import FileLoadError, UnsupportedFileTypeError
from financials.models.facts import FileType
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

EXTENSION_TYPES = {
    ".pdf": FileType.PDF,
    ".xlsx": FileType.XLSX,
    ".xls": FileType.XLSX,
}


@dataclass(frozen=True)
class LoadedFile:
    """Raw bytes of a source document plus what the pipeline needs to know about it."""

    filename: str
    file_type: FileType
    content: bytes
    path: str

    @property
    def stem(self) -> str:
        return Path(self.filename).stem


def detect_file_type(filename: str) -> FileType:
    """Infer the document type from the file extension.

    Raises:
        UnsupportedFileTypeError: For anything other than PDF or Excel
    """
    suffix = Path(filename).suffix.lower()
    file_type = EXTENSION_TYPES.get(suffix)
    if file_type is None:
        raise UnsupportedFileTypeError(f"Unsupported file type '{suffix or filename}': {filename}")
    return file_type


class FileLoader:
    """Loads documents from the local filesystem or over HTTP(S)."""

    def __init__(self, timeout: float = 60.0, base_dir: Optional[str] = None):
        self.timeout = timeout
        self.base_dir = Path(base_dir) if base_dir else None

    async def load(self, path: str) -> LoadedFile:
        """Load a document.

        Args:
            path: Local path (absolute or relative to base_dir) or http(s) URL

        Returns:
            LoadedFile

        Raises:
            UnsupportedFileTypeError: If the extension is not PDF or Excel
            FileLoadError: If the file is missing or cannot be read
        """
        is_url = path.startswith(("http://", "https://"))
        filename = Path(unquote(urlparse(path).path)).name if is_url else Path(path).name
        file_type = detect_file_type(filename)

        if is_url:
            content = await self._download(path)
        else:
            content = await asyncio.to_thread(self._read_local, path)

        LOGGER.info(
            f"Loaded {filename}",
            extra={"size_bytes": len(content), "file_type": file_type.value, "source": "remote" if is_url else "local"},
        )
        return LoadedFile(filename=filename, file_type=file_type, content=content, path=path)

    async def _download(self, url: str) -> bytes:
        LOGGER.debug("Downloading document from URL", extra={"url": url, "source": "remote"})
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise FileLoadError(f"Failed to download {url}: {e}", original_error=e)

    def _read_local(self, path: str) -> bytes:
        file_path = Path(path)
        if not file_path.is_absolute() and self.base_dir is not None:
            file_path = self.base_dir / file_path

        LOGGER.debug("Loading document from local filesystem", extra={"path": str(file_path), "source": "local"})
        if not file_path.is_file():
            raise FileLoadError(f"File not found: {path}")
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise FileLoadError(f"Failed to read {path}: {e}", original_error=e)
