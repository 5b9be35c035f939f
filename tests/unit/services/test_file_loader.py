from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from financials.core.exceptions import FileLoadError, UnsupportedFileTypeError
from financials.models.facts import FileType
from financials.services.extraction.file_loader import FileLoader, detect_file_type


class TestDetectFileType:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("Board Deck.PDF", FileType.PDF),
            ("model.xlsx", FileType.XLSX),
            ("legacy.xls", FileType.XLSX),
        ],
    )
    def test_supported(self, filename, expected):
        assert detect_file_type(filename) == expected

    @pytest.mark.parametrize("filename", ["export.csv", "notes.docx", "README"])
    def test_unsupported(self, filename):
        with pytest.raises(UnsupportedFileTypeError):
            detect_file_type(filename)


class TestFileLoader:
    @pytest.mark.asyncio
    async def test_reads_local_file(self, write_file):
        path = write_file("Investor Report.pdf", b"%PDF-1.4 report")

        loaded = await FileLoader().load(path)

        assert loaded.filename == "Investor Report.pdf"
        assert loaded.stem == "Investor Report"
        assert loaded.file_type == FileType.PDF
        assert loaded.content == b"%PDF-1.4 report"
        assert loaded.path == path

    @pytest.mark.asyncio
    async def test_resolves_relative_path_against_base_dir(self, tmp_path, write_file):
        write_file("model.xlsx", b"PK")

        loaded = await FileLoader(base_dir=str(tmp_path)).load("model.xlsx")

        assert loaded.content == b"PK"

    @pytest.mark.asyncio
    async def test_reads_local_file_in_worker_thread(self, write_file):
        path = write_file("Board Deck.pdf", b"%PDF-1.4 deck")

        with patch(
            "financials.services.extraction.file_loader.asyncio.to_thread", new=AsyncMock(return_value=b"%PDF-1.4 deck")
        ) as to_thread:
            loaded = await FileLoader().load(path)

        assert loaded.content == b"%PDF-1.4 deck"
        to_thread.assert_awaited_once()
        assert to_thread.await_args.args[1] == path

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(FileLoadError, match="File not found"):
            await FileLoader().load(str(tmp_path / "missing.pdf"))

    @pytest.mark.asyncio
    async def test_unsupported_type_checked_before_reading(self, tmp_path):
        with pytest.raises(UnsupportedFileTypeError):
            await FileLoader().load(str(tmp_path / "missing.csv"))

    @pytest.mark.asyncio
    async def test_downloads_url(self):
        response = MagicMock()
        response.content = b"%PDF remote"
        response.raise_for_status = MagicMock()
        client = AsyncMock()
        client.get.return_value = response
        client.__aenter__.return_value = client
        client.__aexit__.return_value = False

        with patch("financials.services.extraction.file_loader.httpx.AsyncClient", return_value=client):
            loaded = await FileLoader().load("https://files.example.com/decks/Board%20Deck.pdf?sig=1")

        assert loaded.filename == "Board Deck.pdf"
        assert loaded.content == b"%PDF remote"
        client.get.assert_awaited_once_with("https://files.example.com/decks/Board%20Deck.pdf?sig=1")

    @pytest.mark.asyncio
    async def test_download_failure(self):
        client = AsyncMock()
        client.get.side_effect = httpx.ConnectError("connection refused")
        client.__aenter__.return_value = client
        client.__aexit__.return_value = False

        with patch("financials.services.extraction.file_loader.httpx.AsyncClient", return_value=client):
            with pytest.raises(FileLoadError):
                await FileLoader().load("https://files.example.com/model.xlsx")
