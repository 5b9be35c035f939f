"""Extraction cache keyed by content hash."""

from typing import Optional, Union

from financials.models.extraction import (
    PdfExtraction,
    XlsxExtraction,
    dump_extraction_result,
    parse_extraction_result,
)
from financials.repositories.base import FinancialsStore
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionCache:
    """Maps a file fingerprint to a previously computed extraction.

    The cache is an optimization only: any store failure degrades to a miss
    on read and to a logged warning on write. Entries are never invalidated
    automatically since identical bytes always yield the same fingerprint.
    """

    def __init__(self, store: FinancialsStore):
        self.store = store

    async def get(self, fingerprint: str) -> Optional[Union[PdfExtraction, XlsxExtraction]]:
        try:
            entry = await self.store.get_cached_extraction(fingerprint)
            if entry is None:
                return None
            result = parse_extraction_result(entry.result)
        except Exception as e:
            LOGGER.warning(
                f"Extraction cache read failed, treating as miss: {e}",
                exc_info=True,
                extra={"file_hash": fingerprint},
            )
            return None

        LOGGER.info(f"Extraction cache hit for {entry.filename}", extra={"file_hash": fingerprint})
        return result

    async def set(
        self, fingerprint: str, filename: str, result: Union[PdfExtraction, XlsxExtraction]
    ) -> bool:
        """Store an extraction; returns False when the write failed."""
        try:
            await self.store.set_cached_extraction(fingerprint, filename, dump_extraction_result(result))
            return True
        except Exception as e:
            LOGGER.warning(
                f"Extraction cache write failed for {filename}: {e}",
                exc_info=True,
                extra={"file_hash": fingerprint},
            )
            return False
