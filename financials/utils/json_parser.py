import json
from typing import Any, Dict, Optional

from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object from model output, tolerating common formatting noise.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading prose before the first brace
    - Trailing text after a complete object

    Args:
        text: The text containing JSON

    Returns:
        Parsed object, or None if no JSON object could be recovered
    """
    if not text:
        return None

    cleaned_text = text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text[7:]
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text[3:]

    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text[:-3]

    cleaned_text = cleaned_text.strip()

    try:
        parsed = json.loads(cleaned_text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting recovery...")

    # Decode the first complete object, ignoring whatever follows it
    decoder = json.JSONDecoder()
    start = cleaned_text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(cleaned_text, start)
            if isinstance(obj, dict):
                LOGGER.info(f"Recovered JSON object starting at position {start}")
                return obj
        except json.JSONDecodeError:
            pass
        start = cleaned_text.find("{", start + 1)

    LOGGER.error("Failed to parse JSON object from model output")
    return None
