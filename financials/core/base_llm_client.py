import asyncio
from typing import Any, Dict, List, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from financials.core.exceptions import APIClientError, APITimeoutError
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Client for OpenAI-compatible chat completion endpoints.

    Handles HTTP requests, retries with exponential backoff, timeout
    management and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Chat completions URL
            model: Model identifier sent with each request
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.0,
        json_mode: bool = True,
    ) -> str:
        """Send one prompt and return the model's text reply.

        Raises:
            APIClientError: If the call fails or the response has no choices
            APITimeoutError: If the call times out after retries
        """
        messages: List[Dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = await self.call_api(payload=payload)

        choices = response.get("choices") or []
        if not choices:
            self.logger.error(f"Unexpected completion response format: {str(response)[:500]}")
            raise APIClientError("Invalid response format from extraction model")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            self.logger.warning("Empty response from extraction model")
        return content

    async def call_api(
        self,
        endpoint: str = "",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST to the API with retry logic.

        Args:
            endpoint: API endpoint (appended to base_url)
            payload: JSON payload
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(url, headers=default_headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except (httpx.HTTPError, ValueError) as e:
                    await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Handle HTTP status errors."""
        status_code = error.response.status_code

        try:
            error_body = error.response.text
        except Exception:
            error_body = "Could not read response body"

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500],
            },
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body}", original_error=error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries", original_error=error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts", original_error=error) from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        """Handle transport and decoding errors."""
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", original_error=error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)
