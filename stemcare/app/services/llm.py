"""
LLM analysis service using the DeepSeek chat-completions API.

Every call is bounded by a hard timeout; transient failures (timeouts,
connection errors, rate limiting, 5xx) are retried a configured number of
times before an AnalysisServiceError is raised.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from stemcare.app.core.config import settings
from stemcare.app.core.exceptions import AnalysisServiceError

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Text returned by the analysis service plus observability metadata."""

    content: str
    model_identifier: str
    token_count: int | None = None


class DeepSeekProvider:
    """DeepSeek chat-completions provider (OpenAI-compatible wire format)."""

    def __init__(
        self,
        api_key: str,
        model: str = "deepseek-chat",
        base_url: str = "https://api.deepseek.com",
        timeout: float = 120.0,
    ):
        """
        Initialize DeepSeek provider.

        Args:
            api_key: DeepSeek API key
            model: Model name (deepseek-chat, deepseek-reasoner, etc.)
            base_url: API base URL without the endpoint path
            timeout: Hard timeout for one request in seconds
        """
        self.api_key = api_key
        self.model = model
        self.base_url = f"{base_url.rstrip('/')}/v1/chat/completions"
        self.timeout = timeout

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> AnalysisResult:
        """
        Generate text using the DeepSeek API.

        Args:
            prompt: User prompt
            system_prompt: System instruction
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens to generate

        Returns:
            AnalysisResult with the generated text, model name and token usage

        Raises:
            httpx.HTTPError: If API request fails
            KeyError: If the response has no message content
        """
        messages = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": prompt})

        logger.info(f"[LLM REQUEST] Model: {self.model}, Temperature: {temperature}, Max tokens: {max_tokens}")
        logger.info(f"[LLM REQUEST] System prompt: {system_prompt[:100] if system_prompt else 'None'}...")
        logger.debug(f"[LLM REQUEST] User prompt: {prompt[:200]}...")

        start_time = time.time()

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
                timeout=self.timeout,
            )

            response.raise_for_status()
            data = response.json()

            content = data["choices"][0]["message"]["content"].strip()
            usage = data.get("usage") or {}
            elapsed_time = time.time() - start_time

            logger.info(
                f"[LLM RESPONSE] Time: {elapsed_time:.2f}s, "
                f"Tokens: {usage.get('total_tokens', 'n/a')}, Length: {len(content)}"
            )

            return AnalysisResult(
                content=content,
                model_identifier=data.get("model") or self.model,
                token_count=usage.get("total_tokens"),
            )


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class AnalysisService:
    """
    Service that turns an analysis prompt into generated report text.

    The provider is created lazily so that the application can start
    without an API key; the missing key is reported on the first call.

    Examples:
        >>> service = AnalysisService()
        >>> result = await service.analyze(prompt, system_prompt=SYSTEM_PROMPT)
        >>> result.content, result.token_count
    """

    def __init__(
        self,
        provider: DeepSeekProvider | None = None,
        max_retries: int | None = None,
        retry_wait_seconds: float | None = None,
    ):
        """
        Initialize analysis service.

        Args:
            provider: DeepSeek provider instance. If None, created from config on first use.
            max_retries: Extra attempts after a transient failure (default from config)
            retry_wait_seconds: Pause between attempts (default from config)
        """
        self.provider = provider
        self.max_retries = settings.analysis_max_retries if max_retries is None else max_retries
        self.retry_wait_seconds = (
            settings.analysis_retry_wait_seconds if retry_wait_seconds is None else retry_wait_seconds
        )

    @property
    def is_configured(self) -> bool:
        return self.provider is not None or settings.deepseek_configured

    @staticmethod
    def _create_provider_from_config() -> DeepSeekProvider:
        """Create DeepSeek provider from environment config."""
        if not settings.deepseek_api_key:
            raise AnalysisServiceError(
                "configuration",
                ValueError("DEEPSEEK_API_KEY not set in environment"),
            )

        return DeepSeekProvider(
            api_key=settings.deepseek_api_key,
            model=settings.deepseek_model,
            base_url=settings.deepseek_base_url,
            timeout=settings.analysis_timeout_seconds,
        )

    def _ensure_provider(self) -> DeepSeekProvider:
        if self.provider is None:
            self.provider = self._create_provider_from_config()
            logger.info(f"[LLM] Provider initialized with model {self.provider.model}")
        return self.provider

    async def analyze(self, prompt: str, system_prompt: str | None = None) -> AnalysisResult:
        """
        Run one analysis.

        Args:
            prompt: Request content (source payload plus instructions)
            system_prompt: Role instruction for the model

        Returns:
            AnalysisResult with non-empty content

        Raises:
            AnalysisServiceError: On missing configuration, a non-transient
                failure, or when all attempts failed
        """
        provider = self._ensure_provider()
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                result = await provider.generate(
                    prompt,
                    system_prompt=system_prompt,
                    temperature=settings.analysis_temperature,
                    max_tokens=settings.analysis_max_tokens,
                )
            except httpx.TimeoutException as e:
                error = AnalysisServiceError("analysis request (timeout)", e, transient=True)
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                error = AnalysisServiceError(
                    f"analysis request (HTTP {status_code})",
                    e,
                    transient=_is_transient_status(status_code),
                )
            except httpx.RequestError as e:
                error = AnalysisServiceError("analysis request (connection)", e, transient=True)
            except (KeyError, IndexError, TypeError, ValueError) as e:
                error = AnalysisServiceError("response parsing", e)
            else:
                if not result.content:
                    raise AnalysisServiceError("response parsing", ValueError("empty content"))
                return result

            if not error.transient or attempt >= attempts:
                logger.error(f"[LLM] Analysis failed after {attempt} attempt(s): {error.message}")
                raise error

            logger.warning(f"[LLM] Transient failure on attempt {attempt}/{attempts}, retrying: {error.message}")
            await asyncio.sleep(self.retry_wait_seconds)

        raise AnalysisServiceError("analysis request")


# Global service instance (lazy initialization)
_analysis_service: AnalysisService | None = None


def get_analysis_service() -> AnalysisService:
    """
    Get cached analysis service instance (singleton pattern).

    Returns:
        Cached AnalysisService instance
    """
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
