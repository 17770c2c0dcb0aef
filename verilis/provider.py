"""Client for the OpenAI-compatible text generation endpoint."""
from typing import Optional

from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError
)
from openai.types.chat import ChatCompletionUserMessageParam

from verilis.errors import ProviderError
from verilis.logging_config import get_logger

logger = get_logger("provider")


class TranslationProvider:
    """
    Sends a single prompt to the chat completions endpoint and returns the raw reply.

    Every failure of the call itself (transport, timeout, non-success status,
    an envelope without content) is raised as ProviderError. Retrying is left
    to the caller.
    """

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            rate_limiter: Optional[AsyncLimiter] = None,
            request_timeout: Optional[float] = None,
            temperature: float = 0.3
    ):
        self.client = client
        self.model_name = model_name
        self.rate_limiter = rate_limiter
        self.request_timeout = request_timeout
        self.temperature = temperature

    async def complete(self, prompt: str) -> str:
        """
        Submit ``prompt`` as a user message.

        Returns:
            The stripped text content of the first choice.

        Raises:
            ProviderError: If the call fails or returns no content.
        """
        if self.rate_limiter is not None:
            async with self.rate_limiter:
                return await self._complete(prompt)
        return await self._complete(prompt)

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[ChatCompletionUserMessageParam(role="user", content=prompt)],
                temperature=self.temperature,
                timeout=self.request_timeout,
            )
        except APIStatusError as api_exc:
            raise ProviderError(
                f"API error (status {api_exc.status_code}): {_response_body(api_exc)}"
            ) from api_exc
        except (APITimeoutError, APIConnectionError) as api_exc:
            raise ProviderError(f"Request failed: {api_exc.__class__.__name__} - {api_exc}") from api_exc
        except OpenAIError as api_exc:
            raise ProviderError(f"Failed to parse response: {api_exc}") from api_exc

        choices = getattr(response, 'choices', None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ProviderError("No translation returned")

        logger.debug("Provider returned %d characters", len(content))
        return content.strip()


def _response_body(api_exc: APIStatusError) -> str:
    try:
        return api_exc.response.text
    except Exception:
        return str(api_exc)


def create_provider(
        client: AsyncOpenAI,
        model_name: str,
        requests_per_minute: int,
        request_timeout: Optional[float] = None
) -> TranslationProvider:
    """Build a provider with a per-minute request limiter."""
    rate_limiter = AsyncLimiter(max_rate=requests_per_minute, time_period=60)
    return TranslationProvider(
        client,
        model_name,
        rate_limiter=rate_limiter,
        request_timeout=request_timeout
    )
