"""OpenAI provider implementation."""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..base import LLMProvider, LLMRequest, LLMResponse, LLMUsage, ToolCall
from ..base import LLMRateLimitError, LLMAuthenticationError, LLMModelNotFoundError

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize OpenAI provider.

        Args:
            config: Provider configuration including api_key, base_url, timeout
        """
        super().__init__(config)

        api_key = self.config.get("api_key") or os.getenv("OPENAI_API_KEY")
        base_url = self.config.get("base_url")

        client_kwargs: Dict[str, Any] = {
            "timeout": self.config.get("timeout", 30.0),
            "max_retries": self.config.get("max_retries", 3),
        }
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url

        self.client = AsyncOpenAI(**client_kwargs)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate response from OpenAI.

        Args:
            request: LLM request object

        Returns:
            LLM response object
        """
        if not self.validate_request(request):
            return LLMResponse(
                content="",
                model=request.model,
                success=False,
                error="Invalid request"
            )

        try:
            openai_kwargs: Dict[str, Any] = {
                "model": request.model,
                "messages": request.messages,
                "temperature": request.temperature,
            }
            if request.max_tokens:
                openai_kwargs["max_tokens"] = request.max_tokens
            if request.response_format:
                openai_kwargs["response_format"] = request.response_format
            if request.tools:
                openai_kwargs["tools"] = request.tools
                openai_kwargs["tool_choice"] = "auto"

            response = await self.client.chat.completions.create(**openai_kwargs)

            message = response.choices[0].message
            usage = LLMUsage(
                prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
                completion_tokens=response.usage.completion_tokens if response.usage else 0,
                total_tokens=response.usage.total_tokens if response.usage else 0,
            )

            return LLMResponse(
                content=message.content or "",
                model=response.model,
                usage=usage,
                tool_calls=self._parse_tool_calls(message),
                metadata={
                    "finish_reason": response.choices[0].finish_reason,
                    "response_id": response.id,
                },
                success=True
            )

        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit exceeded: {e}")
            raise LLMRateLimitError(f"Rate limit exceeded: {e}")

        except openai.AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise LLMAuthenticationError(f"Authentication failed: {e}")

        except openai.NotFoundError as e:
            logger.error(f"OpenAI model not found: {e}")
            raise LLMModelNotFoundError(f"Model not found: {e}")

        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            return LLMResponse(
                content="",
                model=request.model,
                success=False,
                error=str(e)
            )

    @staticmethod
    def _parse_tool_calls(message: Any) -> List[ToolCall]:
        calls = []
        for call in getattr(message, "tool_calls", None) or []:
            raw_args = call.function.arguments or "{}"
            try:
                arguments = json.loads(raw_args)
            except ValueError:
                logger.warning(f"OpenAI tool call '{call.function.name}' returned non-JSON arguments")
                arguments = {}
            calls.append(ToolCall(name=call.function.name, arguments=arguments, id=call.id))
        return calls

    def get_default_model(self) -> str:
        return "gpt-4o-mini"
