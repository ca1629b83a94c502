"""Scripted LLM provider for testing."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from powermem_core.llm.base import LLMProvider, LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class ScriptedProvider(LLMProvider):
    """Returns queued responses in order and records every request.

    Responses may be strings or objects; objects are serialized to JSON. A
    callable is invoked with the request and its return value used instead.
    When the queue runs dry the provider answers with an empty JSON object.
    """

    def __init__(self, responses: Optional[List[Union[str, Dict[str, Any], Callable]]] = None,
                 config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.responses = list(responses or [])
        self.requests: List[LLMRequest] = []
        self.fail_with: Optional[str] = None

    def queue(self, response: Union[str, Dict[str, Any], Callable]) -> None:
        self.responses.append(response)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if not self.validate_request(request):
            return LLMResponse(content="", model=request.model, success=False, error="Invalid request")
        if self.fail_with:
            return LLMResponse(content="", model=request.model, success=False, error=self.fail_with)

        response = self.responses.pop(0) if self.responses else {}
        if callable(response):
            response = response(request)
        content = response if isinstance(response, str) else json.dumps(response)
        prompt_tokens = sum(len(msg.get("content", "").split()) for msg in request.messages)
        return LLMResponse(
            content=content,
            model=request.model,
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=len(content.split()),
                total_tokens=prompt_tokens + len(content.split()),
            ),
            metadata={"mock_request_id": f"mock_{len(self.requests)}"},
        )

    def get_default_model(self) -> str:
        return "mock-model"

    @property
    def last_prompt(self) -> str:
        """Content of the final message of the most recent request."""
        if not self.requests:
            return ""
        return self.requests[-1].messages[-1].get("content", "")
