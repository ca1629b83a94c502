"""Base classes and interfaces for LLM providers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)

# Response format hint requesting strict JSON output
JSON_OBJECT_FORMAT = {"type": "json_object"}


@dataclass
class LLMUsage:
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ToolCall:
    """A structured function call requested by the model."""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    model: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    tool_calls: List[ToolCall] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None


@dataclass
class LLMRequest:
    """Request to an LLM provider."""
    messages: List[Dict[str, str]]
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.1
    response_format: Optional[Dict[str, Any]] = None
    tools: Optional[List[Dict[str, Any]]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize the LLM provider.

        Args:
            config: Provider-specific configuration
        """
        self.config = config or {}
        self.name = self.__class__.__name__
        self.model = self.config.get("model") or self.get_default_model()

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Generate response from LLM.

        Args:
            request: LLM request object

        Returns:
            LLM response object
        """
        pass

    async def generate_response(
        self,
        messages: List[Dict[str, str]],
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate plain text for role-tagged messages.

        Args:
            messages: Conversation turns as ``{"role", "content"}`` dicts
            response_format: Optional format hint, e.g. ``{"type": "json_object"}``

        Returns:
            Generated text

        Raises:
            LLMProviderError: If the provider reports a failure
        """
        response = await self.generate(self._build_request(messages, response_format=response_format))
        if not response.success:
            raise LLMProviderError(response.error or f"{self.name} generation failed")
        return response.content

    async def generate_with_tools(
        self,
        messages: List[Dict[str, str]],
        tools: List[Dict[str, Any]],
    ) -> LLMResponse:
        """Generate a response that may include structured tool calls."""
        response = await self.generate(self._build_request(messages, tools=tools))
        if not response.success:
            raise LLMProviderError(response.error or f"{self.name} generation failed")
        return response

    def _build_request(self, messages: List[Dict[str, str]], **kwargs) -> LLMRequest:
        return LLMRequest(
            messages=messages,
            model=self.model,
            max_tokens=self.config.get("max_tokens"),
            temperature=self.config.get("temperature", 0.1),
            **kwargs,
        )

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider.

        Returns:
            Default model name
        """
        pass

    def validate_request(self, request: LLMRequest) -> bool:
        """Validate an LLM request.

        Args:
            request: LLM request to validate

        Returns:
            True if request is valid, False otherwise
        """
        if not request.messages:
            return False

        if not request.model:
            return False

        for message in request.messages:
            if "role" not in message or "content" not in message:
                return False

        return True


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""
    pass


class LLMRateLimitError(LLMProviderError):
    """Exception raised when rate limit is exceeded."""
    pass


class LLMAuthenticationError(LLMProviderError):
    """Exception raised when authentication fails."""
    pass


class LLMModelNotFoundError(LLMProviderError):
    """Exception raised when model is not found."""
    pass
