"""Generation channel adapters.

Provides a base interface and concrete adapters for OpenAI-compatible
chat completion APIs and a deterministic mock for testing.
"""

from abc import ABC, abstractmethod
from typing import Optional

from llm_synthesis.schema import GenerationRequest, GenerationResponse, TokenUsage
from llm_synthesis.validator import TERMINATOR, end_marker, start_marker


class BaseLLMAdapter(ABC):
    """Abstract base for all generation channel adapters.

    Transport, authentication and vendor retries belong to the adapter;
    callers only see ``generate`` and ``complete``.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> str:
        """Send a request to the model and return the raw response text.

        Args:
            request: Prompt payload with channel and temperature.

        Returns:
            Raw string response from the model.
        """

    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        """Generate text together with the token usage the channel reported.

        Adapters that cannot report usage inherit this default, which wraps
        ``generate`` and reports none.
        """
        return GenerationResponse(text=await self.generate(request))


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    The request's ``channel`` selects the model, so one adapter serves
    every model exposed by the endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_max_tokens: int = 6000,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            api_key: API key. Falls back to the OPENAI_API_KEY env var
                inside the client.
            base_url: Optional base URL for OpenAI-compatible endpoints.
            default_max_tokens: Completion ceiling when the request has none.
        """
        try:
            from openai import AsyncOpenAI  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "openai package is required for OpenAILLMAdapter. "
                "Install it with: pip install openai"
            ) from exc

        client_kwargs: dict = {}
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._default_max_tokens = default_max_tokens

    async def generate(self, request: GenerationRequest) -> str:
        """Call the chat completion API and return the raw content."""
        return (await self.complete(request)).text

    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        """Call the chat completion API.

        Args:
            request: Prompt payload with channel and temperature.

        Returns:
            Raw content from the model response and its token usage.
        """
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        response = await self._client.chat.completions.create(
            model=request.channel,
            messages=messages,
            temperature=request.temperature,
            max_tokens=request.max_tokens or self._default_max_tokens,
            stream=False,
        )
        usage = None
        if getattr(response, "usage", None):
            prompt_tokens = getattr(response.usage, "prompt_tokens", 0) or 0
            completion_tokens = getattr(response.usage, "completion_tokens", 0) or 0
            usage = TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=getattr(response.usage, "total_tokens", 0)
                or prompt_tokens + completion_tokens,
            )

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        return GenerationResponse(text=text, usage=usage)


# ---------------------------------------------------------------------------
# Fixed mock narrative used for local testing.
# ---------------------------------------------------------------------------
_MOCK_CLASS_NARRATIVE = (
    "Class participation was steady over the period. Most active students "
    "answered correctly, and a small group needs encouragement to take part."
)

_MOCK_STUDENT_NARRATIVE = (
    "{name} took part in class activities during this period. Keep "
    "encouraging regular participation and review the topics that caused "
    "difficulty."
)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that follows the annotation contract.

    Used for local runs and CI pipelines where no model API is available.
    Annotates exactly the names listed in ``request.expected_names``.
    """

    def __init__(self) -> None:
        self.requests: list = []

    async def generate(self, request: GenerationRequest) -> str:
        """Return a fixed narrative annotated for the expected students.

        Args:
            request: Only ``kind`` and ``expected_names`` are consulted.

        Returns:
            A response that satisfies the annotation contract.
        """
        self.requests.append(request)
        parts = []
        if request.kind != "batch":
            parts.append(_MOCK_CLASS_NARRATIVE)
        if request.kind == "overview":
            return "\n\n".join(parts)

        for name in request.expected_names:
            parts.append(
                "\n".join(
                    (
                        start_marker(name),
                        _MOCK_STUDENT_NARRATIVE.format(name=name),
                        end_marker(name),
                    )
                )
            )
        parts.append(TERMINATOR)
        return "\n\n".join(parts)

    async def complete(self, request: GenerationRequest) -> GenerationResponse:
        """Like ``generate``, reporting whitespace-separated word counts as usage."""
        text = await self.generate(request)
        prompt_tokens = len(request.prompt.split())
        completion_tokens = len(text.split())
        return GenerationResponse(
            text=text,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )
