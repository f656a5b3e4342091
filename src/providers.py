"""
Providers Module

One gateway interface in front of every model provider. Each adapter turns
(system prompt, private history, optional image, optional notes) into the
provider's request shape and returns the raw reply text. Failures surface as
ProviderError with the HTTP status in the message so the retry controller
can recognise rate limiting.

SDK-level retries are disabled; retry policy lives in retry.RetryController.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import base64
import logging

import anthropic
import groq
import httpx
import openai

from prompts import turn_instruction
from run_state import HistoryTurn

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 1000
REQUEST_TIMEOUT_SECONDS = 120.0
IMAGE_MEDIA_TYPE = "image/png"


class ProviderError(Exception):
    """Non-success response (or transport failure) from a provider call."""

    def __init__(self, provider: str, status: Optional[int], message: str):
        self.provider = provider
        self.status = status
        self.message = message
        super().__init__(
            f"{provider} {status if status is not None else 'error'}: {message}"
        )


@dataclass(frozen=True)
class ProviderInfo:
    """Display identity and defaults for a provider."""
    provider_id: str
    name: str
    color: str
    default_model: str
    api_key_env: str


PROVIDERS: Dict[str, ProviderInfo] = {
    "openai": ProviderInfo("openai", "OpenAI", "#10b981", "gpt-4o", "OPENAI_API_KEY"),
    "gemini": ProviderInfo("gemini", "Gemini", "#8b5cf6", "gemini-2.0-flash", "GEMINI_API_KEY"),
    "anthropic": ProviderInfo(
        "anthropic", "Anthropic", "#e07a5f", "claude-sonnet-4-20250514", "ANTHROPIC_API_KEY"
    ),
    "groq": ProviderInfo(
        "groq", "Groq", "#f55036", "meta-llama/llama-4-scout-17b-16e-instruct", "GROQ_API_KEY"
    ),
}


def get_provider_info(provider_id: str) -> ProviderInfo:
    """
    Look up a provider's display identity.

    Raises:
        ValueError: If the provider is unknown
    """
    try:
        return PROVIDERS[provider_id]
    except KeyError:
        raise ValueError(
            f"Unknown provider: {provider_id}. Available: {list(PROVIDERS.keys())}"
        )


def _b64(image: bytes) -> str:
    return base64.b64encode(image).decode("ascii")


class ProviderGateway(ABC):
    """
    Abstract base class for provider adapters.

    Adapters are stateless; credentials and model are passed on every call.
    """

    provider_id: str = ""

    @property
    def display_name(self) -> str:
        return get_provider_info(self.provider_id).name

    @abstractmethod
    async def invoke(
        self,
        model: str,
        api_key: str,
        system_prompt: str,
        history: Sequence[HistoryTurn],
        image: Optional[bytes] = None,
        notes: Optional[str] = None
    ) -> str:
        """
        Send one turn to the provider.

        Args:
            model: Model identifier
            api_key: Provider credential
            system_prompt: Entity system prompt
            history: Entity's bounded private history
            image: PNG the entity is responding to (None on the first turn)
            notes: Entity's carried-forward notes

        Returns:
            Raw reply text

        Raises:
            ProviderError: If the call does not succeed
        """
        pass


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions (OpenAI, Groq)
# ---------------------------------------------------------------------------

def _chat_user_content(text: str, image: Optional[bytes]) -> Any:
    if image is None:
        return text
    return [
        {"type": "image_url", "image_url": {"url": f"data:{IMAGE_MEDIA_TYPE};base64,{_b64(image)}"}},
        {"type": "text", "text": text}
    ]


def build_chat_messages(
    system_prompt: str,
    history: Sequence[HistoryTurn],
    image: Optional[bytes],
    notes: Optional[str]
) -> List[Dict]:
    """Build a chat-completions message list."""
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history:
        if turn.role == "assistant":
            messages.append({"role": "assistant", "content": turn.text})
        else:
            messages.append({"role": "user", "content": _chat_user_content(turn.text, turn.image)})
    messages.append({
        "role": "user",
        "content": _chat_user_content(turn_instruction(image is not None, notes), image)
    })
    return messages


class SdkGateway(ProviderGateway):
    """
    Adapter base for providers with an official async SDK client.

    Subclasses name the SDK's status and connection error types and build the
    client; both error types are mapped to ProviderError here.
    """

    status_error: type = Exception
    connection_error: type = Exception

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            transport: Optional httpx transport (used for testing)
        """
        self.transport = transport

    def _http_client(self) -> Optional[httpx.AsyncClient]:
        if self.transport is None:
            return None
        return httpx.AsyncClient(transport=self.transport, timeout=REQUEST_TIMEOUT_SECONDS)

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        pass

    @abstractmethod
    async def _complete(
        self,
        client: Any,
        model: str,
        system_prompt: str,
        history: Sequence[HistoryTurn],
        image: Optional[bytes],
        notes: Optional[str]
    ) -> str:
        pass

    async def invoke(
        self,
        model: str,
        api_key: str,
        system_prompt: str,
        history: Sequence[HistoryTurn],
        image: Optional[bytes] = None,
        notes: Optional[str] = None
    ) -> str:
        try:
            async with self._create_client(api_key) as client:
                return await self._complete(client, model, system_prompt, history, image, notes)
        except self.status_error as e:
            raise ProviderError(self.display_name, e.status_code, e.message) from e
        except self.connection_error as e:
            raise ProviderError(self.display_name, None, str(e)) from e


class ChatCompletionsGateway(SdkGateway):
    """Shared adapter for SDKs exposing `client.chat.completions.create`."""

    async def _complete(self, client, model, system_prompt, history, image, notes) -> str:
        messages = build_chat_messages(system_prompt, history, image, notes)
        logger.debug(f"{self.display_name}: sending {len(messages)} messages to {model}")

        completion = await client.chat.completions.create(
            model=model,
            max_tokens=MAX_OUTPUT_TOKENS,
            messages=messages
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""


class OpenAIGateway(ChatCompletionsGateway):
    provider_id = "openai"
    status_error = openai.APIStatusError
    connection_error = openai.APIConnectionError

    def _create_client(self, api_key: str) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=api_key,
            max_retries=0,
            timeout=REQUEST_TIMEOUT_SECONDS,
            http_client=self._http_client()
        )


class GroqGateway(ChatCompletionsGateway):
    provider_id = "groq"
    status_error = groq.APIStatusError
    connection_error = groq.APIConnectionError

    def _create_client(self, api_key: str) -> groq.AsyncGroq:
        return groq.AsyncGroq(
            api_key=api_key,
            max_retries=0,
            timeout=REQUEST_TIMEOUT_SECONDS,
            http_client=self._http_client()
        )


# ---------------------------------------------------------------------------
# Gemini (REST over httpx)
# ---------------------------------------------------------------------------

class RestGateway(ProviderGateway):
    """Adapter base for providers called over plain HTTPS with httpx."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            base_url: Override the provider endpoint
            transport: Optional httpx transport (used for testing)
        """
        if base_url:
            self.base_url = base_url
        self.transport = transport

    async def _post(
        self,
        url: str,
        payload: Dict,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> Dict:
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=REQUEST_TIMEOUT_SECONDS
            ) as client:
                response = await client.post(url, json=payload, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(self.display_name, None, str(e)) from e

        if response.is_error:
            raise ProviderError(
                self.display_name,
                response.status_code,
                self._error_message(response)
            )
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error")
        except ValueError:
            error = None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return response.text[:200] or response.reason_phrase


def build_gemini_payload(
    system_prompt: str,
    history: Sequence[HistoryTurn],
    image: Optional[bytes],
    notes: Optional[str]
) -> Dict:
    """Build a Gemini generateContent request body."""

    def parts(text: str, img: Optional[bytes]) -> List[Dict]:
        result = []
        if img is not None:
            result.append({"inlineData": {"mimeType": IMAGE_MEDIA_TYPE, "data": _b64(img)}})
        result.append({"text": text})
        return result

    contents = [
        {
            "role": "model" if turn.role == "assistant" else "user",
            "parts": parts(turn.text, turn.image)
        }
        for turn in history
    ]
    contents.append({
        "role": "user",
        "parts": parts(turn_instruction(image is not None, notes), image)
    })
    return {
        "contents": contents,
        "systemInstruction": {"parts": [{"text": system_prompt}]},
        "generationConfig": {"temperature": 0.9}
    }


class GeminiGateway(RestGateway):
    provider_id = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def invoke(
        self,
        model: str,
        api_key: str,
        system_prompt: str,
        history: Sequence[HistoryTurn],
        image: Optional[bytes] = None,
        notes: Optional[str] = None
    ) -> str:
        data = await self._post(
            f"{self.base_url}/models/{model}:generateContent",
            build_gemini_payload(system_prompt, history, image, notes),
            params={"key": api_key}
        )
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)


# ---------------------------------------------------------------------------
# Anthropic Messages (anthropic SDK)
# ---------------------------------------------------------------------------

def build_anthropic_payload(
    model: str,
    system_prompt: str,
    history: Sequence[HistoryTurn],
    image: Optional[bytes],
    notes: Optional[str]
) -> Dict:
    """Build an Anthropic Messages API request body."""

    def content(text: str, img: Optional[bytes]) -> Any:
        if img is None:
            return text
        return [
            {"type": "image", "source": {"type": "base64", "media_type": IMAGE_MEDIA_TYPE, "data": _b64(img)}},
            {"type": "text", "text": text}
        ]

    messages = [
        {"role": turn.role, "content": content(turn.text, turn.image)}
        for turn in history
    ]
    messages.append({
        "role": "user",
        "content": content(turn_instruction(image is not None, notes), image)
    })
    return {
        "model": model,
        "max_tokens": MAX_OUTPUT_TOKENS,
        "system": system_prompt,
        "messages": messages
    }


class AnthropicGateway(SdkGateway):
    provider_id = "anthropic"
    status_error = anthropic.APIStatusError
    connection_error = anthropic.APIConnectionError

    def _create_client(self, api_key: str) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=api_key,
            max_retries=0,
            timeout=REQUEST_TIMEOUT_SECONDS,
            http_client=self._http_client()
        )

    async def _complete(self, client, model, system_prompt, history, image, notes) -> str:
        payload = build_anthropic_payload(model, system_prompt, history, image, notes)
        logger.debug(f"{self.display_name}: sending {len(payload['messages'])} messages to {model}")

        message = await client.messages.create(**payload)
        return "".join(block.text for block in message.content if block.type == "text")


GATEWAYS = {
    "openai": OpenAIGateway,
    "gemini": GeminiGateway,
    "anthropic": AnthropicGateway,
    "groq": GroqGateway,
}


def get_gateway(provider_id: str, **kwargs) -> ProviderGateway:
    """
    Create the gateway adapter for a provider.

    Args:
        provider_id: One of PROVIDERS
        **kwargs: Passed to the adapter constructor (e.g. transport)

    Returns:
        ProviderGateway instance

    Raises:
        ValueError: If the provider is unknown
    """
    if provider_id not in GATEWAYS:
        raise ValueError(f"Unknown provider: {provider_id}")
    return GATEWAYS[provider_id](**kwargs)
