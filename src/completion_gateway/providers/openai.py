"""OpenAI provider — Chat Completions API over async httpx."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from completion_gateway.config import GatewayConfig
from completion_gateway.exceptions import (
    MalformedResponseError,
    MissingCredentialError,
    NetworkError,
    UpstreamError,
)
from completion_gateway.providers.base import normalize_finish_reason
from completion_gateway.types import ProviderRequest, ProviderResult

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"


# ── Wire format ────────────────────────────────────────────────


class _Message(BaseModel):
    content: str


class _Choice(BaseModel):
    message: _Message
    finish_reason: str | None = None


class _Usage(BaseModel):
    prompt_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)


class ChatCompletionBody(BaseModel):
    """The parts of a Chat Completions response the gateway relies on."""

    choices: list[_Choice] = Field(min_length=1)
    usage: _Usage


class _ErrorDetail(BaseModel):
    message: str | None = None
    code: str | None = None
    type: str | None = None


class _ErrorBody(BaseModel):
    error: _ErrorDetail


# ── Provider ───────────────────────────────────────────────────


class OpenAIProvider:
    """Completion provider backed by the OpenAI Chat Completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        default_model: str = "gpt-3.5-turbo",
        fallback_model: str = "gpt-3.5-turbo",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = (base_url or OPENAI_API_BASE).rstrip("/")
        self.default_model = default_model
        self.fallback_model = fallback_model
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: GatewayConfig) -> OpenAIProvider:
        """Factory method for the provider registry."""
        settings = config.providers["openai"]
        return cls(
            api_key=config.get_api_key("openai"),
            base_url=settings.base_url,
            timeout_seconds=config.timeout_seconds,
            default_model=settings.default_model or "gpt-3.5-turbo",
            fallback_model=settings.fallback_model or "gpt-3.5-turbo",
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, request: ProviderRequest) -> ProviderResult:
        """Call Chat Completions and normalize the response."""
        if not self._api_key:
            raise MissingCredentialError(self.name)

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        payload = {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

        try:
            response = await self._client.post(
                f"{self._base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
            )
        except httpx.TransportError as exc:
            raise NetworkError(self.name, exc) from exc

        if not response.is_success:
            raise self._upstream_error(response)

        try:
            body = ChatCompletionBody.model_validate_json(response.content)
        except ValidationError as exc:
            raise MalformedResponseError(self.name, str(exc)) from exc

        choice = body.choices[0]
        return ProviderResult(
            text=choice.message.content,
            input_tokens=body.usage.prompt_tokens,
            output_tokens=body.usage.completion_tokens,
            finish_reason=normalize_finish_reason(choice.finish_reason),
            provider=self.name,
            model=request.model,
        )

    def _upstream_error(self, response: httpx.Response) -> UpstreamError:
        message = f"OpenAI API error: {response.status_code}"
        upstream_code: str | None = None
        try:
            detail = _ErrorBody.model_validate_json(response.content).error
        except ValidationError:
            logger.debug("Unparseable OpenAI error body (status %d)", response.status_code)
        else:
            message = detail.message or message
            upstream_code = detail.code or detail.type
        return UpstreamError(
            self.name,
            status_code=response.status_code,
            message=message,
            upstream_code=upstream_code,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
