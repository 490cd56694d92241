"""OpenAI-style chat completions (ChatGPT, DeepSeek, Grok, Mistral)."""

from __future__ import annotations

from page_relay.api.base import ApiResponse, HttpApiAdapter


class OpenAICompatibleAdapter(HttpApiAdapter):
    """``POST {endpoint}`` with ``messages``; keys checked via ``GET .../models``."""

    def _request_url(self, model: str) -> str:
        return self.descriptor.endpoint

    def _validation_url(self) -> str:
        base = self.descriptor.endpoint.rsplit("/chat/completions", 1)[0]
        return f"{base}/models"

    def _payload(self, model: str, messages: list[dict]) -> dict:
        return {"model": model, "messages": messages}

    def _stream_payload(self, model: str, messages: list[dict]) -> dict:
        return {**self._payload(model, messages), "stream": True}

    def _parse(self, data: dict, model: str) -> ApiResponse:
        message = data["choices"][0]["message"]
        usage = data.get("usage") or {}
        return ApiResponse(
            content=message.get("content") or "",
            model=data.get("model") or model,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
        )

    def _parse_chunk(self, data: dict) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("delta") or {}).get("content") or ""
