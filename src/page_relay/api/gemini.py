"""Google Gemini generateContent adapter."""

from __future__ import annotations

from page_relay.api.base import ApiResponse, HttpApiAdapter

_ROLES = {"user": "user", "assistant": "model"}


def _text(candidate: dict) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


class GeminiAdapter(HttpApiAdapter):
    def _request_url(self, model: str) -> str:
        return self.descriptor.endpoint.format(model=model)

    def _stream_url(self, model: str) -> str:
        url = self._request_url(model).replace(":generateContent", ":streamGenerateContent")
        return f"{url}?alt=sse"

    def _validation_url(self) -> str:
        base = self.descriptor.endpoint.split("/models/", 1)[0]
        return f"{base}/models"

    def _payload(self, model: str, messages: list[dict]) -> dict:
        return {
            "contents": [
                {"role": _ROLES[m["role"]], "parts": [{"text": m["content"]}]} for m in messages
            ]
        }

    def _parse(self, data: dict, model: str) -> ApiResponse:
        parts = data["candidates"][0]["content"]["parts"]
        usage = data.get("usageMetadata") or {}
        return ApiResponse(
            content="".join(part.get("text", "") for part in parts),
            model=data.get("modelVersion") or model,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
        )

    def _parse_chunk(self, data: dict) -> str:
        candidates = data.get("candidates") or []
        return _text(candidates[0]) if candidates else ""
