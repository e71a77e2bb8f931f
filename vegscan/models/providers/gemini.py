from __future__ import annotations
from typing import Any, Dict, List, Optional
import time
import httpx

from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout, resolve_api_key, run_with_retry

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}

#ChatRequest.params name -> generationConfig name
_GENERATION_KEYS = {
    "temperature": "temperature",
    "top_p": "topP",
    "top_k": "topK",
    "max_tokens": "maxOutputTokens",
    "max_output_tokens": "maxOutputTokens",
    "candidate_count": "candidateCount",
}

def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (ModelRetryable, ModelTimeout))

class GeminiProvider(ModelProvider):
    """Google Generative Language REST API (``models/{model}:generateContent``)."""

    def __init__(self, api_key: Optional[str] = None, api_key_env: Optional[str] = "GEMINI_API_KEY", base_url: str = "https://generativelanguage.googleapis.com", api_version: str = "v1beta", timeout: float = 60.0, max_attempts: int = 1, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = resolve_api_key(api_key, api_key_env, "gemini provider")
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _build_payload(self, req: ChatRequest, params: Dict[str, Any]) -> Dict[str, Any]:
        system_parts: List[Dict[str, str]] = []
        contents: List[Dict[str, Any]] = []
        for msg in req.messages:
            role = msg.get("role")
            text = msg.get("content", "")
            if role == "system":
                system_parts.append({"text": text})
            else:
                contents.append({"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]})

        generation_config = {}
        for key, value in params.items():
            if key not in _GENERATION_KEYS:
                raise ModelError(f"Unsupported generation parameter for gemini: {key}")
            generation_config[_GENERATION_KEYS[key]] = value
        if req.stop:
            generation_config["stopSequences"] = list(req.stop)

        payload: Dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        if generation_config:
            payload["generationConfig"] = generation_config
        if req.extra_body:
            payload.update(req.extra_body)
        return payload

    def chat(self, req: ChatRequest) -> ModelResponse:
        return run_with_retry(lambda: self._chat_once(req), self.max_attempts, _is_retryable)

    def _chat_once(self, req: ChatRequest) -> ModelResponse:
        params = dict(req.params or {})
        timeout = params.pop("timeout", self.timeout)
        payload = self._build_payload(req, params)
        url = f"/{self.api_version}/models/{req.model}:generateContent"

        t0 = time.perf_counter()
        try:
            response = self.client.post(url, params={"key": self.api_key}, json=payload, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ModelTimeout(f"Gemini timeout after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            #the request url carries the api key, keep it out of the message
            msg = f"Gemini API error: HTTP {e.response.status_code}"
            if e.response.status_code in RETRYABLE_STATUS:
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e
        except httpx.TransportError as e:
            raise ModelRetryable(f"Gemini connection failed: {type(e).__name__}") from e
        except ValueError as e:
            raise ModelError(f"Gemini returned a non-JSON body: {e}") from e
        dt = time.perf_counter() - t0

        if not isinstance(data, dict):
            raise ModelError(f"Invalid response structure from Gemini API: {type(data).__name__}")

        #first candidate, first text part; a blocked prompt has no candidates
        content = ""
        candidates = data.get("candidates") or []
        finish_reason = None
        if candidates:
            first = candidates[0] or {}
            finish_reason = first.get("finishReason")
            parts = (first.get("content") or {}).get("parts") or []
            texts = [p["text"] for p in parts if isinstance(p, dict) and "text" in p]
            content = texts[0] if texts else ""

        meta = {
            "provider": "gemini",
            "model": data.get("modelVersion", req.model),
            "latency": dt,
            "finish_reason": finish_reason,
        }
        if "usageMetadata" in data:
            meta["usage"] = data["usageMetadata"]
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            meta["block_reason"] = block_reason

        return ModelResponse(content=content, raw=data, meta=meta)

    def health_check(self) -> bool:
        try:
            response = self.client.get(f"/{self.api_version}/models", params={"key": self.api_key, "pageSize": 1})
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def cleanup(self):
        self.client.close()
