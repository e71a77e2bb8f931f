from __future__ import annotations
from typing import Dict, Any, Optional
import time

from openai import OpenAI
from openai import APIError, APITimeoutError, APIConnectionError, APIStatusError

from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout, resolve_api_key, run_with_retry

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (ModelRetryable, ModelTimeout))

class OpenAIProvider(ModelProvider):
    """Chat completions through the OpenAI SDK; works with any OpenAI-compatible endpoint."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, api_key_env: Optional[str] = "OPENAI_API_KEY", default_headers: Optional[Dict[str, str]] = None, timeout: float = 60.0, max_attempts: int = 1, **kwargs):
        self.client = OpenAI(
            base_url=base_url,
            api_key=resolve_api_key(api_key, api_key_env, "openai provider"),
            default_headers=default_headers or {},
            timeout=timeout,
            max_retries=0, #retry policy is ours, not the SDK's
            **kwargs
        )
        self.base_url = base_url
        self.timeout = timeout
        self.max_attempts = max_attempts

    def chat(self, req: ChatRequest) -> ModelResponse:
        return run_with_retry(lambda: self._chat_once(req), self.max_attempts, _is_retryable)

    def _chat_once(self, req: ChatRequest) -> ModelResponse:
        params = dict(req.params or {})
        if "max_output_tokens" in params:
            params["max_tokens"] = params.pop("max_output_tokens")

        completion_params = {
            "model": req.model,
            "messages": req.messages,
            **params
        }
        if req.stop:
            completion_params["stop"] = list(req.stop)
        if req.extra_body:
            completion_params["extra_body"] = req.extra_body

        t0 = time.perf_counter()
        try:
            response = self.client.chat.completions.create(**completion_params)
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI timeout: {e}") from e
        except APIConnectionError as e:
            raise ModelRetryable(f"OpenAI connection error: {e}") from e
        except APIStatusError as e:
            msg = f"OpenAI API error: HTTP {e.status_code}"
            if e.status_code in RETRYABLE_STATUS:
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e
        except APIError as e:
            raise ModelError(f"OpenAI API error: {e}") from e

        dt = time.perf_counter() - t0

        try:
            content = response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise ModelError(f"Invalid response structure from OpenAI API: {e}") from e

        meta = {
            "provider": "openai",
            "model": getattr(response, 'model', req.model),
            "latency": dt,
            "base_url": self.base_url or "https://api.openai.com/v1",
            "finish_reason": getattr(response.choices[0], 'finish_reason', None),
        }
        if getattr(response, 'usage', None):
            meta["usage"] = response.usage.model_dump()

        return ModelResponse(content=content, raw=response, meta=meta)

    def health_check(self) -> bool:
        try:
            _ = self.client.models.list()
            return True
        except APIError:
            return False
