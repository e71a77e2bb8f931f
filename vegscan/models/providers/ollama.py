from __future__ import annotations
from typing import Any, Dict, Optional
import time
import httpx
from ollama import Client, ResponseError
from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout, run_with_retry

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (ModelRetryable, ModelTimeout))

class OllamaProvider(ModelProvider):
    """Local models served by Ollama; needs no credentials."""

    def __init__(self, host: str = "http://localhost:11434", request_timeout_s: float = 120, keep_alive: str = "5m", max_attempts: int = 1):
        self.client = Client(host=host, timeout=request_timeout_s)
        self.keep_alive = keep_alive
        self.host = host
        self.request_timeout_s = request_timeout_s
        self.max_attempts = max_attempts

    def chat(self, req: ChatRequest) -> ModelResponse:
        return run_with_retry(lambda: self._chat_once(req), self.max_attempts, _is_retryable)

    def _chat_once(self, req: ChatRequest) -> ModelResponse:
        options = dict(req.params or {})
        keep_alive = options.pop('keep_alive', self.keep_alive)
        custom_timeout = options.pop('timeout', self.request_timeout_s)
        client = Client(host=self.host, timeout=custom_timeout) if custom_timeout != self.request_timeout_s else self.client

        #ollama calls it num_predict
        for key in ("max_tokens", "max_output_tokens"):
            if key in options:
                options["num_predict"] = options.pop(key)
        if req.stop:
            options["stop"] = list(req.stop)

        t0 = time.perf_counter()
        try:
            response = client.chat(
                model=req.model,
                messages=req.messages,
                options=options,
                keep_alive=keep_alive
            )
        except httpx.TimeoutException as e:
            raise ModelTimeout(f"Ollama timeout after {custom_timeout}s: {e}") from e
        except (httpx.ConnectError, httpx.RemoteProtocolError, ConnectionError) as e:
            raise ModelRetryable(f"Ollama connection failed: {e}") from e
        except ResponseError as e:
            msg = f"Ollama error: {e}"
            if getattr(e, "status_code", None) in RETRYABLE_STATUS:
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e

        dt = time.perf_counter() - t0

        #the client returns either a dict or a ChatResponse object
        if isinstance(response, dict):
            raw: Dict[str, Any] = response
            content = (response.get('message') or {}).get('content', '')
            model_name = response.get('model', req.model)
        elif hasattr(response, 'message') and hasattr(response.message, 'content'):
            raw = {}
            content = response.message.content or ""
            model_name = getattr(response, 'model', req.model)
            for key in ['total_duration', 'eval_count', 'prompt_eval_count']:
                if hasattr(response, key):
                    raw[key] = getattr(response, key)
        else:
            raise ModelError(f"Received unexpected response structure from Ollama: {type(response).__name__}")

        meta = {"provider": "ollama", "model": model_name, "latency": dt}
        for key in ['total_duration', 'prompt_eval_count', 'eval_count']:
            if key in raw:
                meta[key] = raw[key]

        return ModelResponse(content=content, raw=response, meta=meta)

    def health_check(self) -> bool:
        try:
            self.client.list()
            return True
        except (ResponseError, httpx.HTTPError):
            return False
