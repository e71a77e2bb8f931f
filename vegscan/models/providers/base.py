from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Callable, TypeVar
from tenacity import Retrying, stop_after_attempt, wait_exponential_jitter, retry_if_exception

T = TypeVar("T")

#unified model errors
class ModelError(RuntimeError): ...
class ModelTimeout(ModelError): ...
class ModelRetryable(ModelError): ...

class MissingConfigurationError(ValueError):
    """Raised at startup when a credential or required config entry is absent."""

@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: List[Dict[str, Any]]
    params: Dict[str, Any] | None = None #temperature, top_p, max_output_tokens, timeout
    stop: Optional[List[str]] = None #stop sequences from the prompt config
    extra_body: Optional[Dict[str, Any]] = None #provider specific passthrough

@dataclass(frozen=True)
class ModelResponse:
    content: str
    raw: Any #provider-native response obj/dict
    meta: Dict[str, Any] #timings, token  counts, model, created_at, etc.

class ModelProvider(ABC):
    @abstractmethod
    def chat(self, req: ChatRequest) -> ModelResponse:
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> bool:
        raise NotImplementedError


def resolve_api_key(api_key: Optional[str], api_key_env: Optional[str], owner: str) -> str:
    """Return the explicit key or the one named by ``api_key_env``; fail fast if neither is set."""
    from os import getenv

    key = api_key or (getenv(api_key_env) if api_key_env else None)
    if not key:
        source = f"environment variable {api_key_env}" if api_key_env else "'api_key' setting"
        raise MissingConfigurationError(f"{owner}: missing credentials ({source} is not set)")
    return key


def run_with_retry(fn: Callable[[], T], max_attempts: int, is_retryable: Callable[[BaseException], bool]) -> T:
    #max_attempts=1 means exactly one call, no backoff
    retrying = Retrying(
        reraise=True,
        wait=wait_exponential_jitter(initial=0.5, max=4),
        stop=stop_after_attempt(max(1, max_attempts)),
        retry=retry_if_exception(is_retryable),
    )
    return retrying(fn)
