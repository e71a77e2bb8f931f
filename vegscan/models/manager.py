from __future__ import annotations
from typing import Optional, Dict, Any, Union
from pathlib import Path
from dataclasses import dataclass
from enum import Enum
import yaml
import time
import logging

from .prompts import PromptManager
from .providers.base import ChatRequest, ModelResponse, ModelProvider, MissingConfigurationError
from .providers.gemini import GeminiProvider
from .providers.ollama import OllamaProvider
from .providers.openai_sdk import OpenAIProvider
from .services.ocr_base import OcrEngine
from .services.google_vision import GoogleVisionOcr
from .services.surya_ocr import SuryaOcr

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parents[1] / "config" / "config.yaml"


class Provider(Enum):
    GEMINI = "gemini"
    OLLAMA = "ollama"
    OPENAI = "openai"

class Service(Enum):
    GOOGLE_VISION = "google_vision"
    SURYA = "surya"

@dataclass(frozen=True)
class TaskConfig:
    provider: str
    model: str
    params: Dict[str, Any]
    prompt_ref: Optional[str] #e.g. "scan/classify@v3"
    timeout: Optional[float] = None


class ModelManager:
    """Owns the configured model providers, the OCR engine and the prompt store.

    Built once per process and shared read-only by every request.
    """

    def __init__(self, config_path: Union[Path, str] = DEFAULT_CONFIG_PATH, prompts_dir: Optional[Path] = None):
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._providers: Dict[str, ModelProvider] = {}

        #initialize prompt manager
        if prompts_dir:
            self.prompts = PromptManager(prompts_dir)
        else:
            self.prompts = PromptManager(Path(__file__).parents[1] / "prompts")

        self._ocr: Optional[OcrEngine] = None #lazy load ocr engine

    def _load_config(self) -> Dict:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        with open(self.config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        if 'providers' not in config:
            raise MissingConfigurationError("Config missing 'providers'")
        if 'tasks' not in config:
            raise MissingConfigurationError("Config missing 'tasks'")

        for task_name, task_cfg in config['tasks'].items():
            if 'provider' not in task_cfg:
                raise MissingConfigurationError(f"Task '{task_name}' missing provider")
            if 'model' not in task_cfg:
                raise MissingConfigurationError(f"Task '{task_name}' missing model")

            provider_name = task_cfg['provider']
            if provider_name not in config['providers']:
                raise ValueError(f"Task '{task_name}' references unknown provider '{provider_name}'")

        return config

    def task_config(self, task: str) -> TaskConfig:
        if task not in self.config["tasks"]:
            raise ValueError(f"Unknown task: {task}")
        task_cfg = self.config["tasks"][task]
        return TaskConfig(
            provider=task_cfg["provider"],
            model=task_cfg["model"],
            params=dict(task_cfg.get("params") or {}),
            prompt_ref=task_cfg.get("prompt_ref"),
            timeout=task_cfg.get("timeout"),
        )

    def initialize(self) -> "ModelManager":
        """Build every provider a task uses plus the OCR engine; raises on missing credentials."""
        for task_name in self.config["tasks"]:
            self._get_provider(self.config["tasks"][task_name]["provider"])
        _ = self.ocr
        logger.info(f"Model manager ready: {len(self._providers)} provider(s), ocr={type(self._ocr).__name__}")
        return self

    @property
    def ocr(self) -> OcrEngine:
        """Access the configured OCR engine directly"""
        if self._ocr is None:
            services = self.config.get('services') or {}
            ocr_cfg = services.get('ocr')
            if not ocr_cfg:
                raise MissingConfigurationError("Config missing 'services.ocr'")

            settings = ocr_cfg.get('settings') or {}
            if not isinstance(settings, dict):
                raise ValueError("'services.ocr.settings' must be a mapping")

            service_type = ocr_cfg.get('type')
            if service_type == Service.GOOGLE_VISION.value:
                self._ocr = GoogleVisionOcr(**settings)
            elif service_type == Service.SURYA.value:
                self._ocr = SuryaOcr(**settings)
            else:
                raise ValueError(f"Unknown ocr service type: {service_type}")
            logger.info(f"initialized ocr service: {service_type}")
        return self._ocr

    def _get_provider(self, provider_name: str) -> ModelProvider:
        if provider_name in self._providers:
            return self._providers[provider_name]
        if provider_name not in self.config['providers']:
            raise ValueError(f"Unknown provider: {provider_name}")

        provider_cfg = self.config["providers"][provider_name]
        provider_type = provider_cfg.get("type")
        settings = provider_cfg.get("settings") or {}

        if provider_type == Provider.GEMINI.value:
            provider = GeminiProvider(**settings)
        elif provider_type == Provider.OLLAMA.value:
            provider = OllamaProvider(**settings)
        elif provider_type == Provider.OPENAI.value:
            provider = OpenAIProvider(**settings)
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")
        self._providers[provider_name] = provider
        logger.info(f"initialized provider: {provider_name}")
        return provider

    def call(self, task: str, prompt_ref: Optional[str], variables: Dict[str, Any], **params_override) -> ModelResponse:
        task_cfg = self.task_config(task)
        prompt_ref = prompt_ref or task_cfg.prompt_ref
        if not prompt_ref:
            raise ValueError(f"Task '{task}' has no prompt_ref and none was given")

        rendered = self.prompts.render(prompt_ref, variables)
        params = {**task_cfg.params, **params_override}
        if task_cfg.timeout:
            # Ensure custom timeout in params_override takes precedence
            params.setdefault("timeout", task_cfg.timeout)

        request = ChatRequest(
            model=task_cfg.model,
            messages=rendered,
            params=params,
            stop=self.prompts.load_prompt(prompt_ref).stop_sequences,
        )

        provider = self._get_provider(task_cfg.provider)
        start_time = time.perf_counter()
        response = provider.chat(request)
        logger.debug(f"{task} via {task_cfg.provider} answered in {(time.perf_counter() - start_time) * 1000:.0f}ms")
        return response

    def health_check(self, task: str) -> bool:
        return self._get_provider(self.task_config(task).provider).health_check()

    def cleanup(self):
        for name, provider in self._providers.items():
            if hasattr(provider, 'cleanup'):
                try:
                    provider.cleanup()
                    logger.info(f"Cleaned up provider: {name}")
                except Exception as e:
                    logger.error(f"Cleanup failed for {name}: {e}")

        self._providers.clear()

    async def aclose(self):
        if self._ocr is not None:
            await self._ocr.aclose()
            self._ocr = None
        self.cleanup()
