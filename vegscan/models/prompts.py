from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple
import re
import yaml
import jinja2
import logging

logger = logging.getLogger(__name__)

# "scan/classify@v3": directory path, then the version directory
PROMPT_REF_RE = re.compile(r"^(?P<name>[\w\-]+(?:/[\w\-]+)*)@(?P<version>[\w.\-]+)$")

SYSTEM_TEMPLATE = "system.j2"
USER_TEMPLATE = "user.j2"
CONFIG_FILE = "config.yaml"


def parse_prompt_ref(prompt_ref: str) -> Tuple[str, str]:
    match = PROMPT_REF_RE.match(prompt_ref or "")
    if not match:
        raise ValueError(f"Invalid prompt reference: {prompt_ref!r} (expected 'name@version')")
    return match.group("name"), match.group("version")


def _version_key(version: str):
    #v2 < v10; anything non-numeric sorts after, by name
    digits = version.lstrip("v")
    return (0, int(digits), version) if digits.isdigit() else (1, 0, version)


@dataclass(frozen=True)
class PromptConfig:
    """One prompt revision as read from disk. Template sources are kept for inspection."""
    name: str
    version: str
    system_template: str
    user_template: str
    stop_sequences: Optional[List[str]] = None
    settings: Dict[str, Any] = field(default_factory=dict) #contract keys: schema, min_chars, guard_explanation...

    @property
    def ref(self) -> str:
        return f"{self.name}@{self.version}"


class PromptManager:
    """
    Versioned prompt store: ``<prompts_dir>/<name>/<version>/{config.yaml,system.j2,user.j2}``.

    Templates are compiled once when a revision is first loaded; rendering
    with a missing variable is an error rather than an empty string.
    """

    def __init__(self, prompts_dir: Path):
        self.prompts_dir = Path(prompts_dir)
        if not self.prompts_dir.is_dir():
            raise FileNotFoundError(f"Prompts dir not found: {self.prompts_dir}")

        self.jinja_env = jinja2.Environment(
            undefined=jinja2.StrictUndefined, #'is defined' still works for optional variables
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._cache: Dict[str, PromptConfig] = {}
        self._compiled: Dict[str, Tuple[jinja2.Template, jinja2.Template]] = {}

    def versions(self, name: str) -> List[str]:
        """Revisions of ``name`` present on disk, oldest first."""
        base = self.prompts_dir / name
        if not base.is_dir():
            return []
        found = [p.name for p in base.iterdir() if (p / SYSTEM_TEMPLATE).is_file()]
        return sorted(found, key=_version_key)

    def load_prompt(self, prompt_ref: str) -> PromptConfig:
        if prompt_ref in self._cache:
            return self._cache[prompt_ref]

        name, version = parse_prompt_ref(prompt_ref)
        prompt_path = self.prompts_dir / name / version
        if not prompt_path.is_dir():
            raise FileNotFoundError(f"Prompt not found: {prompt_path}")

        settings = self._read_config(prompt_path)
        stop = settings.pop("stop_sequences", None)
        if stop is not None and (not isinstance(stop, list) or not all(isinstance(s, str) for s in stop)):
            raise ValueError(f"Prompt {prompt_ref}: stop_sequences must be a list of strings")

        prompt = PromptConfig(
            name=name,
            version=version,
            system_template=self._read_template(prompt_path, SYSTEM_TEMPLATE),
            user_template=self._read_template(prompt_path, USER_TEMPLATE),
            stop_sequences=stop,
            settings=settings,
        )
        try:
            compiled = (
                self.jinja_env.from_string(prompt.system_template),
                self.jinja_env.from_string(prompt.user_template),
            )
        except jinja2.TemplateSyntaxError as e:
            raise ValueError(f"Prompt {prompt_ref}: template syntax error on line {e.lineno}: {e.message}") from e

        self._cache[prompt_ref] = prompt
        self._compiled[prompt_ref] = compiled
        logger.info(f"Loaded prompt: {prompt_ref}")
        return prompt

    def render(self, prompt_ref: str, variables: Dict[str, Any]) -> List[Dict[str, str]]:
        self.load_prompt(prompt_ref)
        system, user = self._compiled[prompt_ref]

        try:
            system_content = system.render(**variables)
            user_content = user.render(**variables)
        except jinja2.UndefinedError as e:
            raise ValueError(f"Missing required variable in prompt {prompt_ref}: {e}") from e

        logger.debug(f"Rendered {prompt_ref}: system={len(system_content)} chars, user={len(user_content)} chars")
        return [
            {"role": "system", "content": system_content},
            {"role": "user", "content": user_content},
        ]

    def _read_config(self, prompt_path: Path) -> Dict[str, Any]:
        config_path = prompt_path / CONFIG_FILE
        if not config_path.is_file():
            return {}
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must be a mapping, got {type(data).__name__}")
        return data

    def _read_template(self, prompt_path: Path, template_name: str) -> str:
        template_path = prompt_path / template_name
        if not template_path.is_file():
            raise FileNotFoundError(f"Template file not found: {template_path}")
        return template_path.read_text(encoding="utf-8")
