"""
Classification prompt contracts.

A contract ties one versioned prompt directory (``prompts/scan/classify/<version>``)
to the verdict model its reply must satisfy, plus the cross-field rules and the
minimum-content guard for that revision. The prompt's ``config.yaml`` names the
schema, so a new taxonomy is a new prompt directory and, at most, a new entry in
``CONTRACTS``.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, Type

from vegscan.models.prompts import PromptManager
from .parser import MalformedResponse, parse_verdict
from .types import (
    Verdict, DietaryVerdict, LabelVerdict, LabelType,
    SeverityVerdict, Severity, FlagLevel,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHARS = 20
DEFAULT_GUARD_EXPLANATION = "成分文字過少，無法判斷"


class ContractViolation(MalformedResponse):
    """Reply is well-formed but its fields contradict each other."""


def content_length(text: str) -> int:
    #characters that count toward the minimum, whitespace excluded
    return sum(1 for ch in text if not ch.isspace())


@dataclass(frozen=True)
class ClassificationContract:
    prompt_ref: str
    min_chars: int = DEFAULT_MIN_CHARS
    guard_explanation: str = DEFAULT_GUARD_EXPLANATION
    strict_consistency: bool = True

    verdict_model: ClassVar[Type[Verdict]] = Verdict
    supports_guard: ClassVar[bool] = True

    def render_variables(self, ocr_text: str) -> Dict[str, object]:
        return {"ocr_text": ocr_text, "min_chars": self.min_chars}

    def is_too_short(self, ocr_text: str) -> bool:
        return self.supports_guard and self.min_chars > 0 and content_length(ocr_text) < self.min_chars

    def parse(self, raw_reply: str) -> Verdict:
        return parse_verdict(raw_reply, self.verdict_model)

    def validate(self, verdict: Verdict) -> None:
        raise NotImplementedError

    def guard_verdict(self) -> Verdict:
        raise NotImplementedError


@dataclass(frozen=True)
class DietaryContract(ClassificationContract):
    """v1: ``vegetarian``/``vegan`` booleans. Cannot express "indeterminate", so no guard."""

    verdict_model: ClassVar[Type[Verdict]] = DietaryVerdict
    supports_guard: ClassVar[bool] = False

    def validate(self, verdict: DietaryVerdict) -> None:
        if verdict.vegan and not verdict.vegetarian:
            raise ContractViolation("vegan product must also be vegetarian")
        if not verdict.vegetarian and not verdict.riskyKeywords:
            raise ContractViolation("non-vegetarian verdict must name at least one risky keyword")


@dataclass(frozen=True)
class LabelContract(ClassificationContract):
    """v2: five labels written in Chinese."""

    verdict_model: ClassVar[Type[Verdict]] = LabelVerdict

    def validate(self, verdict: LabelVerdict) -> None:
        if verdict.type is LabelType.FULLY_VEGETARIAN and verdict.riskyKeywords:
            raise ContractViolation(f"'{verdict.type.value}' verdict must not carry risky keywords")
        if verdict.type is LabelType.NON_VEGETARIAN and not verdict.riskyKeywords:
            raise ContractViolation(f"'{verdict.type.value}' verdict must name at least one risky keyword")

    def guard_verdict(self) -> LabelVerdict:
        return LabelVerdict(type=LabelType.INDETERMINATE, reasoning=self.guard_explanation, riskyKeywords=[])


@dataclass(frozen=True)
class SeverityContract(ClassificationContract):
    """
    v3: clear / caution / warning / unknown.

    - clear carries no flags
    - caution needs at least one flag and none at warning level
    - warning needs at least one warning-level flag
    - unknown is unconstrained; the minimum-content guard produces it, never caution
    """

    verdict_model: ClassVar[Type[Verdict]] = SeverityVerdict

    def validate(self, verdict: SeverityVerdict) -> None:
        levels = [flag.level for flag in verdict.flags]
        if verdict.type is Severity.CLEAR and verdict.flags:
            raise ContractViolation("clear verdict must not carry flags")
        if verdict.type is Severity.CAUTION:
            if not verdict.flags:
                raise ContractViolation("caution verdict needs at least one flag")
            if FlagLevel.WARNING in levels:
                raise ContractViolation("caution verdict carries a warning-level flag")
        if verdict.type is Severity.WARNING and FlagLevel.WARNING not in levels:
            raise ContractViolation("warning verdict needs at least one warning-level flag")

    def guard_verdict(self) -> SeverityVerdict:
        return SeverityVerdict(type=Severity.UNKNOWN, explanation=[self.guard_explanation], flags=[], suggestion="")


CONTRACTS: Dict[str, Type[ClassificationContract]] = {
    "dietary": DietaryContract,
    "label": LabelContract,
    "severity": SeverityContract,
}


def load_contract(prompts: PromptManager, prompt_ref: str) -> ClassificationContract:
    """Build the contract described by the ``config.yaml`` of ``prompt_ref``."""
    prompt = prompts.load_prompt(prompt_ref)
    settings = prompt.settings

    schema = settings.get("schema")
    if schema not in CONTRACTS:
        raise ValueError(f"Prompt {prompt_ref} names unknown schema '{schema}' (known: {sorted(CONTRACTS)})")
    contract_cls = CONTRACTS[schema]

    min_chars = int(settings.get("min_chars", DEFAULT_MIN_CHARS if contract_cls.supports_guard else 0))
    if min_chars > 0 and not contract_cls.supports_guard:
        raise ValueError(f"Prompt {prompt_ref}: schema '{schema}' has no indeterminate result, min_chars must be 0")

    contract = contract_cls(
        prompt_ref=prompt_ref,
        min_chars=min_chars,
        guard_explanation=settings.get("guard_explanation", DEFAULT_GUARD_EXPLANATION),
        strict_consistency=bool(settings.get("strict_consistency", True)),
    )
    logger.info(f"Loaded classification contract {prompt_ref} (schema={schema}, min_chars={min_chars})")
    return contract
