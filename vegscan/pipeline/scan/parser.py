import json
import re
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

# ```json ... ``` with the tag matched case-insensitively
JSON_BLOCK_RE = re.compile(r"```[ \t]*json[ \t]*\r?\n?(.*?)```", re.IGNORECASE | re.DOTALL)


class MalformedResponse(ValueError):
    """The model reply does not carry exactly one well-formed ```json block."""


def extract_json_block(raw_reply: str) -> str:
    """Return the trimmed content of the single fenced json block in ``raw_reply``."""
    if not raw_reply:
        raise MalformedResponse("Empty reply")

    blocks = JSON_BLOCK_RE.findall(raw_reply)
    if not blocks:
        raise MalformedResponse("No JSON code block found")
    if len(blocks) > 1:
        raise MalformedResponse(f"Expected one JSON code block, found {len(blocks)}")

    content = blocks[0].strip()
    if not content:
        raise MalformedResponse("JSON code block is empty")
    return content


def parse_verdict(raw_reply: str, model: Type[T]) -> T:
    """
    Parse a model reply into ``model``.

    Only structure is checked here: the block must be a JSON object carrying
    the model's fields with the right primitive types. Cross-field rules
    belong to the contract.
    """
    content = extract_json_block(raw_reply)

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Invalid JSON in code block: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedResponse(f"Reply does not match {model.__name__} ({fields})") from e
