"""Structural validation of canonical documents before they reach the target store."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from chat_ingest.errors import ValidationError
from chat_ingest.schemas.canonical import CanonicalMessage, ConversationDocument


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating one document."""

    valid: bool
    errors: list[dict[str, Any]] = field(default_factory=list)


def validate_message(document: dict[str, Any]) -> ValidationResult:
    """Validate a mapped message document against the canonical schema."""

    return _validate(CanonicalMessage, document)


def validate_conversation(document: dict[str, Any]) -> ValidationResult:
    """Validate a conversation aggregate document."""

    return _validate(ConversationDocument, document)


def require_valid_message(document: dict[str, Any], natural_id: str) -> None:
    """Raise ``ValidationError`` when a mapped message document is invalid."""

    result = validate_message(document)
    if not result.valid:
        raise ValidationError(natural_id, result.errors)


def _validate(model: type[BaseModel], document: Any) -> ValidationResult:
    try:
        model.model_validate(document)
    except PydanticValidationError as exc:
        return ValidationResult(valid=False, errors=[_simplify(error) for error in exc.errors()])
    return ValidationResult(valid=True)


def _simplify(error: Any) -> dict[str, Any]:
    return {
        "loc": ".".join(str(part) for part in error["loc"]),
        "msg": error["msg"],
        "type": error["type"],
    }
