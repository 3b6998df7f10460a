"""Range filter policies selecting which rows of each conversation are imported."""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from chat_ingest.errors import ConfigurationError


class _FilterBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    conversation_ids: list[str] = Field(default_factory=list)


class IncludeConversationsFilter(_FilterBase):
    """Import the listed conversations in full; an empty list means all discovered ones."""

    type: Literal["include"] = "include"


class DepthFilter(_FilterBase):
    """Import roughly the most recent ``depth`` messages of each conversation."""

    type: Literal["depth"] = "depth"
    depth: int


class AbsoluteFilter(_FilterBase):
    """Import messages inside a fixed time window; either side may be open."""

    type: Literal["absolute"] = "absolute"
    since: datetime | None = None
    until: datetime | None = None

    @model_validator(mode="after")
    def _check_window(self) -> "AbsoluteFilter":
        if self.since is not None and self.until is not None and _aware(self.since) > _aware(self.until):
            raise ValueError("since must not be later than until")
        return self


class RelativeDaysFilter(_FilterBase):
    """Import the last ``days`` days of each conversation, anchored to its latest message."""

    type: Literal["relative-days"] = "relative-days"
    days: int = Field(gt=0)


RangeFilterPolicy = Annotated[
    Union[IncludeConversationsFilter, DepthFilter, AbsoluteFilter, RelativeDaysFilter],
    Field(discriminator="type"),
]

_POLICY_ADAPTER: TypeAdapter[RangeFilterPolicy] = TypeAdapter(RangeFilterPolicy)


def parse_range_filter(raw: dict[str, Any] | str) -> RangeFilterPolicy:
    """Parse a policy from a mapping or JSON string."""

    try:
        if isinstance(raw, str):
            return _POLICY_ADAPTER.validate_json(raw)
        return _POLICY_ADAPTER.validate_python(raw)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'filter'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid range filter: {problems}") from exc


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
