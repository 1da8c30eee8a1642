"""
Wire models.

Every message exchanged with a contract is a JSON-like dict holding exactly
one key, the message name, mapped to the message fields:

    {"finalize": {"only_if_bids": true}}

WireModel subclasses declare that name in `wire_name` and convert to and
from the dict form. Field types below plug the validation helpers into
pydantic so malformed input never reaches a handler.
"""

from typing import Annotated, Any, ClassVar, Dict, Mapping, Type, TypeVar, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from sbap.core.errors import InvalidMessage
from sbap.utils.validation import (
    checked,
    validate_address,
    validate_amount,
    validate_code_hash,
    validate_timestamp,
)

W = TypeVar("W", bound="WireModel")


def _address(value: str) -> str:
    checked(validate_address(value))
    return value


def _amount(value: int) -> int:
    checked(validate_amount(value))
    return value


def _timestamp(value: int) -> int:
    checked(validate_timestamp(value))
    return value


def _code_hash(value: str) -> str:
    checked(validate_code_hash(value))
    return value


Address = Annotated[str, AfterValidator(_address)]
Uint128 = Annotated[int, AfterValidator(_amount)]
Timestamp = Annotated[int, AfterValidator(_timestamp)]
CodeHash = Annotated[str, AfterValidator(_code_hash)]


class Record(BaseModel):
    """Base for stored records and nested wire structures."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class WireModel(Record):
    """A named message or answer."""

    wire_name: ClassVar[str] = ""

    def to_wire(self) -> Dict[str, Any]:
        return {self.wire_name: self.model_dump(mode="json", by_alias=True, exclude_none=True)}


def as_wire(msg: Union[WireModel, Mapping[str, Any]]) -> Dict[str, Any]:
    """Accept either a model or an already-encoded dict."""
    if isinstance(msg, WireModel):
        return msg.to_wire()
    return dict(msg)


def message_table(*models: Type[WireModel]) -> Dict[str, Type[WireModel]]:
    """Build the name -> model lookup used by parse_wire()."""
    return {model.wire_name: model for model in models}


def parse_wire(raw: Any, models: Mapping[str, Type[WireModel]]) -> WireModel:
    """
    Decode a wire dict into its model.

    Raises:
        InvalidMessage: unknown name, wrong shape or invalid fields
    """
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise InvalidMessage("Message must be an object with exactly one key")

    (name, body), = raw.items()
    model = models.get(name)
    if model is None:
        raise InvalidMessage(f"Unknown message: {name}")

    try:
        return model.model_validate(body or {})
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidMessage(f"Invalid {name} message: {where} {first['msg']}".strip()) from e


def decode(raw: Mapping[str, Any], model: Type[W]) -> W:
    """Decode a wire dict that must be of one particular model."""
    parsed = parse_wire(raw, {model.wire_name: model})
    return parsed  # type: ignore[return-value]
