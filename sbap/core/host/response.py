"""
Handler responses and outbound messages.

A handler never calls another contract directly. It returns a Response
whose sub-messages the host dispatches, in order, after the handler has
returned. Each sub-message states what the host should do when it fails:

- ReplyOn.NEVER: the failure propagates and rolls back the sender too
- ReplyOn.ERROR: the failure is contained and the sender's reply() runs
- ReplyOn.SUCCESS / ReplyOn.ALWAYS: as named
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sbap.core.errors import ContractError
from sbap.core.host.messages import WireModel, as_wire


class ReplyOn(Enum):
    NEVER = "never"
    ERROR = "error"
    SUCCESS = "success"
    ALWAYS = "always"


@dataclass
class ExecuteMsg:
    """Call a handler of an existing contract."""
    contract_addr: str
    code_hash: str
    msg: Dict[str, Any]


@dataclass
class InstantiateMsg:
    """Create a new contract instance from stored code."""
    code_id: int
    code_hash: str
    msg: Dict[str, Any]
    label: str


WasmMsg = Union[ExecuteMsg, InstantiateMsg]


@dataclass
class SubMsg:
    msg: WasmMsg
    id: int = 0
    reply_on: ReplyOn = ReplyOn.NEVER
    payload: Optional[Dict[str, Any]] = None

    @property
    def wants_error_reply(self) -> bool:
        return self.reply_on in (ReplyOn.ERROR, ReplyOn.ALWAYS)

    @property
    def wants_success_reply(self) -> bool:
        return self.reply_on in (ReplyOn.SUCCESS, ReplyOn.ALWAYS)


def execute(
    contract_addr: str,
    code_hash: str,
    msg: Union[WireModel, Mapping[str, Any]],
) -> ExecuteMsg:
    return ExecuteMsg(contract_addr=contract_addr, code_hash=code_hash, msg=as_wire(msg))


def on_error(
    msg: WasmMsg,
    reply_id: int,
    payload: Optional[Dict[str, Any]] = None,
) -> SubMsg:
    """Wrap a message so its failure is reported back instead of propagated."""
    return SubMsg(msg=msg, id=reply_id, reply_on=ReplyOn.ERROR, payload=payload)


@dataclass
class Reply:
    """Outcome of a sub-message, delivered to the contract that sent it."""
    id: int
    payload: Optional[Dict[str, Any]] = None
    error: Optional[ContractError] = None
    data: Optional[Dict[str, Any]] = None
    contract_address: Optional[str] = None  # Set for instantiations

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class Response:
    messages: List[SubMsg] = field(default_factory=list)
    attributes: List[Tuple[str, str]] = field(default_factory=list)
    data: Optional[Dict[str, Any]] = None

    def add_message(self, msg: Union[WasmMsg, SubMsg]) -> "Response":
        self.messages.append(msg if isinstance(msg, SubMsg) else SubMsg(msg=msg))
        return self

    def add_messages(self, msgs) -> "Response":
        for msg in msgs:
            self.add_message(msg)
        return self

    def add_attribute(self, key: str, value: Any) -> "Response":
        self.attributes.append((key, str(value)))
        return self

    def set_data(self, answer: Union[WireModel, Mapping[str, Any]]) -> "Response":
        self.data = as_wire(answer)
        return self
