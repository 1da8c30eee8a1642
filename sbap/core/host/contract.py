"""
Contract base class and handler dependencies.

A Contract subclass is stateless code: all of its state lives in the
Storage bucket it receives through Deps on every call. The host creates a
fresh instance per call, so nothing may be cached on `self`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Mapping, Optional, Union

from sbap.core.config import ProtocolConfig
from sbap.core.errors import InvalidMessage
from sbap.core.host.env import Env
from sbap.core.host.messages import Record, WireModel, as_wire
from sbap.core.host.response import Reply, Response
from sbap.core.host.storage import Storage
from sbap.crypto import sha256

if TYPE_CHECKING:
    from sbap.core.host.chain import Chain


class InstanceInfo(Record):
    """What the host knows about a contract instance."""
    address: str
    code_id: int
    code_hash: str
    creator: str
    label: str


class Querier:
    """Synchronous, read-only access to other contracts."""

    def __init__(self, chain: "Chain"):
        self._chain = chain

    def query(
        self,
        contract_addr: str,
        msg: Union[WireModel, Mapping[str, Any]],
        code_hash: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._chain.query(contract_addr, as_wire(msg), code_hash=code_hash)

    def contract_info(self, address: str) -> InstanceInfo:
        return self._chain.instance(address)


@dataclass
class Deps:
    storage: Storage
    querier: Querier
    config: ProtocolConfig


class Contract(ABC):
    """
    Code that can be stored on the host and instantiated.

    Subclasses implement the four entry points. Handlers raise ContractError
    to abort; anything else they return goes through Response.
    """

    name: ClassVar[str] = "contract"
    version: ClassVar[str] = "1"

    @classmethod
    def code_hash(cls) -> str:
        """Stable identifier of this code and version."""
        return sha256(f"{cls.__module__}.{cls.__qualname__}:{cls.version}".encode()).hex()

    @abstractmethod
    def instantiate(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        ...

    @abstractmethod
    def execute(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        ...

    @abstractmethod
    def query(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        raise InvalidMessage(f"{self.name} does not handle replies (id={reply.id})")
