"""
Chain - Contract host.

Runs contracts the way a CosmWasm-style chain does:
- Stored code is identified by (code_id, code_hash)
- Each handler invocation is atomic (one storage savepoint)
- Outbound messages are dispatched after the handler returns, depth first
- Sub-messages that ask for a reply on error have their failure contained
  and reported to the sender's reply() handler
- A failing top-level call raises its ContractError and changes nothing

Chain state (clock, code table, instances) lives in its own bucket of the
backend, so a chain opened on an existing SQLite file resumes where it
stopped.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

from sbap.core.config import ProtocolConfig
from sbap.core.errors import ContractError, InvalidMessage, NotFound
from sbap.core.host.contract import Contract, Deps, InstanceInfo, Querier
from sbap.core.host.env import BlockInfo, ContractInfo, Env, MessageInfo
from sbap.core.host.messages import Record, WireModel, as_wire
from sbap.core.host.response import (
    ExecuteMsg,
    InstantiateMsg,
    Reply,
    Response,
    SubMsg,
    WasmMsg,
)
from sbap.core.host.storage import KVBackend, MemoryBackend, ReadonlyStorage, Storage
from sbap.crypto import derive_contract_address
from sbap.utils.logger import get_logger

logger = get_logger("host")

META_BUCKET = "__chain__"


# =============================================================================
# Records
# =============================================================================


class ChainState(Record):
    height: int
    time: int
    next_instance_id: int = 1
    codes: List[str] = []  # code_hash by code_id - 1


@dataclass
class CodeInfo:
    code_id: int
    code_hash: str
    contract_cls: Type[Contract]


@dataclass
class Answer:
    """Data returned by one handler invocation within a transaction."""
    contract: str
    data: Dict[str, Any]


@dataclass
class FailedMessage:
    """A sub-message whose failure was contained by a reply-on-error."""
    sender: str
    msg: WasmMsg
    error: ContractError


@dataclass
class TxResult:
    """Everything a successful top-level call produced."""
    sender: str
    contract: str
    data: Optional[Dict[str, Any]] = None
    answers: List[Answer] = field(default_factory=list)
    attributes: List[Tuple[str, str, str]] = field(default_factory=list)
    failures: List[FailedMessage] = field(default_factory=list)

    def answers_from(self, address: str) -> List[Dict[str, Any]]:
        return [a.data for a in self.answers if a.contract == address]

    def answer_from(self, address: str) -> Optional[Dict[str, Any]]:
        """First answer produced by the given contract, if any."""
        found = self.answers_from(address)
        return found[0] if found else None

    def attribute(self, key: str) -> List[str]:
        return [value for (_, k, value) in self.attributes if k == key]


class _TxContext:
    """Collects answers, attributes and failures of the running transaction."""

    def __init__(self):
        self.answers: List[Answer] = []
        self.attributes: List[Tuple[str, str, str]] = []
        self.failures: List[FailedMessage] = []

    def mark(self) -> Tuple[int, int, int]:
        return len(self.answers), len(self.attributes), len(self.failures)

    def truncate(self, mark: Tuple[int, int, int]) -> None:
        del self.answers[mark[0]:]
        del self.attributes[mark[1]:]
        del self.failures[mark[2]:]

    def record(self, contract: str, response: Response) -> None:
        if response.data is not None:
            self.answers.append(Answer(contract=contract, data=response.data))
        for key, value in response.attributes:
            self.attributes.append((contract, key, value))


# =============================================================================
# Chain
# =============================================================================


class Chain:
    """
    In-process contract host.

    Usage:
        chain = Chain()
        token_code = chain.store_code(Snip20Token)
        token, _ = chain.instantiate(admin, token_code.code_id, init_msg, "token")
        result = chain.execute(alice, token, {"transfer": {...}})
    """

    def __init__(
        self,
        backend: Optional[KVBackend] = None,
        config: Optional[ProtocolConfig] = None,
        chain_id: str = "sbap-local",
    ):
        self.config = config or ProtocolConfig()
        self.backend = backend or MemoryBackend()
        self.chain_id = chain_id
        self._meta = Storage(self.backend, META_BUCKET)
        self._codes: Dict[int, CodeInfo] = {}
        self._tx: Optional[_TxContext] = None

        if self._meta.may_load("state", ChainState) is None:
            self._save_state(ChainState(
                height=self.config.genesis_height,
                time=self.config.genesis_time,
            ))

    # =========================================================================
    # Clock
    # =========================================================================

    def _state(self) -> ChainState:
        return self._meta.load("state", ChainState)

    def _save_state(self, state: ChainState) -> None:
        self._meta.save("state", state)

    @property
    def height(self) -> int:
        return self._state().height

    @property
    def time(self) -> int:
        return self._state().time

    def set_time(self, timestamp: int) -> None:
        state = self._state()
        if timestamp < state.time:
            raise ValueError(f"Time cannot go backwards ({timestamp} < {state.time})")
        state.time = timestamp
        self._save_state(state)

    def advance_time(self, seconds: int) -> int:
        self.set_time(self.time + seconds)
        return self.time

    def advance_blocks(self, blocks: int = 1) -> int:
        state = self._state()
        state.height += blocks
        state.time += blocks * self.config.block_interval
        self._save_state(state)
        return state.height

    # =========================================================================
    # Code and instances
    # =========================================================================

    def store_code(self, contract_cls: Type[Contract]) -> CodeInfo:
        """
        Register contract code.

        Storing the same code again returns its existing id, which is how a
        reopened chain re-binds its code table to Python classes.
        """
        code_hash = contract_cls.code_hash()
        state = self._state()
        if code_hash in state.codes:
            code_id = state.codes.index(code_hash) + 1
        else:
            state.codes.append(code_hash)
            code_id = len(state.codes)
            self._save_state(state)
            logger.debug(f"Stored code {contract_cls.name} as id {code_id}")

        info = CodeInfo(code_id=code_id, code_hash=code_hash, contract_cls=contract_cls)
        self._codes[code_id] = info
        return info

    def code(self, code_id: int) -> CodeInfo:
        info = self._codes.get(code_id)
        if info is None:
            raise NotFound(f"No code stored under id {code_id}")
        return info

    def instance(self, address: str) -> InstanceInfo:
        info = self._meta.may_load(f"instance:{address}", InstanceInfo)
        if info is None:
            raise NotFound(f"No contract at {address}")
        return info

    def instances(self) -> List[InstanceInfo]:
        return [self._meta.load(k, InstanceInfo) for k in self._meta.keys("instance:")]

    def _contract(self, instance: InstanceInfo) -> Contract:
        return self.code(instance.code_id).contract_cls()

    # =========================================================================
    # Public entry points
    # =========================================================================

    def instantiate(
        self,
        sender: str,
        code_id: int,
        msg: Union[WireModel, Mapping[str, Any]],
        label: str,
    ) -> Tuple[str, TxResult]:
        """Instantiate a contract as a top-level transaction."""
        code = self.code(code_id)
        wasm = InstantiateMsg(code_id=code_id, code_hash=code.code_hash, msg=as_wire(msg), label=label)
        address = None

        def run() -> Response:
            nonlocal address
            response, address = self._deliver(sender, wasm)
            return response

        result = self._transaction(sender, "", run)
        result.contract = address
        return address, result

    def execute(
        self,
        sender: str,
        contract_addr: str,
        msg: Union[WireModel, Mapping[str, Any]],
    ) -> TxResult:
        """Execute a handler as a top-level transaction."""
        instance = self.instance(contract_addr)
        wasm = ExecuteMsg(contract_addr=contract_addr, code_hash=instance.code_hash, msg=as_wire(msg))
        return self._transaction(sender, contract_addr, lambda: self._deliver(sender, wasm)[0])

    def query(
        self,
        contract_addr: str,
        msg: Union[WireModel, Mapping[str, Any]],
        code_hash: Optional[str] = None,
    ) -> Dict[str, Any]:
        instance = self.instance(contract_addr)
        if code_hash is not None and code_hash != instance.code_hash:
            raise InvalidMessage(f"Code hash mismatch for {contract_addr}")

        deps = Deps(
            storage=ReadonlyStorage(self.backend, contract_addr),
            querier=Querier(self),
            config=self.config,
        )
        return self._contract(instance).query(deps, self._env("", instance), as_wire(msg))

    # =========================================================================
    # Execution
    # =========================================================================

    def _transaction(self, sender: str, contract: str, run: Callable[[], Response]) -> TxResult:
        if self._tx is not None:
            raise RuntimeError("A transaction is already running")

        self._tx = _TxContext()
        try:
            response = run()
            tx = self._tx
        except ContractError as e:
            logger.debug(f"Transaction from {sender[:10]} failed: {e.kind.value}: {e}")
            raise
        finally:
            self._tx = None

        return TxResult(
            sender=sender,
            contract=contract,
            data=response.data,
            answers=tx.answers,
            attributes=tx.attributes,
            failures=tx.failures,
        )

    def _env(self, sender: str, instance: InstanceInfo) -> Env:
        state = self._state()
        return Env(
            block=BlockInfo(height=state.height, time=state.time, chain_id=self.chain_id),
            message=MessageInfo(sender=sender),
            contract=ContractInfo(address=instance.address, code_hash=instance.code_hash),
        )

    def _deps(self, address: str) -> Deps:
        return Deps(storage=Storage(self.backend, address), querier=Querier(self), config=self.config)

    def _run(self, instance: InstanceInfo, handler: Callable[[], Response]) -> Response:
        """Run one handler and everything it dispatches inside a savepoint."""
        mark = self._tx.mark()
        try:
            with self.backend.savepoint():
                response = handler()
                self._tx.record(instance.address, response)
                for sub in response.messages:
                    self._dispatch(instance.address, sub)
        except ContractError:
            self._tx.truncate(mark)
            raise
        return response

    def _deliver(self, sender: str, msg: WasmMsg) -> Tuple[Response, str]:
        if isinstance(msg, InstantiateMsg):
            return self._instantiate(sender, msg)

        instance = self.instance(msg.contract_addr)
        if msg.code_hash != instance.code_hash:
            raise InvalidMessage(f"Code hash mismatch for {msg.contract_addr}")

        contract = self._contract(instance)
        logger.debug(f"{sender[:10]} -> {contract.name}@{instance.address[:10]}: {next(iter(msg.msg), '?')}")
        response = self._run(
            instance,
            lambda: contract.execute(self._deps(instance.address), self._env(sender, instance), msg.msg),
        )
        return response, instance.address

    def _instantiate(self, sender: str, msg: InstantiateMsg) -> Tuple[Response, str]:
        code = self.code(msg.code_id)
        if msg.code_hash != code.code_hash:
            raise InvalidMessage(f"Code hash mismatch for code id {msg.code_id}")

        with self.backend.savepoint():
            state = self._state()
            address = derive_contract_address(msg.code_id, state.next_instance_id)
            state.next_instance_id += 1
            self._save_state(state)

            instance = InstanceInfo(
                address=address,
                code_id=msg.code_id,
                code_hash=code.code_hash,
                creator=sender,
                label=msg.label,
            )
            self._meta.save(f"instance:{address}", instance)

            contract = code.contract_cls()
            response = self._run(
                instance,
                lambda: contract.instantiate(self._deps(address), self._env(sender, instance), msg.msg),
            )

        logger.debug(f"Instantiated {contract.name} '{msg.label}' at {address}")
        return response, address

    def _dispatch(self, sender: str, sub: SubMsg) -> None:
        try:
            response, address = self._deliver(sender, sub.msg)
        except ContractError as e:
            if not sub.wants_error_reply:
                raise
            logger.debug(f"Sub-message {sub.id} from {sender[:10]} failed: {e}")
            self._tx.failures.append(FailedMessage(sender=sender, msg=sub.msg, error=e))
            self._reply(sender, Reply(id=sub.id, payload=sub.payload, error=e))
            return

        if sub.wants_success_reply:
            self._reply(sender, Reply(
                id=sub.id,
                payload=sub.payload,
                data=response.data,
                contract_address=address,
            ))

    def _reply(self, address: str, reply: Reply) -> None:
        instance = self.instance(address)
        contract = self._contract(instance)
        self._run(
            instance,
            lambda: contract.reply(self._deps(address), self._env("", instance), reply),
        )
