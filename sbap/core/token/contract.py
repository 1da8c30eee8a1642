"""
Fungible token contract.

Balances and allowances are stored one key per holder/pair. A send to an
address that registered a receive hook is followed by a `receive` message
to that address; if the hook fails, the whole send is rolled back.
"""

from typing import Any, Callable, Dict

from sbap.core.errors import InsufficientAllowanceOrBalance, TransfersStopped, Unauthorized
from sbap.core.host import Contract, Deps, Env, Response, Storage, decode, execute, parse_wire
from sbap.core.token.msg import (
    HANDLE_MSGS,
    QUERY_MSGS,
    AllowanceAnswer,
    AllowanceQuery,
    BalanceAnswer,
    BalanceQuery,
    ContractStatusLevel,
    DecreaseAllowance,
    IncreaseAllowance,
    Mint,
    ReceiveMsg,
    RegisterReceive,
    Send,
    SendFrom,
    SetContractStatus,
    TokenConfig,
    TokenInfoAnswer,
    TokenInitMsg,
    TokenStatusAnswer,
    Transfer,
    TransferFrom,
)
from sbap.utils.logger import get_logger

logger = get_logger("token")


# =============================================================================
# Storage helpers
# =============================================================================


def _get_int(storage: Storage, key: str) -> int:
    raw = storage.get(key)
    return int(raw) if raw is not None else 0


def _set_int(storage: Storage, key: str, value: int) -> None:
    if value:
        storage.set(key, str(value).encode())
    else:
        storage.remove(key)


def balance_of(storage: Storage, address: str) -> int:
    return _get_int(storage, f"balance:{address}")


def allowance_of(storage: Storage, owner: str, spender: str) -> int:
    return _get_int(storage, f"allowance:{owner}:{spender}")


def _move(storage: Storage, owner: str, recipient: str, amount: int) -> None:
    available = balance_of(storage, owner)
    if available < amount:
        raise InsufficientAllowanceOrBalance(
            f"Insufficient funds: balance={available}, required={amount}"
        )
    _set_int(storage, f"balance:{owner}", available - amount)
    _set_int(storage, f"balance:{recipient}", balance_of(storage, recipient) + amount)


def _spend_allowance(storage: Storage, owner: str, spender: str, amount: int) -> None:
    allowance = allowance_of(storage, owner, spender)
    if allowance < amount:
        raise InsufficientAllowanceOrBalance(
            f"Insufficient allowance: allowance={allowance}, required={amount}"
        )
    _set_int(storage, f"allowance:{owner}:{spender}", allowance - amount)


# =============================================================================
# Contract
# =============================================================================


class Snip20Token(Contract):
    """SNIP-20 style fungible token."""

    name = "snip20"
    version = "1"

    def instantiate(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        init = decode(msg, TokenInitMsg)
        config = TokenConfig(
            name=init.name,
            symbol=init.symbol,
            decimals=init.decimals,
            admin=init.admin or env.message.sender,
        )
        for entry in init.initial_balances:
            _set_int(deps.storage, f"balance:{entry.address}", balance_of(deps.storage, entry.address) + entry.amount)
            config.total_supply += entry.amount
        deps.storage.save("config", config)

        logger.info(f"Token {config.symbol} created, supply={config.total_supply}")
        return Response()

    def execute(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Response:
        parsed = parse_wire(msg, HANDLE_MSGS)
        config = deps.storage.load("config", TokenConfig)

        if isinstance(parsed, (Mint, SetContractStatus)):
            if env.message.sender != config.admin:
                raise Unauthorized("Only the token admin can do that")
        elif config.status == ContractStatusLevel.STOP_TRANSFERS and isinstance(
            parsed, (Transfer, Send, TransferFrom, SendFrom)
        ):
            raise TransfersStopped(f"Transfers of {config.symbol} are stopped")

        handlers: Dict[type, Callable[..., Response]] = {
            Transfer: self._transfer,
            Send: self._send,
            TransferFrom: self._transfer_from,
            SendFrom: self._send_from,
            IncreaseAllowance: self._increase_allowance,
            DecreaseAllowance: self._decrease_allowance,
            RegisterReceive: self._register_receive,
            Mint: self._mint,
            SetContractStatus: self._set_contract_status,
        }
        response = handlers[type(parsed)](deps, env, config, parsed)
        return response.set_data(TokenStatusAnswer())

    def query(self, deps: Deps, env: Env, msg: Dict[str, Any]) -> Dict[str, Any]:
        parsed = parse_wire(msg, QUERY_MSGS)
        config = deps.storage.load("config", TokenConfig)

        if isinstance(parsed, BalanceQuery):
            return BalanceAnswer(amount=balance_of(deps.storage, parsed.address)).to_wire()
        if isinstance(parsed, AllowanceQuery):
            return AllowanceAnswer(
                owner=parsed.owner,
                spender=parsed.spender,
                allowance=allowance_of(deps.storage, parsed.owner, parsed.spender),
            ).to_wire()
        return TokenInfoAnswer(
            name=config.name,
            symbol=config.symbol,
            decimals=config.decimals,
            total_supply=config.total_supply,
        ).to_wire()

    # =========================================================================
    # Handlers
    # =========================================================================

    def _transfer(self, deps: Deps, env: Env, config: TokenConfig, msg: Transfer) -> Response:
        _move(deps.storage, env.message.sender, msg.recipient, msg.amount)
        logger.debug(f"{config.symbol}: {env.message.sender[:10]} -> {msg.recipient[:10]} {msg.amount}")
        return Response()

    def _send(self, deps: Deps, env: Env, config: TokenConfig, msg: Send) -> Response:
        _move(deps.storage, env.message.sender, msg.recipient, msg.amount)
        return self._notify_receiver(deps, env.message.sender, env.message.sender, msg.recipient, msg.amount, msg.msg)

    def _transfer_from(self, deps: Deps, env: Env, config: TokenConfig, msg: TransferFrom) -> Response:
        _spend_allowance(deps.storage, msg.owner, env.message.sender, msg.amount)
        _move(deps.storage, msg.owner, msg.recipient, msg.amount)
        return Response()

    def _send_from(self, deps: Deps, env: Env, config: TokenConfig, msg: SendFrom) -> Response:
        _spend_allowance(deps.storage, msg.owner, env.message.sender, msg.amount)
        _move(deps.storage, msg.owner, msg.recipient, msg.amount)
        return self._notify_receiver(deps, env.message.sender, msg.owner, msg.recipient, msg.amount, msg.msg)

    def _notify_receiver(self, deps, sender, owner, recipient, amount, payload) -> Response:
        response = Response()
        code_hash = deps.storage.get(f"receiver:{recipient}")
        if code_hash is not None:
            hook = ReceiveMsg(sender=sender, from_=owner, amount=amount, msg=payload)
            response.add_message(execute(recipient, code_hash.decode(), hook))
        return response

    def _increase_allowance(self, deps: Deps, env: Env, config: TokenConfig, msg: IncreaseAllowance) -> Response:
        key = f"allowance:{env.message.sender}:{msg.spender}"
        _set_int(deps.storage, key, _get_int(deps.storage, key) + msg.amount)
        return Response()

    def _decrease_allowance(self, deps: Deps, env: Env, config: TokenConfig, msg: DecreaseAllowance) -> Response:
        key = f"allowance:{env.message.sender}:{msg.spender}"
        _set_int(deps.storage, key, max(0, _get_int(deps.storage, key) - msg.amount))
        return Response()

    def _register_receive(self, deps: Deps, env: Env, config: TokenConfig, msg: RegisterReceive) -> Response:
        deps.storage.set(f"receiver:{env.message.sender}", msg.code_hash.encode())
        return Response()

    def _mint(self, deps: Deps, env: Env, config: TokenConfig, msg: Mint) -> Response:
        _set_int(deps.storage, f"balance:{msg.recipient}", balance_of(deps.storage, msg.recipient) + msg.amount)
        config.total_supply += msg.amount
        deps.storage.save("config", config)
        return Response()

    def _set_contract_status(self, deps: Deps, env: Env, config: TokenConfig, msg: SetContractStatus) -> Response:
        config.status = msg.level
        deps.storage.save("config", config)
        logger.info(f"Token {config.symbol} status -> {msg.level.value}")
        return Response()
