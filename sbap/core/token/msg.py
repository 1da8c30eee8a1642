"""
Token messages.

A deliberately small SNIP-20 surface: balances, allowances, the Send/
Receive hook that lets contracts react to incoming tokens, and an admin
switch that stops transfers (used to exercise failed payouts).
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from sbap.core.host.messages import Address, CodeHash, Record, Uint128, WireModel, message_table
from sbap.utils.validation import checked, validate_symbol


class ContractStatusLevel(str, Enum):
    NORMAL_RUN = "normal_run"
    STOP_TRANSFERS = "stop_transfers"


# =============================================================================
# Init
# =============================================================================


class InitialBalance(Record):
    address: Address
    amount: Uint128


class TokenInitMsg(WireModel):
    wire_name = "init"

    name: str = Field(min_length=1, max_length=64)
    symbol: str
    decimals: int = Field(ge=0, le=18)
    admin: Optional[Address] = None
    initial_balances: List[InitialBalance] = []

    @field_validator("symbol")
    @classmethod
    def _symbol(cls, value: str) -> str:
        checked(validate_symbol(value))
        return value


# =============================================================================
# Handle
# =============================================================================


class Transfer(WireModel):
    wire_name = "transfer"
    recipient: Address
    amount: Uint128


class Send(WireModel):
    wire_name = "send"
    recipient: Address
    amount: Uint128
    msg: Optional[Dict[str, Any]] = None


class TransferFrom(WireModel):
    wire_name = "transfer_from"
    owner: Address
    recipient: Address
    amount: Uint128


class SendFrom(WireModel):
    wire_name = "send_from"
    owner: Address
    recipient: Address
    amount: Uint128
    msg: Optional[Dict[str, Any]] = None


class IncreaseAllowance(WireModel):
    wire_name = "increase_allowance"
    spender: Address
    amount: Uint128


class DecreaseAllowance(WireModel):
    wire_name = "decrease_allowance"
    spender: Address
    amount: Uint128


class RegisterReceive(WireModel):
    wire_name = "register_receive"
    code_hash: CodeHash


class Mint(WireModel):
    wire_name = "mint"
    recipient: Address
    amount: Uint128


class SetContractStatus(WireModel):
    wire_name = "set_contract_status"
    level: ContractStatusLevel


HANDLE_MSGS = message_table(
    Transfer,
    Send,
    TransferFrom,
    SendFrom,
    IncreaseAllowance,
    DecreaseAllowance,
    RegisterReceive,
    Mint,
    SetContractStatus,
)


class ReceiveMsg(WireModel):
    """Sent by the token to a registered recipient after a send/send_from."""

    wire_name = "receive"
    sender: Address
    from_: Address = Field(alias="from")
    amount: Uint128
    msg: Optional[Dict[str, Any]] = None


# =============================================================================
# Query
# =============================================================================


class TokenInfoQuery(WireModel):
    wire_name = "token_info"


class BalanceQuery(WireModel):
    wire_name = "balance"
    address: Address


class AllowanceQuery(WireModel):
    wire_name = "allowance"
    owner: Address
    spender: Address


QUERY_MSGS = message_table(TokenInfoQuery, BalanceQuery, AllowanceQuery)


# =============================================================================
# Answers
# =============================================================================


class TokenStatusAnswer(WireModel):
    wire_name = "status"
    status: str = "success"


class TokenInfoAnswer(WireModel):
    wire_name = "token_info"
    name: str
    symbol: str
    decimals: int
    total_supply: int


class BalanceAnswer(WireModel):
    wire_name = "balance"
    amount: int


class AllowanceAnswer(WireModel):
    wire_name = "allowance"
    owner: str
    spender: str
    allowance: int


# =============================================================================
# Stored state
# =============================================================================


class TokenConfig(Record):
    name: str
    symbol: str
    decimals: int
    admin: str
    total_supply: int = 0
    status: ContractStatusLevel = ContractStatusLevel.NORMAL_RUN
