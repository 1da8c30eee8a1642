"""Execution environment handed to every contract handler."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BlockInfo:
    height: int
    time: int  # Seconds since epoch
    chain_id: str


@dataclass(frozen=True)
class MessageInfo:
    sender: str  # Empty for queries


@dataclass(frozen=True)
class ContractInfo:
    address: str
    code_hash: str


@dataclass(frozen=True)
class Env:
    block: BlockInfo
    message: MessageInfo
    contract: ContractInfo
