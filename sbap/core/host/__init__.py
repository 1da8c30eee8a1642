"""
Contract Host Module.

Provides the execution environment contracts run in:
- Chain: code table, instances, clock, atomic dispatch of messages
- Storage backends with nested savepoints (memory, SQLite)
- Wire models and handler responses
"""

from sbap.core.host.chain import Answer, Chain, CodeInfo, FailedMessage, TxResult
from sbap.core.host.contract import Contract, Deps, InstanceInfo, Querier
from sbap.core.host.env import BlockInfo, ContractInfo, Env, MessageInfo
from sbap.core.host.messages import (
    Address,
    CodeHash,
    Record,
    Timestamp,
    Uint128,
    WireModel,
    as_wire,
    decode,
    message_table,
    parse_wire,
)
from sbap.core.host.response import (
    ExecuteMsg,
    InstantiateMsg,
    Reply,
    ReplyOn,
    Response,
    SubMsg,
    execute,
    on_error,
)
from sbap.core.host.sqlite_backend import SQLiteBackend
from sbap.core.host.storage import KVBackend, MemoryBackend, ReadonlyStorage, Storage

__all__ = [
    "Answer",
    "Chain",
    "CodeInfo",
    "FailedMessage",
    "TxResult",
    "Contract",
    "Deps",
    "InstanceInfo",
    "Querier",
    "BlockInfo",
    "ContractInfo",
    "Env",
    "MessageInfo",
    "Address",
    "CodeHash",
    "Record",
    "Timestamp",
    "Uint128",
    "WireModel",
    "as_wire",
    "decode",
    "message_table",
    "parse_wire",
    "ExecuteMsg",
    "InstantiateMsg",
    "Reply",
    "ReplyOn",
    "Response",
    "SubMsg",
    "execute",
    "on_error",
    "SQLiteBackend",
    "KVBackend",
    "MemoryBackend",
    "ReadonlyStorage",
    "Storage",
]
