"""
Token Module.

SNIP-20 style fungible token used as the settlement medium of auctions.
"""

from sbap.core.token.contract import Snip20Token, allowance_of, balance_of
from sbap.core.token.msg import (
    ContractStatusLevel,
    InitialBalance,
    ReceiveMsg,
    TokenInitMsg,
)

__all__ = [
    "Snip20Token",
    "allowance_of",
    "balance_of",
    "ContractStatusLevel",
    "InitialBalance",
    "ReceiveMsg",
    "TokenInitMsg",
]
