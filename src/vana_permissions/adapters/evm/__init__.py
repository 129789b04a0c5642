from .ledger import Web3LedgerClient
from .signer import LocalAccountSigner
from .abis import get_permissions_abi, get_servers_abi, get_grantees_abi, get_multicall3_abi

__all__ = [
    "Web3LedgerClient",
    "LocalAccountSigner",
    "get_permissions_abi",
    "get_servers_abi",
    "get_grantees_abi",
    "get_multicall3_abi",
]
