from .bases import LedgerClient, SigningCapability, BlobStore, ContractCall, CallResult
from .storage import IpfsBlobStore, RelayerBlobStore
from .evm import Web3LedgerClient, LocalAccountSigner

__all__ = [
    "LedgerClient",
    "SigningCapability",
    "BlobStore",
    "ContractCall",
    "CallResult",
    "IpfsBlobStore",
    "RelayerBlobStore",
    "Web3LedgerClient",
    "LocalAccountSigner",
]
