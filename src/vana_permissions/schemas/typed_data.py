"""
EIP-712 typed data structures for the Vana data portability contracts.

Field lists below mirror the Solidity structs the verifying contracts hash.
Names, order and ABI types must match exactly, otherwise the signature is
valid but the contract recovers a different signer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from ..utils import canonical_json


PERMISSIONS_DOMAIN_NAME = "VanaDataPortabilityPermissions"
SERVERS_DOMAIN_NAME = "VanaDataPortabilityServers"
DOMAIN_VERSION = "1"


class OperationKind(str, Enum):
    """Mutating operations that travel as signed typed messages."""
    GRANT = "grant"
    REVOKE = "revoke"
    TRUST_SERVER = "trust_server"
    UNTRUST_SERVER = "untrust_server"
    ADD_AND_TRUST_SERVER = "add_and_trust_server"
    SERVER_FILES_AND_PERMISSION = "server_files_and_permission"


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Used to prevent signature replay across contracts and chains.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


EIP712_DOMAIN_FIELDS: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


# -----------------------------
# Struct layouts per operation
# -----------------------------

PERMISSION_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "granteeId", "type": "uint256"},
    {"name": "grant", "type": "string"},
    {"name": "fileIds", "type": "uint256[]"},
]

REVOKE_PERMISSION_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "permissionId", "type": "uint256"},
]

TRUST_SERVER_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "serverId", "type": "uint256"},
]

UNTRUST_SERVER_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "serverId", "type": "uint256"},
]

ADD_SERVER_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "serverAddress", "type": "address"},
    {"name": "publicKey", "type": "string"},
    {"name": "serverUrl", "type": "string"},
]

SERVER_FILES_AND_PERMISSION_FIELDS = [
    {"name": "nonce", "type": "uint256"},
    {"name": "granteeId", "type": "uint256"},
    {"name": "grant", "type": "string"},
    {"name": "fileUrls", "type": "string[]"},
    {"name": "schemaIds", "type": "uint256[]"},
    {"name": "serverAddress", "type": "address"},
    {"name": "serverUrl", "type": "string"},
    {"name": "serverPublicKey", "type": "string"},
    {"name": "filePermissions", "type": "Permission[][]"},
]

# Nested struct referenced by ServerFilesAndPermission.filePermissions
FILE_PERMISSION_FIELDS = [
    {"name": "account", "type": "address"},
    {"name": "key", "type": "string"},
]


@dataclass(frozen=True)
class MessageLayout:
    """Domain name, primary type and struct definitions for one operation."""
    domain_name: str
    primary_type: str
    structs: Dict[str, List[Dict[str, str]]]


LAYOUTS: Dict[OperationKind, MessageLayout] = {
    OperationKind.GRANT: MessageLayout(
        PERMISSIONS_DOMAIN_NAME, "Permission", {"Permission": PERMISSION_FIELDS}
    ),
    OperationKind.REVOKE: MessageLayout(
        PERMISSIONS_DOMAIN_NAME, "RevokePermission", {"RevokePermission": REVOKE_PERMISSION_FIELDS}
    ),
    OperationKind.TRUST_SERVER: MessageLayout(
        SERVERS_DOMAIN_NAME, "TrustServer", {"TrustServer": TRUST_SERVER_FIELDS}
    ),
    OperationKind.UNTRUST_SERVER: MessageLayout(
        SERVERS_DOMAIN_NAME, "UntrustServer", {"UntrustServer": UNTRUST_SERVER_FIELDS}
    ),
    OperationKind.ADD_AND_TRUST_SERVER: MessageLayout(
        SERVERS_DOMAIN_NAME, "AddServer", {"AddServer": ADD_SERVER_FIELDS}
    ),
    OperationKind.SERVER_FILES_AND_PERMISSION: MessageLayout(
        PERMISSIONS_DOMAIN_NAME,
        "ServerFilesAndPermission",
        {
            "ServerFilesAndPermission": SERVER_FILES_AND_PERMISSION_FIELDS,
            "Permission": FILE_PERMISSION_FIELDS,
        },
    ),
}


# -----------------------------
# EIP-712 Typed Data Wrapper
# -----------------------------

@dataclass
class TypedMessage:
    """
    A complete EIP-712 payload for one operation.

    ``to_dict()`` is directly consumable by ``eth_account`` signing
    (``full_message=``) and by ``eth_signTypedData_v4`` wallets.

    Attributes:
        kind: Operation this message authorizes.
        domain: Domain separator of the verifying contract.
        primary_type: Name of the top-level struct.
        message: Struct values keyed by field name.
        types: Struct definitions, including ``EIP712Domain``.
    """
    kind: OperationKind
    domain: EIP712Domain
    primary_type: str
    message: Dict[str, Any]
    types: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        kind: OperationKind,
        *,
        chain_id: int,
        verifying_contract: str,
        message: Dict[str, Any],
    ) -> "TypedMessage":
        layout = LAYOUTS[kind]
        types = {"EIP712Domain": EIP712_DOMAIN_FIELDS}
        types.update(layout.structs)
        domain = EIP712Domain(
            name=layout.domain_name,
            version=DOMAIN_VERSION,
            chainId=chain_id,
            verifyingContract=verifying_contract,
        )
        return cls(kind=kind, domain=domain, primary_type=layout.primary_type, message=message, types=types)

    @property
    def nonce(self) -> int:
        return int(self.message["nonce"])

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the typed data into a dict compatible with EIP-712 signing.
        """
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message,
        }

    def canonical(self) -> str:
        """Stable serialization used as the signature cache key."""
        return canonical_json(self.to_dict())
