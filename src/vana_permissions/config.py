"""
Vana Chain and SDK Configuration

Provides chain metadata for the supported Vana networks, contract address
resolution, and the ``SDKConfig`` model consumed by the permissions
controller. Environment variables are loaded through ``python-dotenv`` so a
local ``.env`` file works out of the box.
"""

import os
from typing import Dict, Optional

import dotenv
from pydantic import BaseModel, Field

from .engine.exceptions import ContractNotFoundError, InvalidConfigurationError
from .schemas.options import PollingOptions

dotenv.load_dotenv()


# Contract names used throughout the package
DATA_PORTABILITY_PERMISSIONS = "DataPortabilityPermissions"
DATA_PORTABILITY_SERVERS = "DataPortabilityServers"
DATA_PORTABILITY_GRANTEES = "DataPortabilityGrantees"
MULTICALL3 = "Multicall3"

MULTICALL3_ADDRESS = "0xD8d2dFca27E8797fd779F8547166A2d3B29d360E"


class ChainConfig(BaseModel):
    """Vana network configuration."""
    chain_id: int
    name: str
    rpc_url: str = Field(..., description="Public JSON-RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer URL")
    contracts: Dict[str, str] = Field(default_factory=dict, description="Known contract addresses by name")


# Only contracts with a published deployment are listed; the servers and
# grantees registries must be supplied through SDKConfig.contract_addresses.
_VANA_CHAINS_DATA: Dict[int, Dict] = {
    1480: {
        "name": "Vana Mainnet",
        "rpc_url": "https://rpc.vana.org",
        "explorer_url": "https://vanascan.io",
        "contracts": {
            DATA_PORTABILITY_PERMISSIONS: "0xD54523048AdD05b4d734aFaE7C68324Ebb7373eF",
            MULTICALL3: MULTICALL3_ADDRESS,
        },
    },
    14800: {
        "name": "Vana Moksha Testnet",
        "rpc_url": "https://rpc.moksha.vana.org",
        "explorer_url": "https://moksha.vanascan.io",
        "contracts": {
            DATA_PORTABILITY_PERMISSIONS: "0xD54523048AdD05b4d734aFaE7C68324Ebb7373eF",
            MULTICALL3: MULTICALL3_ADDRESS,
        },
    },
}


def get_chain_config(chain_id: int) -> ChainConfig:
    """
    Return the configuration for a supported Vana chain.

    Raises:
        InvalidConfigurationError: If the chain id is not supported.
    """
    data = _VANA_CHAINS_DATA.get(chain_id)
    if data is None:
        supported = ", ".join(str(c) for c in sorted(_VANA_CHAINS_DATA))
        raise InvalidConfigurationError(
            f"Unsupported chain_id: {chain_id}. Supported chains: {supported}"
        )
    return ChainConfig(chain_id=chain_id, **data)


def get_contract_address(
    chain_id: int,
    contract_name: str,
    overrides: Optional[Dict[str, str]] = None,
) -> str:
    """
    Resolve a contract address, preferring caller overrides.

    Args:
        chain_id: Vana chain id.
        contract_name: Contract name (e.g. ``"DataPortabilityPermissions"``).
        overrides: Optional ``{name: address}`` mapping that takes precedence.

    Raises:
        ContractNotFoundError: If no address is known for the pair.
    """
    if overrides and contract_name in overrides:
        return overrides[contract_name]
    data = _VANA_CHAINS_DATA.get(chain_id)
    address = (data or {}).get("contracts", {}).get(contract_name)
    if address is None:
        raise ContractNotFoundError(contract_name, chain_id)
    return address


class SDKConfig(BaseModel):
    """
    Runtime configuration for a ``PermissionsController``.

    Attributes:
        chain_id: Target Vana chain (1480 mainnet, 14800 Moksha).
        rpc_url: JSON-RPC endpoint; defaults to the chain's public RPC.
        relayer_url: Base URL of a relayer service; enables gasless submission.
        ipfs_upload_url: Direct blob store endpoint used when no relayer is set.
        ipfs_api_key: Bearer token for the blob store, if it needs one.
        request_timeout: HTTP timeout in seconds for RPC, relayer and storage.
        signature_cache_ttl: Lifetime of cached signatures in seconds.
        contract_addresses: Per-name address overrides.
        polling: Default relayer polling behaviour.
    """
    chain_id: int = 14800
    rpc_url: Optional[str] = None
    relayer_url: Optional[str] = None
    ipfs_upload_url: Optional[str] = None
    ipfs_api_key: Optional[str] = None
    request_timeout: float = 30.0
    signature_cache_ttl: float = 7200.0
    contract_addresses: Dict[str, str] = Field(default_factory=dict)
    polling: PollingOptions = Field(default_factory=PollingOptions)

    def resolved_rpc_url(self) -> str:
        return self.rpc_url or get_chain_config(self.chain_id).rpc_url

    def contract_address(self, contract_name: str) -> str:
        return get_contract_address(self.chain_id, contract_name, self.contract_addresses)


def get_private_key_from_env() -> Optional[str]:
    """
    Load the signing key from the ``VANA_PRIVATE_KEY`` environment variable.

    Returns:
        Optional[str]: The key, or None if the variable is unset or empty.
    """
    return os.getenv("VANA_PRIVATE_KEY") or None


def load_config_from_env() -> SDKConfig:
    """
    Build an ``SDKConfig`` from ``VANA_*`` environment variables.

    Reads ``VANA_CHAIN_ID``, ``VANA_RPC_URL``, ``VANA_RELAYER_URL``,
    ``VANA_IPFS_UPLOAD_URL`` and ``VANA_IPFS_API_KEY``. Unset values fall
    back to ``SDKConfig`` defaults.

    Raises:
        InvalidConfigurationError: If ``VANA_CHAIN_ID`` is not an integer or
            names an unsupported chain.
    """
    raw_chain_id = os.getenv("VANA_CHAIN_ID", "14800")
    try:
        chain_id = int(raw_chain_id)
    except ValueError as e:
        raise InvalidConfigurationError(f"VANA_CHAIN_ID must be an integer, got {raw_chain_id!r}") from e
    get_chain_config(chain_id)

    return SDKConfig(
        chain_id=chain_id,
        rpc_url=os.getenv("VANA_RPC_URL") or None,
        relayer_url=os.getenv("VANA_RELAYER_URL") or None,
        ipfs_upload_url=os.getenv("VANA_IPFS_UPLOAD_URL") or None,
        ipfs_api_key=os.getenv("VANA_IPFS_API_KEY") or None,
    )
