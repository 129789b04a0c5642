"""
Vana Data Portability Smart Contract ABI Module

Trimmed ABI definitions for the contracts the permissions engine touches:
DataPortabilityPermissions, DataPortabilityServers, DataPortabilityGrantees
and Multicall3. Only the functions and events used by this package are
listed.

Usage:
    from vana_permissions.adapters.evm.abis import (
        get_permissions_abi,
        get_servers_abi,
        get_grantees_abi,
        get_multicall3_abi,
    )

    contract = web3.eth.contract(address=permissions_address, abi=get_permissions_abi())
    nonce = await contract.functions.userNonce(user).call()
"""

from typing import Any, Dict, List


def _fn(name: str, inputs: List[Dict[str, Any]], outputs: List[Dict[str, Any]], mutability: str = "view") -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": mutability,
        "inputs": inputs,
        "outputs": outputs,
    }


def _uint(name: str = "") -> Dict[str, str]:
    return {"name": name, "type": "uint256"}


def _address(name: str = "") -> Dict[str, str]:
    return {"name": name, "type": "address"}


def _string(name: str = "") -> Dict[str, str]:
    return {"name": name, "type": "string"}


_SIGNATURE = {"name": "signature", "type": "bytes"}

_USER_NONCE = _fn("userNonce", [_address("user")], [_uint()])


def get_permissions_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for DataPortabilityPermissions.

    Returns:
        List[Dict[str, Any]]: Nonce, permission writes, permission reads and
        the ``PermissionAdded`` / ``PermissionRevoked`` events.
    """
    permission_input = {
        "name": "permission",
        "type": "tuple",
        "components": [_uint("nonce"), _uint("granteeId"), _string("grant"), {"name": "fileIds", "type": "uint256[]"}],
    }
    revoke_input = {
        "name": "revokePermissionInput",
        "type": "tuple",
        "components": [_uint("nonce"), _uint("permissionId")],
    }
    server_files_input = {
        "name": "serverFilesAndPermissionInput",
        "type": "tuple",
        "components": [
            _uint("nonce"),
            _uint("granteeId"),
            _string("grant"),
            {"name": "fileUrls", "type": "string[]"},
            {"name": "schemaIds", "type": "uint256[]"},
            _address("serverAddress"),
            _string("serverUrl"),
            _string("serverPublicKey"),
            {
                "name": "filePermissions",
                "type": "tuple[][]",
                "components": [_address("account"), _string("key")],
            },
        ],
    }
    permission_info = {
        "name": "",
        "type": "tuple",
        "components": [
            _uint("id"),
            _address("grantor"),
            _uint("nonce"),
            _uint("granteeId"),
            _string("grant"),
            _uint("startBlock"),
            _uint("endBlock"),
            {"name": "fileIds", "type": "uint256[]"},
        ],
    }
    return [
        _USER_NONCE,
        _fn("addPermission", [permission_input, _SIGNATURE], [_uint()], "nonpayable"),
        _fn("revokePermissionWithSignature", [revoke_input, _SIGNATURE], [], "nonpayable"),
        _fn("addServerFilesAndPermissions", [server_files_input, _SIGNATURE], [_uint()], "nonpayable"),
        _fn("permissions", [_uint("permissionId")], [permission_info]),
        _fn("userPermissionIdsLength", [_address("user")], [_uint()]),
        _fn("userPermissionIdsAt", [_address("user"), _uint("index")], [_uint()]),
        {
            "name": "PermissionAdded",
            "type": "event",
            "anonymous": False,
            "inputs": [
                {"indexed": True, "name": "permissionId", "type": "uint256"},
                {"indexed": True, "name": "user", "type": "address"},
                {"indexed": False, "name": "grant", "type": "string"},
                {"indexed": False, "name": "fileIds", "type": "uint256[]"},
            ],
        },
        {
            "name": "PermissionRevoked",
            "type": "event",
            "anonymous": False,
            "inputs": [{"indexed": True, "name": "permissionId", "type": "uint256"}],
        },
        {
            "name": "ServerUrlMismatch",
            "type": "error",
            "inputs": [_string("existingUrl"), _string("providedUrl")],
        },
    ]


def get_servers_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for DataPortabilityServers.

    Returns:
        List[Dict[str, Any]]: Nonce, trust writes, server reads and the
        ``ServerTrusted`` / ``ServerUntrusted`` events.
    """
    trust_input = {
        "name": "trustServerInput",
        "type": "tuple",
        "components": [_uint("nonce"), _uint("serverId")],
    }
    untrust_input = {
        "name": "untrustServerInput",
        "type": "tuple",
        "components": [_uint("nonce"), _uint("serverId")],
    }
    add_server_input = {
        "name": "addServerInput",
        "type": "tuple",
        "components": [_uint("nonce"), _address("serverAddress"), _string("publicKey"), _string("serverUrl")],
    }
    server_info = {
        "name": "",
        "type": "tuple",
        "components": [_uint("id"), _address("owner"), _address("serverAddress"), _string("publicKey"), _string("url")],
    }
    return [
        _USER_NONCE,
        _fn("trustServerWithSignature", [trust_input, _SIGNATURE], [], "nonpayable"),
        _fn("untrustServerWithSignature", [untrust_input, _SIGNATURE], [], "nonpayable"),
        _fn("addAndTrustServerWithSignature", [add_server_input, _SIGNATURE], [], "nonpayable"),
        _fn("servers", [_uint("serverId")], [server_info]),
        _fn("userServerIdsLength", [_address("user")], [_uint()]),
        _fn("userServerIdsAt", [_address("user"), _uint("index")], [_uint()]),
        {
            "name": "ServerTrusted",
            "type": "event",
            "anonymous": False,
            "inputs": [
                {"indexed": True, "name": "user", "type": "address"},
                {"indexed": True, "name": "serverId", "type": "uint256"},
                {"indexed": False, "name": "serverUrl", "type": "string"},
            ],
        },
        {
            "name": "ServerUntrusted",
            "type": "event",
            "anonymous": False,
            "inputs": [
                {"indexed": True, "name": "user", "type": "address"},
                {"indexed": True, "name": "serverId", "type": "uint256"},
            ],
        },
        {
            "name": "ServerUrlMismatch",
            "type": "error",
            "inputs": [_string("existingUrl"), _string("providedUrl")],
        },
    ]


def get_grantees_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for DataPortabilityGrantees.

    Returns:
        List[Dict[str, Any]]: Grantee lookup and enumeration functions.
    """
    grantee_info = {
        "name": "",
        "type": "tuple",
        "components": [
            _address("owner"),
            _address("granteeAddress"),
            _string("publicKey"),
            {"name": "permissionIds", "type": "uint256[]"},
        ],
    }
    return [
        _fn("granteeAddressToId", [_address("granteeAddress")], [_uint()]),
        _fn("granteeByAddress", [_address("granteeAddress")], [grantee_info]),
        _fn("grantees", [_uint("granteeId")], [grantee_info]),
        _fn("granteesCount", [], [_uint()]),
    ]


def get_multicall3_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for Multicall3 ``aggregate3``.

    Returns:
        List[Dict[str, Any]]: ABI for ``aggregate3((address,bool,bytes)[])``.
    """
    return [
        _fn(
            "aggregate3",
            [{
                "name": "calls",
                "type": "tuple[]",
                "components": [
                    _address("target"),
                    {"name": "allowFailure", "type": "bool"},
                    {"name": "callData", "type": "bytes"},
                ],
            }],
            [{
                "name": "returnData",
                "type": "tuple[]",
                "components": [
                    {"name": "success", "type": "bool"},
                    {"name": "returnData", "type": "bytes"},
                ],
            }],
            "payable",
        )
    ]
