"""
Shared helpers: the package logger and small encoding utilities used by the
signer, dispatcher and grant file builder.
"""

import json
import logging
from typing import Any, Optional


from .engine.exceptions import SignatureError


logger = logging.getLogger("vana_permissions")
logger.addHandler(logging.NullHandler())


def setup_logger(level: int = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Library code never configures handlers itself; applications and demos
    call this once at startup. Calling it again only updates the level.

    Args:
        level: Logging level for the package logger.
        fmt: Optional format string for the stream handler.

    Returns:
        The configured ``vana_permissions`` logger.
    """
    logger.setLevel(level)
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.NullHandler)
               for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt or "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        logger.addHandler(handler)
    return logger


def canonical_json(data: Any) -> str:
    """Serialize with sorted keys and no whitespace."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def format_signature_for_contract(signature: str) -> str:
    """
    Normalize a 65-byte ECDSA signature so ``v`` is 27 or 28.

    Some signers return ``v`` as 0/1 (EIP-155 style recovery id); the
    permission contracts recover with ``ecrecover`` and expect 27/28.

    Args:
        signature: 0x-prefixed hex signature (r || s || v).

    Returns:
        0x-prefixed hex signature with adjusted recovery byte.

    Raises:
        SignatureError: If the signature is not 65 bytes of hex.
    """
    raw = signature[2:] if signature.startswith("0x") else signature
    if len(raw) != 130:
        raise SignatureError(f"Invalid signature length: expected 65 bytes, got {len(raw) // 2}")
    try:
        v = int(raw[128:130], 16)
    except ValueError as e:
        raise SignatureError("Signature is not valid hex", e) from e
    if v < 27:
        v += 27
    return "0x" + raw[:128] + format(v, "02x")
