"""
Base Schema Models

Defines the alias-aware base model every schema in the package inherits
from, plus the shared status enumerations.

Core Classes:
    - CanonicalModel: Pydantic base model accepting field names or aliases
    - OperationStatus: Relayer-side lifecycle states reported while polling
    - NonceFamily: The two independent replay-counter domains

Dependencies:
    - pydantic: For data validation and serialization
"""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class CanonicalModel(BaseModel):
    """
    Pydantic base model that populates by field name or alias and dumps
    with aliases, so wire payloads keep their camelCase keys.

    Example:
        class MyModel(CanonicalModel):
            operation_id: str = Field(alias="operationId")

        MyModel(operation_id="op-1").to_dict()
        # {'operationId': 'op-1'}
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields, using aliases.
        """
        return self.model_dump(by_alias=True)


class OperationStatus(str, Enum):
    """
    Status values a relayer reports for an asynchronous operation.

    ``CONFIRMED`` and ``FAILED`` are terminal; the rest keep the poller
    ticking.
    """
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.CONFIRMED, OperationStatus.FAILED)


class NonceFamily(str, Enum):
    """Replay-counter domains; each has its own contract and counter."""
    PERMISSIONS = "permissions"
    SERVERS = "servers"
