"""
Relayer Request / Response Types (Discriminated Unions)

The relayer is reached through one callback, ``relay(request) -> response``.
Both directions are closed tagged unions keyed on ``type``; pydantic selects
the concrete model from the tag and rejects unknown tags.

Requests:
    - ``signed``: the caller already signed a typed message; relayer submits it
    - ``direct``: unsigned parameters; relayer builds and pays
    - ``status_check``: poll an asynchronous operation

Responses:
    - ``submitted``: transaction hash available immediately
    - ``confirmed``: hash plus the transaction is already mined
    - ``signed``: legacy alias of ``submitted``
    - ``pending``: opaque operation id, poll until terminal
    - ``error``: relayer-reported failure (terminal)
    - ``direct``: result of a ``direct`` request, or queue info while polling
"""

from typing import Any, Dict, Literal, Optional, Union

from typing_extensions import Annotated
from pydantic import Field, TypeAdapter

from .bases import CanonicalModel


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class SignedRelayerRequest(CanonicalModel):
    """A typed message plus its signature, ready for relayed submission."""
    type: Literal["signed"] = "signed"
    operation: str = Field(..., description="Contract function to call, e.g. submitAddPermission")
    typed_data: Dict[str, Any] = Field(..., alias="typedData")
    signature: str
    expected_user_address: Optional[str] = Field(default=None, alias="expectedUserAddress")


class DirectRelayerRequest(CanonicalModel):
    """Unsigned operation parameters; the relayer constructs the transaction."""
    type: Literal["direct"] = "direct"
    operation: str
    params: Dict[str, Any] = Field(default_factory=dict)


class StatusCheckRequest(CanonicalModel):
    type: Literal["status_check"] = "status_check"
    operation_id: str = Field(..., alias="operationId")


RelayerRequest = Annotated[
    Union[SignedRelayerRequest, DirectRelayerRequest, StatusCheckRequest],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class SubmittedResponse(CanonicalModel):
    type: Literal["submitted"] = "submitted"
    hash: str


class ConfirmedResponse(CanonicalModel):
    type: Literal["confirmed"] = "confirmed"
    hash: str
    receipt: Optional[Dict[str, Any]] = None


class LegacySignedResponse(CanonicalModel):
    """Older relayers answer ``{"type": "signed", "hash": ...}``; same meaning as submitted."""
    type: Literal["signed"] = "signed"
    hash: str


class PendingResponse(CanonicalModel):
    type: Literal["pending"] = "pending"
    operation_id: str = Field(..., alias="operationId")


class ErrorResponse(CanonicalModel):
    type: Literal["error"] = "error"
    error: str


class DirectResponse(CanonicalModel):
    type: Literal["direct"] = "direct"
    result: Any = None


RelayerResponse = Annotated[
    Union[
        SubmittedResponse,
        ConfirmedResponse,
        LegacySignedResponse,
        PendingResponse,
        ErrorResponse,
        DirectResponse,
    ],
    Field(discriminator="type"),
]

_RESPONSE_TYPES = (
    SubmittedResponse,
    ConfirmedResponse,
    LegacySignedResponse,
    PendingResponse,
    ErrorResponse,
    DirectResponse,
)

RELAYER_RESPONSE_ADAPTER: TypeAdapter = TypeAdapter(RelayerResponse)


def parse_relayer_response(payload: Any) -> Any:
    """
    Validate a raw relayer payload into its response variant.

    Already-parsed variants are returned unchanged.

    Raises:
        pydantic.ValidationError: On unknown tags or missing fields.
    """
    if isinstance(payload, _RESPONSE_TYPES):
        return payload
    return RELAYER_RESPONSE_ADAPTER.validate_python(payload)


def resolve_submitted_hash(response: Any) -> Optional[str]:
    """Return the hash for variants that carry one immediately, else None."""
    if isinstance(response, (SubmittedResponse, ConfirmedResponse, LegacySignedResponse)):
        return response.hash
    return None
