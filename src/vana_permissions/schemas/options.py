"""
Caller-facing option models: gas pricing for direct submissions and
polling behaviour for relayer operations.
"""

from typing import Any, Callable, Dict, Literal, Optional, Union

from typing_extensions import Annotated
from pydantic import ConfigDict, Field, model_validator

from .bases import CanonicalModel, OperationStatus


# ---------------------------------------------------------------------------
# Gas pricing variants
# ---------------------------------------------------------------------------

class Eip1559Pricing(CanonicalModel):
    """EIP-1559 fee pair (wei)."""
    kind: Literal["eip1559"] = "eip1559"
    max_fee_per_gas: int = Field(..., ge=0)
    max_priority_fee_per_gas: int = Field(..., ge=0)

    def to_tx_params(self) -> Dict[str, int]:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


class LegacyPricing(CanonicalModel):
    """Pre-London single gas price (wei)."""
    kind: Literal["legacy"] = "legacy"
    gas_price: int = Field(..., ge=0)

    def to_tx_params(self) -> Dict[str, int]:
        return {"gasPrice": self.gas_price}


class UnspecifiedPricing(CanonicalModel):
    """Let the node or wallet pick fees."""
    kind: Literal["unspecified"] = "unspecified"

    def to_tx_params(self) -> Dict[str, int]:
        return {}


GasPricingStrategy = Annotated[
    Union[Eip1559Pricing, LegacyPricing, UnspecifiedPricing],
    Field(discriminator="kind"),
]


class TransactionOptions(CanonicalModel):
    """
    Options for direct (self-paid) submissions.

    Ignored on the relayer path: the relayer chooses gas and nonce for the
    transaction it pays for.

    Accepts either a ``gas_pricing`` variant or the flat keys
    ``gas_price`` / ``max_fee_per_gas`` / ``max_priority_fee_per_gas``.
    Mixing the legacy price with the EIP-1559 pair is rejected.
    """
    gas_limit: Optional[int] = Field(default=None, ge=0)
    gas_pricing: GasPricingStrategy = Field(default_factory=UnspecifiedPricing)
    nonce: Optional[int] = Field(default=None, ge=0, description="Transaction nonce override")

    @model_validator(mode="before")
    @classmethod
    def _collapse_flat_pricing(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        gas_price = data.pop("gas_price", None)
        max_fee = data.pop("max_fee_per_gas", None)
        max_priority = data.pop("max_priority_fee_per_gas", None)
        if gas_price is None and max_fee is None and max_priority is None:
            return data
        if "gas_pricing" in data:
            raise ValueError("Pass either gas_pricing or flat gas price fields, not both")
        if gas_price is not None and (max_fee is not None or max_priority is not None):
            raise ValueError("gas_price is mutually exclusive with max_fee_per_gas/max_priority_fee_per_gas")
        if gas_price is not None:
            data["gas_pricing"] = {"kind": "legacy", "gas_price": gas_price}
        else:
            if max_fee is None or max_priority is None:
                raise ValueError("EIP-1559 pricing needs both max_fee_per_gas and max_priority_fee_per_gas")
            data["gas_pricing"] = {
                "kind": "eip1559",
                "max_fee_per_gas": max_fee,
                "max_priority_fee_per_gas": max_priority,
            }
        return data

    def to_tx_params(self) -> Dict[str, int]:
        """Translate to web3 transaction dict keys."""
        params = dict(self.gas_pricing.to_tx_params())
        if self.gas_limit is not None:
            params["gas"] = self.gas_limit
        if self.nonce is not None:
            params["nonce"] = self.nonce
        return params

    def is_empty(self) -> bool:
        return not self.to_tx_params()


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

StatusCallback = Callable[[OperationStatus, Dict[str, Any]], Any]


class PollingOptions(CanonicalModel):
    """
    Backoff schedule and budget for relayer status polling.

    Attributes:
        initial_interval: First delay between ticks, seconds.
        max_interval: Upper bound for the delay, seconds.
        multiplier: Growth factor applied after each tick.
        jitter: Fractional random spread applied to each delay (0.2 = ±20%).
        timeout: Total polling budget, seconds.
        max_consecutive_errors: Transient status-check failures tolerated in a row.
        on_status_update: Optional callback fired on every tick.
    """
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    initial_interval: float = Field(default=1.0, gt=0)
    max_interval: float = Field(default=10.0, gt=0)
    multiplier: float = Field(default=1.5, ge=1.0)
    jitter: float = Field(default=0.2, ge=0, le=1)
    timeout: float = Field(default=300.0, gt=0)
    max_consecutive_errors: int = Field(default=5, ge=0)
    on_status_update: Optional[StatusCallback] = Field(default=None, exclude=True)
