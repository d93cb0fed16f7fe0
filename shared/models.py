"""
Service descriptor models shared by the introspection and reconciler services.

A descriptor is the asset registry's view of an upstream web service: who
owns it, which ledger contract and token meter access to it, how usage is
charged, and which endpoints are reachable without a token.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChargeType(str, Enum):
    """How credits are computed for a call."""
    FIXED = "fixed"
    DYNAMIC = "dynamic"


class SubscriptionType(str, Enum):
    """Whether a subscription is metered by credits or by access duration."""
    CREDITS = "credits"
    TIME = "time"


class _DescriptorModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore"
    )


class AccessControlReference(_DescriptorModel):
    """Ledger contract and token id that meter access to a service."""
    contract_address: str = Field(..., min_length=1, description="Credits contract address")
    token_id: str = Field(..., min_length=1, description="Subscription token id")
    min_credits_required: Optional[int] = Field(
        None, ge=0, description="Balance required to be let through; 1 when unset"
    )


class ChargePolicy(_DescriptorModel):
    """Charging rules for a service or subscription."""
    charge_type: ChargeType = Field(ChargeType.FIXED, description="Fixed or dynamic charging")
    subscription_type: SubscriptionType = Field(SubscriptionType.CREDITS, description="Credits or time based")
    min_credits_to_charge: Optional[int] = Field(None, ge=0, description="Credits charged per call, or floor when dynamic")
    max_credits_to_charge: Optional[int] = Field(None, ge=0, description="Ceiling when dynamic")


class ServiceDescriptor(_DescriptorModel):
    """Asset metadata resolved from the registry."""
    id: str = Field(..., min_length=1, description="Asset identifier")
    owner: str = Field(..., min_length=1, description="Owner/creator identity")
    access_control: Optional[AccessControlReference] = None
    charge_policy: ChargePolicy = Field(default_factory=ChargePolicy)
    open_endpoints: List[str] = Field(default_factory=list, description="Endpoints reachable without a token")

    @classmethod
    def parse(cls, raw: Dict[str, Any]) -> "ServiceDescriptor":
        """Validate a raw registry payload."""
        return cls.model_validate(raw)

    def require_access_control(self) -> AccessControlReference:
        if self.access_control is None:
            raise ValueError(f"Asset {self.id} declares no access control reference")
        return self.access_control

    @property
    def min_credits_required(self) -> int:
        if self.access_control is None or self.access_control.min_credits_required is None:
            return 1
        return self.access_control.min_credits_required


def subscription_id(prefix: str, token_id: str) -> str:
    """Build the synthetic identifier of a subscription token."""
    return f"{prefix}:{token_id}"


def same_identity(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two account identities; addresses are case-insensitive."""
    if not a or not b:
        return False
    return a.lower() == b.lower()
