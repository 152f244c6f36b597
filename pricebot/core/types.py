"""Core data types for the price alert bot."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_THRESHOLD = 5.0


class TrackedPair(BaseModel):
    """A base/quote pair published to the price stream."""

    model_config = ConfigDict(frozen=True)

    pair_id: str = Field(description="Stable pair identifier, e.g. ETH-USD")
    base_token: str = Field(description="Base token symbol")
    quote_token: str = Field(description="Quote token symbol")
    base_address: str = Field(description="Base token address used in the data key")
    quote_address: str = Field(description="Quote token address used in the data key")
    source: str = Field(default="Chainlink", description="Upstream price provider")
    feed: str | None = Field(default=None, description="Chainlink aggregator address")
    network: str | None = Field(default=None, description="Network hosting the feed")


class Metric(BaseModel):
    """Point-in-time price observation for one tracked pair."""

    model_config = ConfigDict(frozen=True)

    pair_id: str = Field(description="Pair identifier")
    base_token: str = Field(description="Base token symbol")
    quote_token: str = Field(description="Quote token symbol")
    source: str = Field(description="Upstream data provider")
    price: int = Field(description="Raw price scaled by 10**decimals")
    decimals: int = Field(default=8, ge=0, description="Feed decimals")
    timestamp: int = Field(description="Observation time, seconds since epoch")
    price_delta: int = Field(default=0, description="Raw upstream price delta")
    price_delta_percent: float = Field(
        default=0.0, description="Upstream delta percentage (deltaBps / 100)"
    )
    price_feed: str | None = Field(default=None, description="Price feed address")
    base_address: str | None = Field(default=None, description="Base token address")
    quote_address: str | None = Field(
        default=None, description="Quote token address"
    )

    @property
    def scale(self) -> int:
        return 10**self.decimals

    @property
    def price_value(self) -> float:
        """Price as a decimal number."""
        return self.price / self.scale

    @property
    def price_delta_value(self) -> float:
        """Upstream delta as a decimal number."""
        return self.price_delta / self.scale


class Subscription(BaseModel):
    """A subscriber's alert preferences."""

    pairs: list[str] = Field(
        default_factory=list, description="Pair ids of interest; empty means all"
    )
    threshold: float = Field(
        default=DEFAULT_THRESHOLD,
        gt=0,
        le=100,
        description="Minimum absolute percent change that triggers an alert",
    )

    @field_validator("pairs")
    @classmethod
    def _dedupe_pairs(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def matches(self, pair_id: str) -> bool:
        """Return True if this subscription follows the given pair."""
        return not self.pairs or pair_id in self.pairs

    def should_alert(self, pair_id: str, change: float) -> bool:
        """Return True if a change on pair_id warrants a notification."""
        return self.matches(pair_id) and abs(change) >= self.threshold


class PairFetchError(BaseModel):
    """A failed read for one pair."""

    pair_id: str = Field(description="Pair that failed")
    error: str = Field(description="Error description")


class FetchResult(BaseModel):
    """Partial result of a batch fetch."""

    metrics: list[Metric] = Field(default_factory=list)
    errors: list[PairFetchError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class CycleState(str, Enum):
    """Poll loop state."""

    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    DISPATCHING = "dispatching"
