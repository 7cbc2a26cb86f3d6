"""Pydantic models for cached gameplay statistics."""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat

# Integer columns are 64-bit signed in storage
Int64 = Annotated[int, Field(ge=-(2**63), le=2**63 - 1)]


class ValueKind(str, Enum):
    """Value kind of a statistic, stored verbatim as the statistic's type tag."""

    INT = "INT"
    FLOAT = "FLOAT"
    AVGRATE = "AVGRATE"


class IntValues(BaseModel):
    """Integer statistic payload."""

    kind: Literal["INT"] = "INT"
    value: Int64 = Field(default=0, description="Current value")
    default_value: Int64 | None = Field(default=None, description="Value after a reset")
    min_value: Int64 | None = Field(default=None, description="Lower bound")
    max_value: Int64 | None = Field(default=None, description="Upper bound")
    max_change: Int64 | None = Field(
        default=None, description="Largest allowed change in a single update"
    )

    model_config = ConfigDict(extra="ignore")


class FloatValues(BaseModel):
    """Floating-point statistic payload.

    NaN and infinities are rejected: SQLite stores NaN as NULL, so they
    would not survive a round trip.
    """

    kind: Literal["FLOAT"] = "FLOAT"
    value: float = Field(default=0.0, description="Current value")
    default_value: float | None = Field(default=None, description="Value after a reset")
    min_value: float | None = Field(default=None, description="Lower bound")
    max_value: float | None = Field(default=None, description="Upper bound")
    max_change: float | None = Field(
        default=None, description="Largest allowed change in a single update"
    )

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)


class AvgRateValues(FloatValues):
    """Average-rate statistic payload.

    Same shape as FloatValues; the averaging window lives on the Statistic.
    """

    kind: Literal["AVGRATE"] = "AVGRATE"


StatValues = Annotated[
    Union[IntValues, FloatValues, AvgRateValues], Field(discriminator="kind")
]


class Statistic(BaseModel):
    """A single statistic as mirrored from the remote stats service."""

    stat_id: Int64 = Field(..., description="Identifier assigned by the remote service")
    key: str = Field(..., min_length=1, description="Unique human-readable key")
    window: FiniteFloat | None = Field(
        default=None, description="Averaging window, only meaningful for AVGRATE"
    )
    increment_only: bool = Field(
        default=False, description="Whether callers may only increase the value"
    )
    values: StatValues

    model_config = ConfigDict(extra="ignore")

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind(self.values.kind)
