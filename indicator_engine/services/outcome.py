"""
Per-indicator outcome of a batch evaluation.

A batch collects one outcome per indicator so that a failing indicator is
reported next to the others instead of aborting the report.
"""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from indicator_engine.exceptions import IndicatorEngineError


class IndicatorOutcome(BaseModel):
    """Count or engine error for one indicator of a batch.

    A count of ``0`` is a success; only a missing count with an error is a
    failure.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    indicator: str = Field(min_length=1)
    count: int | None = Field(default=None, ge=0)
    error: IndicatorEngineError | None = None
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def count_xor_error(self) -> Self:
        if (self.count is None) == (self.error is None):
            raise ValueError("IndicatorOutcome needs exactly one of count or error")
        return self

    @classmethod
    def success(cls, indicator: str, count: int, duration_seconds: float = 0.0) -> Self:
        return cls(indicator=indicator, count=count, duration_seconds=duration_seconds)

    @classmethod
    def failure(
        cls, indicator: str, error: IndicatorEngineError, duration_seconds: float = 0.0
    ) -> Self:
        return cls(indicator=indicator, error=error, duration_seconds=duration_seconds)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> int:
        """The count, or the engine error raised again."""
        if self.error is not None:
            raise self.error
        return self.count  # type: ignore[return-value]

    def count_or(self, default: int) -> int:
        return default if self.count is None else self.count
