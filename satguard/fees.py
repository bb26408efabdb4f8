"""Fee-rate value type for send requests."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class FeeRate:
    """Fee rate in sat/vB."""

    sat_per_vb: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.sat_per_vb) or self.sat_per_vb < 0:
            raise ValueError(f"invalid fee rate: {self.sat_per_vb}")

    @classmethod
    def parse(cls, raw: str | float | int) -> "FeeRate":
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid fee rate: {raw}") from exc
        return cls(value)

    def n(self) -> float:
        return self.sat_per_vb

    def __str__(self) -> str:
        return f"{self.sat_per_vb:g} sat/vB"
