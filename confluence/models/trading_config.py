"""Live trading configuration.

Risk and lot bounds the engine reads every cycle.  Instances are frozen;
changes go through :meth:`TradingConfig.update`, which validates the merged
result and rejects violating updates instead of applying them.
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Any


class ConfigValidationError(ValueError):
    """Raised when a config update would break an invariant."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


# Wire-format keys accepted alongside the field names
_ALIASES = {
    "maxRiskPercent": "max_risk_percent",
    "minRiskPercent": "min_risk_percent",
    "maxLot": "max_lot",
    "minLot": "min_lot",
    "targetDailyGrowth": "target_daily_growth",
    "stopLossMultiplier": "stop_loss_multiplier",
    "takeProfitMultiplier": "take_profit_multiplier",
}


@dataclass(frozen=True)
class TradingConfig:
    """Risk/lot bounds for confidence-scaled sizing."""

    max_risk_percent: float = 10.0
    min_risk_percent: float = 0.5
    max_lot: float = 10.0
    min_lot: float = 0.01
    target_daily_growth: float = 30.0
    stop_loss_multiplier: float = 0.5
    take_profit_multiplier: float = 1.5

    def validate(self) -> list[str]:
        """Return every invariant violation (empty when valid)."""
        errors: list[str] = []
        for f in fields(self):
            if getattr(self, f.name) <= 0:
                errors.append(f"{f.name} must be positive")
        if self.min_risk_percent > self.max_risk_percent:
            errors.append("min_risk_percent must not exceed max_risk_percent")
        if self.min_lot > self.max_lot:
            errors.append("min_lot must not exceed max_lot")
        return errors

    def update(self, partial: dict[str, Any]) -> "TradingConfig":
        """Return a new config with *partial* merged in.

        Raises ``ConfigValidationError`` listing unknown keys, non-numeric
        values and invariant violations; the current config is untouched.
        """
        known = {f.name for f in fields(self)}
        changes: dict[str, float] = {}
        errors: list[str] = []

        for key, value in partial.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                errors.append(f"unknown setting '{key}'")
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{name} must be a number")
                continue
            changes[name] = float(value)

        if errors:
            raise ConfigValidationError(errors)

        updated = replace(self, **changes)
        errors = updated.validate()
        if errors:
            raise ConfigValidationError(errors)
        return updated

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradingConfig":
        """Build from stored settings, validated the same way as an update."""
        return cls().update(data)
