"""
Ledger Configuration Schema.

Defines the structure and sensible defaults for ledger, reconciliation
and aging settings.  Actual values are loaded from a YAML file at
runtime (see ``ledger_config.loader``).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Self

from ledger_kernel.domain.money import to_percent
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass(frozen=True)
class LedgerConfig:
    """
    Configuration schema for the invoice ledger.

    Field defaults reflect the retail deployment (Kenyan shillings,
    16% VAT).  Override at instantiation with store-specific values:

        config = LedgerConfig(
            default_tax_rate_percent=Decimal("8"),
            **load_yaml_file(path).get("ledger", {}),
        )
    """

    # Display only -- all core arithmetic is in integer minor units.
    currency_code: str = "KES"

    default_tax_rate_percent: Decimal = Decimal("16")

    # Reconciliation
    match_window: int = 10
    close_match_percent: Decimal = Decimal("10")

    # Aging bucket upper bounds (days past due); a final open bucket follows.
    aging_buckets: tuple[int, ...] = (30, 60)

    def __post_init__(self):
        if not self.currency_code or len(self.currency_code.strip()) != 3:
            raise ValueError(f"currency_code must be a 3-letter code, got {self.currency_code!r}")
        object.__setattr__(self, "currency_code", self.currency_code.strip().upper())

        object.__setattr__(
            self,
            "default_tax_rate_percent",
            to_percent(self.default_tax_rate_percent, "default_tax_rate_percent"),
        )
        object.__setattr__(
            self,
            "close_match_percent",
            to_percent(self.close_match_percent, "close_match_percent"),
        )
        if self.close_match_percent > Decimal("100"):
            raise ValueError("close_match_percent cannot exceed 100%")

        if self.match_window < 1:
            raise ValueError("match_window must be at least 1")

        buckets = tuple(self.aging_buckets)
        object.__setattr__(self, "aging_buckets", buckets)
        if buckets:
            if list(buckets) != sorted(buckets):
                raise ValueError("aging_buckets must be sorted ascending")
            if len(buckets) != len(set(buckets)):
                raise ValueError("aging_buckets must be unique")
            if any(b <= 0 for b in buckets):
                raise ValueError("aging_buckets must contain positive values")

        logger.info(
            "ledger_config_initialized",
            extra={
                "currency_code": self.currency_code,
                "default_tax_rate_percent": str(self.default_tax_rate_percent),
                "match_window": self.match_window,
                "close_match_percent": str(self.close_match_percent),
                "aging_buckets": list(self.aging_buckets),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the retail defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g., parsed YAML)."""
        logger.info(
            "ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown ledger config keys: {sorted(unknown)}")
        values = dict(data)
        if "aging_buckets" in values:
            values["aging_buckets"] = tuple(values["aging_buckets"])
        return cls(**values)
