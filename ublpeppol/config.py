"""Engine configuration with Pydantic v2 Settings."""

from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Defaults for line normalization and the comparison tolerance.

    Every field can be overridden through ``UBLPEPPOL_<FIELD>`` environment
    variables, e.g. ``UBLPEPPOL_DEFAULT_TAX_PERCENT=19``.
    """

    model_config = SettingsConfigDict(env_prefix="UBLPEPPOL_", frozen=True)

    # Applied when a line carries no tax category / percent
    default_tax_category_id: str = "S"
    default_tax_percent: Decimal = Decimal("21")
    default_tax_scheme_id: str = "VAT"
    default_currency: str = "EUR"

    # Half a cent: differences up to this value count as equal
    amount_tolerance: Decimal = Decimal("0.005")

    log_level: str = "INFO"

    @field_validator("amount_tolerance", "default_tax_percent")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        up = value.upper()
        if up not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return "INFO"
        return up


# Global settings instance
settings = EngineSettings()
