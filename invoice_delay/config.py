"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invoice_delay.domain.exceptions import ConfigurationError
from invoice_delay.domain.scheduling import DelayScheme
from invoice_delay.utils.date_utils import resolve_timezone

# ISO 4217 codes the payment provider can settle in
ISO_CURRENCIES = frozenset(
    """
    AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BHD BIF BMD BND BOB BRL
    BSD BTN BWP BYN BZD CAD CDF CHF CLP CNY COP CRC CUP CVE CZK DJF DKK DOP DZD EGP
    ERN ETB EUR FJD FKP GBP GEL GHS GIP GMD GNF GTQ GYD HKD HNL HTG HUF IDR ILS INR
    IQD IRR ISK JMD JOD JPY KES KGS KHR KMF KPW KRW KWD KYD KZT LAK LBP LKR LRD LSL
    LYD MAD MDL MGA MKD MMK MNT MOP MRU MUR MVR MWK MXN MYR MZN NAD NGN NIO NOK NPR
    NZD OMR PAB PEN PGK PHP PKR PLN PYG QAR RON RSD RUB RWF SAR SBD SCR SDG SEK SGD
    SHP SLE SOS SRD SSP STN SYP SZL THB TJS TMT TND TOP TRY TTD TWD TZS UAH UGX USD
    UYU UZS VES VND VUV WST XAF XCD XOF XPF YER ZAR ZMW ZWL
    """.split()
)

# Minor-unit exponent is not 2 for these; volume conversion divides by 100
ZERO_DECIMAL_CURRENCIES = frozenset(
    "BIF CLP DJF GNF JPY KMF KRW MGA PYG RWF UGX VND VUV XAF XOF XPF".split()
)
THREE_DECIMAL_CURRENCIES = frozenset("BHD IQD JOD KWD LYD OMR TND".split())


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Payment provider
    stripe_secret_key: str
    stripe_api_base: str = "https://api.stripe.com"

    # Gate and delay policy
    gross_volume_limit: Decimal = Decimal("30")
    account_currency: str = "AED"
    timezone: str = "Asia/Dubai"  # UTC+4, no DST
    transfer_hour: int = Field(12, ge=0, le=23)
    delay_scheme: List[int] = Field(default_factory=lambda: [1, 3, 5, 7, 9])

    # Service
    service_name: str = "invoice-delay-gateway"
    log_level: str = "INFO"
    logs_dir: Optional[Path] = Path("logs")
    metrics_textfile: Optional[Path] = None

    # Audit storage
    audit_backend: Literal["file", "database"] = "file"
    data_dir: Path = Path("data")
    database_url: str = "sqlite:///./data/invoice_delay.db"

    # HTTP client and batching
    http_timeout_seconds: float = Field(10.0, gt=0)
    page_size: int = Field(100, ge=1, le=100)
    max_pages: int = Field(10, ge=1)
    update_pacing_seconds: float = Field(0.1, ge=0)
    update_concurrency: int = Field(1, ge=1)

    @field_validator("stripe_secret_key")
    @classmethod
    def _check_secret_key(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("sk_", "rk_")):
            raise ValueError("STRIPE_SECRET_KEY must be a secret (sk_) or restricted (rk_) key")
        return value

    @field_validator("gross_volume_limit")
    @classmethod
    def _check_limit(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("GROSS_VOLUME_LIMIT must be greater than 0")
        return value

    @field_validator("account_currency")
    @classmethod
    def _check_currency(cls, value: str) -> str:
        code = value.strip().upper()
        if code not in ISO_CURRENCIES:
            raise ValueError(f"Unknown currency code: {value}")
        if code in ZERO_DECIMAL_CURRENCIES or code in THREE_DECIMAL_CURRENCIES:
            raise ValueError(f"{code} does not use two-decimal minor units; volume conversion assumes cents")
        return code

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    @field_validator("delay_scheme")
    @classmethod
    def _check_scheme(cls, value: List[int]) -> List[int]:
        try:
            DelayScheme.of(value)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e
        return value

    @field_validator("logs_dir", "metrics_textfile", mode="before")
    @classmethod
    def _empty_path_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def scheme(self) -> DelayScheme:
        return DelayScheme.of(self.delay_scheme)


def load_settings(**overrides) -> Settings:
    """
    Build Settings from the environment (plus overrides).

    Raises:
        ConfigurationError: On missing credentials or invalid values
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings for the HTTP surface"""
    return load_settings()
