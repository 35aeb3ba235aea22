"""Application configuration using pydantic-settings.

Every tunable (database, token signing, tax rules, business-day timezone,
restaurant identity printed on invoices) is read here from the environment
or ``.env``; other modules import ``settings`` instead of calling
``os.getenv``.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaxRule(BaseModel):
    """A configured tax applied to the order subtotal."""

    name: str
    rate: Decimal = Field(ge=0, le=100, description="Percentage, e.g. 2.5 for 2.5%")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to relative path for Docker, override via env for local dev
    database_url: str = "sqlite:///./data/restopos.db"
    sql_echo: bool = False

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240  # 4 hours

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    default_page_size: int = 50
    max_page_size: int = 500

    # Rate limiting
    rate_limit_enabled: bool = True

    # Business day boundaries for order/KOT/invoice numbering
    timezone: str = "Asia/Kolkata"

    # ==========================================================================
    # Taxes - JSON list in the environment, e.g.
    # TAX_RULES='[{"name": "CGST", "rate": 2.5}, {"name": "SGST", "rate": 2.5}]'
    # ==========================================================================
    tax_rules: List[TaxRule] = [
        TaxRule(name="CGST", rate=Decimal("2.5")),
        TaxRule(name="SGST", rate=Decimal("2.5")),
    ]

    # ==========================================================================
    # Restaurant identity printed on invoices
    # ==========================================================================
    restaurant_name: str = "Restaurant Name"
    restaurant_address: str = "Restaurant Address"
    restaurant_phone: str = "Restaurant Phone"
    restaurant_email: str = "restaurant@example.com"
    restaurant_gstin: str = ""
    restaurant_fssai: str = ""
    invoice_terms: str = "Thank you for your business!"
    invoice_footer: str = ""

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == "change-me-in-production":
            import warnings
            warnings.warn(
                "Using default SECRET_KEY is insecure! Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator("tax_rules")
    @classmethod
    def validate_unique_tax_names(cls, v: List[TaxRule]) -> List[TaxRule]:
        names = [rule.name for rule in v]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate tax rule names: {names}")
        return v

    def restaurant_details(self) -> Dict[str, str]:
        """Restaurant identity fields as captured on an invoice."""
        return {
            "name": self.restaurant_name,
            "address": self.restaurant_address,
            "phone": self.restaurant_phone,
            "email": self.restaurant_email,
            "gstin": self.restaurant_gstin,
            "fssai_license": self.restaurant_fssai,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
