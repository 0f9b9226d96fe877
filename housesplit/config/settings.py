"""
Configuration Management for housesplit

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All thresholds live here.
The engine reads its rounding and tolerance thresholds from one place,
so the validator and the debt simplifier can never disagree on what
"close enough to zero" means.
"""

from decimal import Decimal, InvalidOperation
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Numeric thresholds used by the settlement engine."""

    model_config = SettingsConfigDict(
        env_prefix="HOUSESPLIT_ENGINE_",
        extra="ignore"
    )

    zero_threshold: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Balances and transfers at or below this are treated as zero"
    )
    amount_tolerance: Decimal = Field(
        default=Decimal("0.02"),
        ge=0,
        description="Allowed gap between custom amounts and the expense total"
    )
    percent_tolerance: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        description="Allowed gap between custom percentages and 100"
    )
    max_expense_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Expenses above this are flagged for review (not rejected)"
    )
    budget_warning_percent: Decimal = Field(
        default=Decimal("80"),
        gt=0,
        le=100,
        description="Share of a category budget at which spending is flagged"
    )


class HouseholdSettings(BaseSettings):
    """
    Household membership and presentation settings.

    Membership is owned by whoever deploys the engine. The engine only
    uses this list to give balances a canonical member order.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOUSESPLIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    members: str = Field(
        default="",
        description="Comma-separated member ids in canonical order"
    )
    currency: str = Field(
        default="MXN",
        min_length=3,
        max_length=3,
        description="ISO currency code used in summaries"
    )
    split_presets: str = Field(
        default="",
        description="Named participant groups, e.g. 'all:a|b|c;no-c:a|b'"
    )
    category_budgets: str = Field(
        default="",
        description="Monthly limits per category, e.g. 'groceries:4000;utilities:1500'"
    )

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("category_budgets")
    @classmethod
    def check_budgets(cls, v: str) -> str:
        for chunk in v.split(";"):
            if not chunk.strip():
                continue
            category, sep, limit = chunk.partition(":")
            if not sep or not category.strip():
                raise ValueError(f"Budget entry must be 'category:limit', got {chunk!r}")
            try:
                value = Decimal(limit.strip())
            except InvalidOperation:
                value = None
            if value is None or not value.is_finite():
                raise ValueError(f"Budget limit for {category.strip()!r} is not a number")
        return v

    @property
    def members_list(self) -> list[str]:
        """Get members as a list, preserving configured order."""
        seen: list[str] = []
        for member in self.members.split(","):
            member = member.strip()
            if member and member not in seen:
                seen.append(member)
        return seen

    @property
    def presets(self) -> dict[str, list[str]]:
        """Parse split presets into {name: [member ids]}."""
        presets: dict[str, list[str]] = {}
        for chunk in self.split_presets.split(";"):
            if ":" not in chunk:
                continue
            name, _, ids = chunk.partition(":")
            users = [u.strip() for u in ids.split("|") if u.strip()]
            if name.strip() and users:
                presets[name.strip()] = users
        return presets

    @property
    def budgets(self) -> dict[str, Decimal]:
        """Monthly limit per category. Categories with no positive limit are left out."""
        budgets: dict[str, Decimal] = {}
        for chunk in self.category_budgets.split(";"):
            category, _, limit = chunk.partition(":")
            if not category.strip() or not limit.strip():
                continue
            value = Decimal(limit.strip())
            if value > 0:
                budgets[category.strip()] = value
        return budgets


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def household(self) -> HouseholdSettings:
        return HouseholdSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        household = settings.household
        results["household"] = True
        if not household.members_list:
            results["household_warning"] = "No members configured"
    except Exception as e:
        results["household"] = False
        results["household_error"] = str(e)

    return results
