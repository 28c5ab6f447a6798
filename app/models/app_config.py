"""AppConfig: global string-keyed settings editable by admins."""

import uuid

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid

PRICING_PRIME_PERCENTAGE = "pricing_prime_percentage"
NEUROSWITCH_CLASSIFIER_FEE_CENTS = "neuroswitch_classifier_fee_cents"


class AppConfig(TimestampMixin, SQLModel, table=True):
    __tablename__ = "app_config"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    key: str = Field(max_length=255, unique=True, nullable=False, index=True)
    # Stored as text; parsed by the reader
    value: str | None = Field(default=None)
    description: str | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class PricingConfigRead(SQLModel):
    pricing_prime_percentage: str | None
    neuroswitch_classifier_fee_cents: str | None


class PricingConfigUpdate(SQLModel):
    pricing_prime_percentage: float | None = Field(default=None, ge=0)
    neuroswitch_classifier_fee_cents: float | None = Field(default=None, ge=0)
