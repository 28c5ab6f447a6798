"""Import all models so SQLModel.metadata picks them up."""

from app.models.admin_action import AdminActionLog
from app.models.api_key import ApiKey, ApiKeyCreate, ApiKeyCreated, ApiKeyRead
from app.models.app_config import (
    NEUROSWITCH_CLASSIFIER_FEE_CENTS,
    PRICING_PRIME_PERCENTAGE,
    AppConfig,
    PricingConfigRead,
    PricingConfigUpdate,
)
from app.models.credit import (
    CreditAccount,
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    CreditMethod,
    CreditStatus,
    CreditTransaction,
    CreditTransactionRead,
)
from app.models.model_rate import ModelRate, ModelRateRead, ModelRateUpdate
from app.models.usage_log import UsageActivity, UsageLog
from app.models.user import User, UserCreate, UserRead, UserRole

__all__ = [
    "NEUROSWITCH_CLASSIFIER_FEE_CENTS",
    "PRICING_PRIME_PERCENTAGE",
    "AdminActionLog",
    "ApiKey",
    "ApiKeyCreate",
    "ApiKeyCreated",
    "ApiKeyRead",
    "AppConfig",
    "CreditAccount",
    "CreditAdjustmentRequest",
    "CreditAdjustmentResponse",
    "CreditMethod",
    "CreditStatus",
    "CreditTransaction",
    "CreditTransactionRead",
    "ModelRate",
    "ModelRateRead",
    "ModelRateUpdate",
    "PricingConfigRead",
    "PricingConfigUpdate",
    "UsageActivity",
    "UsageLog",
    "User",
    "UserCreate",
    "UserRead",
    "UserRole",
]
