import calendar
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from learnsy.shared.utils import utcnow

class PlanType(Enum):
    FREE = "free"
    ONE_MONTH = "1-month"
    THREE_MONTHS = "3-months"
    SIX_MONTHS = "6-months"
    TWELVE_MONTHS = "12-months"

class SubscriptionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

class PaymentMethod(Enum):
    BHIM = "bhim"
    PAYTM = "paytm"
    GOOGLEPAY = "googlepay"
    PHONEPE = "phonepe"
    UPI = "upi"

UNLIMITED = -1

@dataclass
class PlanFeatures:
    """Funcionalidades incluidas en un plan (-1 significa ilimitado)"""
    full_course_access: bool
    ai_tools: bool
    notes_access: bool
    progress_tracking: bool
    video_limit: int
    document_limit: int

    def to_dict(self) -> Dict:
        return asdict(self)

FREE_FEATURES = PlanFeatures(
    full_course_access=False,
    ai_tools=False,
    notes_access=False,
    progress_tracking=True,
    video_limit=3,
    document_limit=2
)

PAID_FEATURES = PlanFeatures(
    full_course_access=True,
    ai_tools=True,
    notes_access=True,
    progress_tracking=True,
    video_limit=UNLIMITED,
    document_limit=UNLIMITED
)

class PlanModel:
    """Catálogo de planes; no depende de ninguna pasarela de pago."""

    PLAN_NAMES = {
        PlanType.FREE: "Free Trial",
        PlanType.ONE_MONTH: "1 Month Plan",
        PlanType.THREE_MONTHS: "3 Months Plan",
        PlanType.SIX_MONTHS: "6 Months Plan",
        PlanType.TWELVE_MONTHS: "12 Months Plan",
    }

    # Precios en rupias
    PLAN_PRICES = {
        PlanType.FREE: 0,
        PlanType.ONE_MONTH: 149,
        PlanType.THREE_MONTHS: 349,
        PlanType.SIX_MONTHS: 649,
        PlanType.TWELVE_MONTHS: 1099,
    }

    PLAN_DURATIONS = {
        PlanType.FREE: ("Lifetime", 0),
        PlanType.ONE_MONTH: ("1 month", 1),
        PlanType.THREE_MONTHS: ("3 months", 3),
        PlanType.SIX_MONTHS: ("6 months", 6),
        PlanType.TWELVE_MONTHS: ("12 months", 12),
    }

    CURRENCY = "INR"

    @classmethod
    def resolve(cls, value: str) -> Optional[PlanType]:
        """Acepta el id del plan ('3-months') o su etiqueta de duración ('3 months')."""
        if not value:
            return None
        value = value.strip().lower()
        for plan_type in PlanType:
            if value == plan_type.value or value == cls.PLAN_DURATIONS[plan_type][0]:
                return plan_type
        return None

    @classmethod
    def get_features(cls, plan_type: PlanType) -> PlanFeatures:
        return FREE_FEATURES if plan_type == PlanType.FREE else PAID_FEATURES

    @classmethod
    def get_plan(cls, plan_type: PlanType) -> Dict:
        label, months = cls.PLAN_DURATIONS[plan_type]
        return {
            "id": plan_type.value,
            "name": cls.PLAN_NAMES[plan_type],
            "price": cls.PLAN_PRICES[plan_type],
            "currency": cls.CURRENCY,
            "duration": label,
            "duration_months": months,
            "features": cls.get_features(plan_type).to_dict()
        }

    @classmethod
    def get_all_plans(cls) -> List[Dict]:
        return [cls.get_plan(plan_type) for plan_type in PlanType]


def add_months(moment: datetime, months: int) -> datetime:
    """Suma meses de calendario ajustando el día al último día válido."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class UserSubscription:
    """Suscripción de pago de un usuario."""

    def __init__(self, user_id, plan_type: PlanType, payment_method: Optional[PaymentMethod],
                 transaction_id: str, amount: float, start_date: Optional[datetime] = None):
        self.user_id = user_id
        self.plan_type = plan_type
        self.payment_method = payment_method
        self.transaction_id = transaction_id
        self.amount = amount
        self.start_date = start_date or utcnow()
        months = PlanModel.PLAN_DURATIONS[plan_type][1]
        self.end_date = add_months(self.start_date, months) if months else None
        self.created_at = utcnow()

    def to_dict(self) -> Dict:
        return {
            "user_id": self.user_id,
            "plan": self.plan_type.value,
            "status": SubscriptionStatus.ACTIVE.value,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "amount": self.amount,
            "currency": PlanModel.CURRENCY,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "transaction_id": self.transaction_id,
            "features": PlanModel.get_features(self.plan_type).to_dict(),
            "created_at": self.created_at,
            "updated_at": self.created_at
        }


class PaymentTransaction:
    """Registro de una transacción (simulada) de pago."""

    def __init__(self, transaction_id: str, user_id, plan_type: PlanType, amount: float,
                 payment_method: Optional[PaymentMethod], status: str = "verified"):
        self.transaction_id = transaction_id
        self.user_id = user_id
        self.plan_type = plan_type
        self.amount = amount
        self.payment_method = payment_method
        self.status = status
        self.created_at = utcnow()

    def to_dict(self) -> Dict:
        return {
            "transaction_id": self.transaction_id,
            "user_id": self.user_id,
            "plan": self.plan_type.value,
            "amount": self.amount,
            "currency": PlanModel.CURRENCY,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "status": self.status,
            "verified_at": self.created_at if self.status == "verified" else None,
            "created_at": self.created_at,
            "updated_at": self.created_at
        }


class PaymentVerificationRequest(BaseModel):
    """Cuerpo de POST /api/payment-verification/verify"""
    plan: str = Field(..., min_length=1, description="Plan a activar (1-month, 3-months...)")
    payment_method: Optional[str] = Field(None, description="bhim, paytm, googlepay, phonepe o upi")
    amount: Optional[float] = Field(None, ge=0, description="Monto pagado; debe coincidir con el precio")
    transaction_id: Optional[str] = Field(None, description="Referencia de la transacción UPI")
