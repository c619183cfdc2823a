import logging
import secrets
import string
from typing import Dict, Optional
from urllib.parse import urlencode, quote

from learnsy.shared.standardization import BaseService
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id, utcnow
from .access import FREE_TIER, can_access_document, can_access_video
from .models import (
    FREE_FEATURES, PaymentMethod, PaymentTransaction, PlanModel, PlanType,
    SubscriptionStatus, UserSubscription
)

logger = logging.getLogger(__name__)

DEFAULT_UPI_ID = "learnsy@upi"
MERCHANT_NAME = "Learnsy"

_FEATURE_ALIASES = {
    "fullCourseAccess": "full_course_access",
    "aiTools": "ai_tools",
    "notesAccess": "notes_access",
    "progressTracking": "progress_tracking",
    "videoLimit": "video_limit",
    "documentLimit": "document_limit",
}

def generate_transaction_id() -> str:
    """Identificador TXN_<milisegundos>_<9 caracteres base36>."""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"TXN_{int(utcnow().timestamp() * 1000)}_{suffix}"

def _resolve_plan(value: str) -> PlanType:
    plan_type = PlanModel.resolve(value)
    if plan_type is None:
        raise AppException(f"Plan inválido: {value}", AppException.BAD_REQUEST,
                           {"valid_plans": [p.value for p in PlanType]})
    return plan_type

def _resolve_payment_method(value: Optional[str]) -> Optional[PaymentMethod]:
    if not value:
        return None
    try:
        return PaymentMethod(value.strip().lower())
    except ValueError:
        raise AppException(f"Método de pago inválido: {value}", AppException.BAD_REQUEST)

def free_subscription_view() -> Dict:
    return {
        "id": None,
        "plan": FREE_TIER,
        "status": SubscriptionStatus.ACTIVE.value,
        "start_date": None,
        "end_date": None,
        "features": FREE_FEATURES.to_dict(),
        "is_active": True
    }

class SubscriptionService(BaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="subscriptions", db=db)

    def subscription_view(self, subscription: Dict) -> Dict:
        return {
            "id": str(subscription["_id"]),
            "plan": subscription.get("plan"),
            "status": subscription.get("status"),
            "start_date": subscription.get("start_date"),
            "end_date": subscription.get("end_date"),
            "amount": subscription.get("amount"),
            "payment_method": subscription.get("payment_method"),
            "transaction_id": subscription.get("transaction_id"),
            "features": subscription.get("features"),
            "is_active": subscription.get("status") == SubscriptionStatus.ACTIVE.value
        }

    def get_plans(self):
        return PlanModel.get_all_plans()

    def get_active_subscription(self, user_id: str) -> Optional[Dict]:
        """Suscripción activa más reciente; las vencidas se marcan como expiradas."""
        subscription = self.collection.find_one(
            {"user_id": to_object_id(user_id), "status": SubscriptionStatus.ACTIVE.value},
            sort=[("created_at", -1)]
        )
        if not subscription:
            return None

        end_date = subscription.get("end_date")
        if end_date and end_date < utcnow():
            self.collection.update_one(
                {"_id": subscription["_id"]},
                {"$set": {"status": SubscriptionStatus.EXPIRED.value, "updated_at": utcnow()}}
            )
            logger.info(f"Suscripción {subscription['_id']} expirada")
            return None
        return subscription

    def get_current(self, user_id: str) -> Dict:
        subscription = self.get_active_subscription(user_id)
        return self.subscription_view(subscription) if subscription else free_subscription_view()

    def get_tier(self, user_id: str) -> str:
        subscription = self.get_active_subscription(user_id)
        return subscription["plan"] if subscription else FREE_TIER

    def activate(self, user_id: str, plan_type: PlanType, payment_method: Optional[PaymentMethod],
                 transaction_id: str, amount: float) -> Dict:
        """Activa un plan de pago reemplazando la suscripción activa anterior."""
        user_oid = to_object_id(user_id)
        now = utcnow()
        self.collection.update_many(
            {"user_id": user_oid, "status": SubscriptionStatus.ACTIVE.value},
            {"$set": {"status": SubscriptionStatus.CANCELLED.value, "cancelled_at": now,
                      "updated_at": now}}
        )
        subscription = UserSubscription(user_oid, plan_type, payment_method, transaction_id, amount).to_dict()
        subscription["_id"] = self.collection.insert_one(subscription).inserted_id
        logger.info(f"Suscripción {plan_type.value} activada para {user_id} ({transaction_id})")
        return subscription

    def process_payment(self, user_id: str, plan: str, payment_method: Optional[str]) -> Dict:
        """Pago simulado: no hay pasarela, la transacción siempre se aprueba."""
        plan_type = _resolve_plan(plan)
        if plan_type == PlanType.FREE:
            raise AppException("El plan gratuito no requiere pago", AppException.BAD_REQUEST)
        method = _resolve_payment_method(payment_method)

        amount = PlanModel.PLAN_PRICES[plan_type]
        transaction_id = generate_transaction_id()
        self.db.payment_transactions.insert_one(
            PaymentTransaction(transaction_id, to_object_id(user_id), plan_type, amount, method).to_dict()
        )
        subscription = self.activate(user_id, plan_type, method, transaction_id, amount)
        return {
            "transaction_id": transaction_id,
            "subscription": self.subscription_view(subscription)
        }

    def check_access(self, user_id: str, feature: str) -> Dict:
        key = _FEATURE_ALIASES.get(feature, feature)
        if key not in FREE_FEATURES.to_dict():
            raise AppException(f"Funcionalidad desconocida: {feature}", AppException.BAD_REQUEST)

        features = self.get_current(user_id)["features"]
        value = features.get(key)
        # Los límites numéricos siempre permiten algún acceso (al menos los primeros elementos)
        has_access = value != 0 if key in ("video_limit", "document_limit") else bool(value)
        return {"feature": feature, "has_access": has_access}

    def check_video_access(self, user_id: str, index: int) -> Dict:
        tier = self.get_tier(user_id)
        return {"index": index, "tier": tier, "has_access": can_access_video(index, tier),
                "limit": FREE_FEATURES.video_limit if tier == FREE_TIER else -1}

    def check_document_access(self, user_id: str, index: int) -> Dict:
        tier = self.get_tier(user_id)
        return {"index": index, "tier": tier, "has_access": can_access_document(index, tier),
                "limit": FREE_FEATURES.document_limit if tier == FREE_TIER else -1}

    def cancel(self, user_id: str) -> Dict:
        subscription = self.get_active_subscription(user_id)
        if not subscription:
            raise AppException("No hay una suscripción activa", AppException.NOT_FOUND)

        now = utcnow()
        self.collection.update_one(
            {"_id": subscription["_id"]},
            {"$set": {"status": SubscriptionStatus.CANCELLED.value, "cancelled_at": now, "updated_at": now}}
        )
        subscription["status"] = SubscriptionStatus.CANCELLED.value
        return self.subscription_view(subscription)

    def upi_details(self, plan: str, upi_id: str = DEFAULT_UPI_ID) -> Dict:
        plan_type = _resolve_plan(plan)
        return {
            "upi_id": upi_id,
            "amount": PlanModel.PLAN_PRICES[plan_type],
            "plan": plan_type.value,
            "merchant_name": MERCHANT_NAME,
            "currency": PlanModel.CURRENCY
        }

    def upi_payment_request(self, plan: str, payment_method: str, upi_id: str = DEFAULT_UPI_ID) -> Dict:
        """
        Datos para el código QR de pago UPI. El cliente genera la imagen a
        partir de `upi_string`.
        """
        method = _resolve_payment_method(payment_method)
        details = self.upi_details(plan, upi_id)
        label = PlanModel.PLAN_DURATIONS[PlanModel.resolve(plan)][0]
        query = urlencode({
            "pa": upi_id,
            "pn": MERCHANT_NAME,
            "am": details["amount"],
            "cu": PlanModel.CURRENCY,
            "tn": f"{label} Subscription"
        }, safe="@", quote_via=quote)
        return {**details, "payment_method": method.value if method else None,
                "upi_string": f"upi://pay?{query}"}


class PaymentVerificationService(BaseService):
    """Verificación simulada de pagos UPI."""

    def __init__(self, db=None, subscription_service: Optional[SubscriptionService] = None):
        super().__init__(collection_name="payment_transactions", db=db)
        self._subscription_service = subscription_service

    @property
    def subscription_service(self) -> SubscriptionService:
        if self._subscription_service is None:
            self._subscription_service = SubscriptionService(db=self._db)
        return self._subscription_service

    def verify(self, user_id: str, data: Dict) -> Dict:
        """
        Verifica un pago y activa la suscripción.

        La verificación se aprueba siempre salvo que el monto no coincida con
        el precio del plan. Repetir un transaction_id ya verificado devuelve
        la misma suscripción sin crear otra.
        """
        plan_type = _resolve_plan(data.get("plan"))
        if plan_type == PlanType.FREE:
            raise AppException("El plan gratuito no requiere pago", AppException.BAD_REQUEST)
        method = _resolve_payment_method(data.get("payment_method"))
        price = PlanModel.PLAN_PRICES[plan_type]

        amount = data.get("amount")
        if amount is not None:
            try:
                amount = float(amount)
            except (TypeError, ValueError):
                raise AppException("Monto inválido", AppException.BAD_REQUEST)
            if amount != price:
                raise AppException("El monto no coincide con el precio del plan", AppException.BAD_REQUEST,
                                   {"expected": price, "received": amount})

        transaction_id = data.get("transaction_id") or generate_transaction_id()
        existing = self.collection.find_one({"transaction_id": transaction_id})
        if existing:
            if str(existing.get("user_id")) != str(user_id):
                raise AppException("Transacción no encontrada", AppException.NOT_FOUND)
            subscription = self.subscription_service.collection.find_one({"transaction_id": transaction_id})
            if subscription:
                return {"transaction_id": transaction_id,
                        "subscription": self.subscription_service.subscription_view(subscription)}

        if not existing:
            self.collection.insert_one(
                PaymentTransaction(transaction_id, to_object_id(user_id), plan_type, price, method).to_dict()
            )
        subscription = self.subscription_service.activate(user_id, plan_type, method, transaction_id, price)
        return {"transaction_id": transaction_id,
                "subscription": self.subscription_service.subscription_view(subscription)}

    def status(self, user_id: str, transaction_id: str) -> Dict:
        transaction = self.collection.find_one({"transaction_id": transaction_id,
                                                "user_id": to_object_id(user_id)})
        if not transaction:
            raise AppException("Transacción no encontrada", AppException.NOT_FOUND)

        subscription = self.subscription_service.collection.find_one({"transaction_id": transaction_id})
        return {
            "transaction_id": transaction_id,
            "status": transaction.get("status"),
            "amount": transaction.get("amount"),
            "plan": transaction.get("plan"),
            "verified_at": transaction.get("verified_at"),
            "subscription": self.subscription_service.subscription_view(subscription) if subscription else None
        }
