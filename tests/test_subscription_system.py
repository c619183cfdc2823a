import unittest
from unittest.mock import MagicMock
from datetime import datetime, timedelta
from urllib.parse import urlparse, parse_qs
from bson import ObjectId
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import utcnow
from learnsy.shared.constants import DOCUMENT_MATERIAL_TYPES
from learnsy.subscriptions.access import can_access, can_access_video, can_access_document, annotate_access
from learnsy.subscriptions.models import PlanModel, PlanType, add_months, PaymentVerificationRequest
from learnsy.subscriptions.services import (
    SubscriptionService, PaymentVerificationService, generate_transaction_id
)
from pydantic import ValidationError

def mock_db():
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db

class TestFreeTierAccess(unittest.TestCase):
    """Acceso de prueba gratuita por posición del material"""

    def test_free_videos_first_three(self):
        self.assertEqual([can_access_video(i, "free") for i in range(5)],
                         [True, True, True, False, False])

    def test_free_documents_first_two(self):
        self.assertEqual([can_access_document(i, "free") for i in range(4)],
                         [True, True, False, False])

    def test_paid_tier_always_allowed(self):
        self.assertTrue(can_access_video(50, "1-month"))
        self.assertTrue(can_access_document(50, "12-months"))
        self.assertTrue(can_access(10, "free", -1))

    def test_negative_index_denied(self):
        self.assertFalse(can_access(-1, "3-months", 3))

    def test_annotate_counts_types_separately(self):
        materials = [
            {"type": "video"}, {"type": "pdf"}, {"type": "video"}, {"type": "text"},
            {"type": "video"}, {"type": "pdf"}, {"type": "video"}, {"type": "link"}
        ]
        annotated = annotate_access(materials, "free")
        self.assertEqual([m["is_locked"] for m in annotated],
                         [False, False, False, False, False, True, True, False])

        annotated = annotate_access([dict(m) for m in materials], "6-months")
        self.assertFalse(any(m["is_locked"] for m in annotated))

    def test_document_kinds_come_from_material_constants(self):
        materials = [{"type": kind} for kind in DOCUMENT_MATERIAL_TYPES * 2]
        annotated = annotate_access(materials, "free")
        self.assertEqual(sum(not m["is_locked"] for m in annotated), 2)


class TestPlanModel(unittest.TestCase):

    def test_prices(self):
        prices = {plan["id"]: plan["price"] for plan in PlanModel.get_all_plans()}
        self.assertEqual(prices, {"free": 0, "1-month": 149, "3-months": 349,
                                  "6-months": 649, "12-months": 1099})

    def test_resolve_accepts_id_and_label(self):
        self.assertEqual(PlanModel.resolve("3 months"), PlanType.THREE_MONTHS)
        self.assertEqual(PlanModel.resolve("3-Months"), PlanType.THREE_MONTHS)
        self.assertIsNone(PlanModel.resolve("2 weeks"))
        self.assertIsNone(PlanModel.resolve(""))

    def test_add_months_clamps_day(self):
        self.assertEqual(add_months(datetime(2024, 1, 31), 1), datetime(2024, 2, 29))
        self.assertEqual(add_months(datetime(2024, 11, 15), 3), datetime(2025, 2, 15))

    def test_transaction_id_format(self):
        transaction_id = generate_transaction_id()
        prefix, millis, suffix = transaction_id.split("_")
        self.assertEqual(prefix, "TXN")
        self.assertTrue(millis.isdigit())
        self.assertEqual(len(suffix), 9)


class TestSubscriptionService(unittest.TestCase):

    def setUp(self):
        self.db = mock_db()
        self.service = SubscriptionService(db=self.db)
        self.user_id = str(ObjectId())

    def test_current_defaults_to_free(self):
        """Test usuario sin suscripción recibe el plan gratuito"""
        self.db.subscriptions.find_one.return_value = None
        current = self.service.get_current(self.user_id)
        self.assertEqual(current["plan"], "free")
        self.assertEqual(current["features"]["video_limit"], 3)

    def test_expired_subscription_is_marked(self):
        self.db.subscriptions.find_one.return_value = {
            "_id": ObjectId(), "plan": "1-month", "status": "active",
            "end_date": utcnow() - timedelta(days=1)
        }
        self.assertEqual(self.service.get_tier(self.user_id), "free")
        update = self.db.subscriptions.update_one.call_args[0][1]
        self.assertEqual(update["$set"]["status"], "expired")

    def test_process_payment_activates_plan(self):
        """Test pago simulado registra la transacción y activa el plan"""
        self.db.subscriptions.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        result = self.service.process_payment(self.user_id, "3 months", "googlepay")

        self.assertTrue(result["transaction_id"].startswith("TXN_"))
        self.assertEqual(result["subscription"]["plan"], "3-months")
        self.assertEqual(result["subscription"]["amount"], 349)
        self.assertTrue(result["subscription"]["is_active"])
        self.db.payment_transactions.insert_one.assert_called_once()
        # La suscripción activa anterior queda cancelada
        cancel = self.db.subscriptions.update_many.call_args[0][1]
        self.assertEqual(cancel["$set"]["status"], "cancelled")

    def test_process_payment_rejects_invalid_input(self):
        with self.assertRaises(AppException) as ctx:
            self.service.process_payment(self.user_id, "free", "upi")
        self.assertEqual(ctx.exception.code, 400)

        with self.assertRaises(AppException):
            self.service.process_payment(self.user_id, "forever", "upi")

        with self.assertRaises(AppException):
            self.service.process_payment(self.user_id, "1-month", "cash")

    def test_upi_string_is_encoded(self):
        result = self.service.upi_payment_request("6-months", "phonepe", upi_id="learnsy@upi")
        self.assertEqual(result["amount"], 649)
        self.assertIn("pa=learnsy@upi", result["upi_string"])
        self.assertNotIn(" ", result["upi_string"])

        query = parse_qs(urlparse(result["upi_string"]).query)
        self.assertEqual(query["tn"], ["6 months Subscription"])
        self.assertEqual(query["cu"], ["INR"])

    def test_check_access_unknown_feature(self):
        with self.assertRaises(AppException):
            self.service.check_access(self.user_id, "teleport")


class TestPaymentVerification(unittest.TestCase):

    def setUp(self):
        self.db = mock_db()
        self.service = PaymentVerificationService(db=self.db)
        self.user_id = str(ObjectId())
        self.db.subscriptions.insert_one.return_value = MagicMock(inserted_id=ObjectId())

    def test_amount_mismatch_rejected(self):
        with self.assertRaises(AppException) as ctx:
            self.service.verify(self.user_id, {"plan": "1-month", "amount": 100})
        self.assertEqual(ctx.exception.code, 400)
        self.assertEqual(ctx.exception.details["expected"], 149)
        self.db.subscriptions.insert_one.assert_not_called()

    def test_verify_new_transaction(self):
        self.db.payment_transactions.find_one.return_value = None
        result = self.service.verify(self.user_id, {"plan": "1-month", "amount": 149,
                                                    "transaction_id": "UPI123"})
        self.assertEqual(result["transaction_id"], "UPI123")
        self.assertEqual(result["subscription"]["plan"], "1-month")
        self.db.payment_transactions.insert_one.assert_called_once()

    def test_repeated_transaction_is_idempotent(self):
        """Test repetir un transaction_id devuelve la suscripción existente"""
        subscription = {"_id": ObjectId(), "plan": "1-month", "status": "active",
                        "transaction_id": "UPI123", "amount": 149}
        self.db.payment_transactions.find_one.return_value = {
            "transaction_id": "UPI123", "user_id": ObjectId(self.user_id)
        }
        self.db.subscriptions.find_one.return_value = subscription

        result = self.service.verify(self.user_id, {"plan": "1-month", "transaction_id": "UPI123"})

        self.assertEqual(result["subscription"]["id"], str(subscription["_id"]))
        self.db.subscriptions.insert_one.assert_not_called()
        self.db.payment_transactions.insert_one.assert_not_called()

    def test_transaction_of_other_user_not_found(self):
        self.db.payment_transactions.find_one.return_value = {
            "transaction_id": "UPI123", "user_id": ObjectId()
        }
        with self.assertRaises(AppException) as ctx:
            self.service.verify(self.user_id, {"plan": "1-month", "transaction_id": "UPI123"})
        self.assertEqual(ctx.exception.code, 404)

    def test_request_model_validation(self):
        with self.assertRaises(ValidationError):
            PaymentVerificationRequest(plan="")
        with self.assertRaises(ValidationError):
            PaymentVerificationRequest(plan="1-month", amount=-5)
        payload = PaymentVerificationRequest(plan="1-month", amount="149")
        self.assertEqual(payload.model_dump(exclude_none=True), {"plan": "1-month", "amount": 149.0})


if __name__ == '__main__':
    unittest.main()
