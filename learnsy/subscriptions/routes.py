import logging

from flask import request, current_app
from pydantic import ValidationError

from .services import SubscriptionService, PaymentVerificationService, DEFAULT_UPI_ID
from .models import PaymentVerificationRequest
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id
from learnsy.shared.exceptions import AppException
from learnsy.shared.validators import payment_schema

subscriptions_bp = APIBlueprint('subscriptions', __name__)
payment_verification_bp = APIBlueprint('payment_verification', __name__)
logger = logging.getLogger(__name__)
subscription_service = SubscriptionService()
payment_verification_service = PaymentVerificationService(subscription_service=subscription_service)

def _index_arg(index: str) -> int:
    try:
        return int(index)
    except ValueError:
        raise AppException("El índice debe ser un número entero", AppException.BAD_REQUEST)

def _upi_id() -> str:
    return current_app.config.get('UPI_ID') or DEFAULT_UPI_ID

@subscriptions_bp.route('/plans', methods=['GET'])
@APIRoute.standard()
def get_plans():
    """Catálogo público de planes."""
    return APIRoute.success(data={"plans": subscription_service.get_plans()})

@subscriptions_bp.route('/process-payment', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, schema=payment_schema)
def process_payment():
    data = request.get_json()
    result = subscription_service.process_payment(get_auth_user_id(), data['plan'], data.get('payment_method'))
    return APIRoute.success(data=result, message="Pago procesado correctamente", status_code=201)

@subscriptions_bp.route('/current', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def current_subscription():
    """Suscripción activa del usuario o el nivel gratuito."""
    return APIRoute.success(data=subscription_service.get_current(get_auth_user_id()))

@subscriptions_bp.route('/check-access/<feature>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def check_access(feature):
    return APIRoute.success(data=subscription_service.check_access(get_auth_user_id(), feature))

@subscriptions_bp.route('/check-video-access/<index>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def check_video_access(index):
    return APIRoute.success(data=subscription_service.check_video_access(get_auth_user_id(), _index_arg(index)))

@subscriptions_bp.route('/check-document-access/<index>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def check_document_access(index):
    return APIRoute.success(data=subscription_service.check_document_access(get_auth_user_id(), _index_arg(index)))

@subscriptions_bp.route('/cancel', methods=['POST'])
@APIRoute.standard(auth_required_flag=True)
def cancel_subscription():
    subscription = subscription_service.cancel(get_auth_user_id())
    return APIRoute.success(data=subscription, message="Suscripción cancelada")

@subscriptions_bp.route('/qr/<payment_method>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def upi_qr(payment_method):
    """Cadena UPI para generar el QR de pago del plan indicado en ?plan=."""
    data = subscription_service.upi_payment_request(request.args.get('plan'), payment_method, _upi_id())
    return APIRoute.success(data=data)

@subscriptions_bp.route('/upi-details', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def upi_details():
    return APIRoute.success(data=subscription_service.upi_details(request.args.get('plan'), _upi_id()))

@payment_verification_bp.route('/verify', methods=['POST'])
@APIRoute.standard(auth_required_flag=True)
def verify_payment():
    try:
        payload = PaymentVerificationRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        logger.warning(f"Datos de verificación inválidos: {e}")
        raise AppException("Datos de verificación inválidos", AppException.BAD_REQUEST,
                           {"errors": [err["msg"] for err in e.errors()]})
    result = payment_verification_service.verify(get_auth_user_id(), payload.model_dump(exclude_none=True))
    return APIRoute.success(data=result, message="Pago verificado correctamente")

@payment_verification_bp.route('/status/<transaction_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def payment_status(transaction_id):
    return APIRoute.success(data=payment_verification_service.status(get_auth_user_id(), transaction_id))
