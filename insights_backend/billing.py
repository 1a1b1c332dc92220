"""
Billing (Stripe)
================

Checkout sessions, customer portal and webhook handling for two products
sharing one `subscriptions` row per user:

- Notebook Pro (plan_id free|pro, tracked by stripe_subscription_id)
- Legal Assistant (legal_plan_id free|pro_legal|business_legal, tracked by
  stripe_customer_id and recognised by metadata.product == "legal_assistant")
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.models import (
    LegalPlanId, PlanId, Subscription, SubscriptionStatus, User,
)
from .errors import BillingError, ConfigurationError, ValidationError
from .legal_limits import get_legal_plan_limits

logger = logging.getLogger(__name__)

LEGAL_PRODUCT = "legal_assistant"
MISSING_CHECKOUT_PARAMS = "Brakujące parametry: priceId, successUrl, cancelUrl"

_LEGAL_PLAN_VALUES = {plan.value for plan in LegalPlanId}
_STATUS_VALUES = {status.value for status in SubscriptionStatus}


class WebhookSignatureError(Exception):
    """Stripe webhook signature missing or invalid"""


def _configure_stripe(settings: Settings) -> None:
    if not settings.stripe_secret_key:
        raise ConfigurationError("STRIPE_SECRET_KEY environment variable not set")
    stripe.api_key = settings.stripe_secret_key


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a dict or StripeObject"""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def _from_timestamp(ts: Optional[int]) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def _period(subscription: Any, key: str) -> Optional[datetime]:
    # Newer API versions moved the period onto subscription items
    value = _field(subscription, key)
    if value is None:
        items = _field(_field(subscription, "items"), "data") or []
        if items:
            value = _field(items[0], key)
    return _from_timestamp(value)


def is_legal_product(metadata: Optional[Dict[str, Any]]) -> bool:
    return _field(metadata, "product") == LEGAL_PRODUCT


def get_legal_plan_type(metadata: Optional[Dict[str, Any]]) -> str:
    plan_type = _field(metadata, "plan_type")
    if plan_type not in _LEGAL_PLAN_VALUES:
        # Price was not one of the configured legal prices at checkout time
        logger.warning("Unknown legal plan_type %r, treating as %s", plan_type, LegalPlanId.FREE.value)
        return LegalPlanId.FREE.value
    return plan_type


def _subscription_status(subscription: Any) -> Optional[str]:
    status = _field(subscription, "status")
    if status not in _STATUS_VALUES:
        logger.warning("Ignoring unsupported subscription status %r", status)
        return None
    return status


def legal_plan_type_for_price(price_id: str, settings: Settings) -> str:
    if settings.stripe_legal_price_id_pro and price_id == settings.stripe_legal_price_id_pro:
        return LegalPlanId.PRO_LEGAL.value
    if settings.stripe_legal_price_id_business and price_id == settings.stripe_legal_price_id_business:
        return LegalPlanId.BUSINESS_LEGAL.value
    return "unknown"


def _get_or_create_subscription_row(db: Session, user_id: str) -> Subscription:
    row = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if row is None:
        row = Subscription(user_id=user_id)
        db.add(row)
        db.flush()
    return row


def get_subscription(db: Session, user_id: str) -> Subscription:
    row = _get_or_create_subscription_row(db, user_id)
    db.commit()
    return row


# =============================================================================
# CHECKOUT / PORTAL
# =============================================================================

def _ensure_customer(db: Session, user: User) -> str:
    row = _get_or_create_subscription_row(db, user.id)
    if row.stripe_customer_id:
        return row.stripe_customer_id

    customer = stripe.Customer.create(
        email=user.email,
        metadata={"supabase_user_id": user.id},
    )
    row.stripe_customer_id = _field(customer, "id")
    db.commit()
    logger.info("Created Stripe customer %s for user %s", row.stripe_customer_id, user.id)
    return row.stripe_customer_id


def _validate_checkout_params(price_id: Optional[str], success_url: Optional[str], cancel_url: Optional[str]):
    if not price_id or not success_url or not cancel_url:
        raise ValidationError(MISSING_CHECKOUT_PARAMS)


def create_legal_checkout_session(
    db: Session,
    user: User,
    price_id: Optional[str],
    success_url: Optional[str],
    cancel_url: Optional[str],
    settings: Optional[Settings] = None,
) -> Dict[str, str]:
    """Stripe Checkout for a Legal Assistant plan; returns {"url": ...}"""
    _validate_checkout_params(price_id, success_url, cancel_url)
    settings = settings or get_settings()
    _configure_stripe(settings)

    customer_id = _ensure_customer(db, user)
    plan_type = legal_plan_type_for_price(price_id, settings)
    metadata = {"user_id": user.id, "product": LEGAL_PRODUCT, "plan_type": plan_type}

    session = stripe.checkout.Session.create(
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        mode="subscription",
        success_url=success_url,
        cancel_url=cancel_url,
        metadata=metadata,
        subscription_data={"metadata": dict(metadata)},
        billing_address_collection="required",
        allow_promotion_codes=True,
        locale="pl",
    )

    logger.info(f"Created Legal checkout session for user {user.id}, plan: {plan_type}")
    return {"url": _field(session, "url")}


def create_checkout_session(
    db: Session,
    user: User,
    price_id: Optional[str],
    success_url: Optional[str],
    cancel_url: Optional[str],
    settings: Optional[Settings] = None,
) -> Dict[str, str]:
    """Stripe Checkout for the notebook Pro plan; returns {"url": ...}"""
    _validate_checkout_params(price_id, success_url, cancel_url)
    settings = settings or get_settings()
    _configure_stripe(settings)

    customer_id = _ensure_customer(db, user)
    session = stripe.checkout.Session.create(
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        mode="subscription",
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={"user_id": user.id},
        subscription_data={"metadata": {"user_id": user.id}},
        allow_promotion_codes=True,
    )

    logger.info(f"Created checkout session for user {user.id}")
    return {"url": _field(session, "url")}


def create_customer_portal_session(
    db: Session,
    user: User,
    return_url: Optional[str],
    settings: Optional[Settings] = None,
) -> Dict[str, str]:
    settings = settings or get_settings()
    _configure_stripe(settings)

    row = db.query(Subscription).filter(Subscription.user_id == user.id).first()
    if not row or not row.stripe_customer_id:
        raise ValidationError("Brak aktywnej subskrypcji do zarządzania")

    session = stripe.billing_portal.Session.create(
        customer=row.stripe_customer_id,
        return_url=return_url or settings.app_url,
    )
    return {"url": _field(session, "url")}


# =============================================================================
# WEBHOOK
# =============================================================================

def parse_webhook_event(payload: bytes, signature: Optional[str], settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Verify the Stripe signature and return the event as a plain dict"""
    if not signature:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    settings = settings or get_settings()
    _configure_stripe(settings)
    if not settings.stripe_webhook_signing_secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SIGNING_SECRET environment variable not set")

    try:
        stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_signing_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise WebhookSignatureError(f"Webhook Error: {e}")

    return json.loads(payload)


def _rows_by_customer(db: Session, customer_id: Optional[str]):
    if not customer_id:
        return []
    return db.query(Subscription).filter(Subscription.stripe_customer_id == customer_id).all()


def _rows_by_subscription(db: Session, subscription_id: Optional[str]):
    if not subscription_id:
        return []
    return db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).all()


def _handle_checkout_completed(db: Session, session: Dict[str, Any]) -> None:
    logger.info("Checkout session completed: %s", _field(session, "id"))
    if _field(session, "mode") != "subscription":
        return

    metadata = _field(session, "metadata") or {}
    user_id = _field(metadata, "user_id")
    if not user_id:
        logger.error("No user_id in session metadata")
        return

    subscription_id = _field(session, "subscription")
    customer_id = _field(session, "customer")
    subscription = stripe.Subscription.retrieve(subscription_id)
    row = _get_or_create_subscription_row(db, user_id)

    if is_legal_product(metadata):
        plan_type = get_legal_plan_type(metadata)
        limits = get_legal_plan_limits(plan_type)
        logger.info(f"Processing Legal Assistant subscription: {plan_type}")

        row.stripe_customer_id = customer_id
        row.legal_plan_id = plan_type
        row.legal_cases_limit = limits["cases_limit"]
        row.legal_documents_limit = limits["documents_limit"]
        row.legal_documents_generated = 0
        logger.info(f"Updated legal subscription for user {user_id} to {plan_type}")
    else:
        row.stripe_customer_id = customer_id
        row.stripe_subscription_id = subscription_id
        row.plan_id = PlanId.PRO
        row.status = _subscription_status(subscription) or SubscriptionStatus.ACTIVE.value
        row.current_period_start = _period(subscription, "current_period_start")
        row.current_period_end = _period(subscription, "current_period_end")
        row.cancel_at_period_end = bool(_field(subscription, "cancel_at_period_end", False))
        logger.info(f"Updated subscription for user {user_id} to pro")


def _handle_subscription_updated(db: Session, subscription: Dict[str, Any]) -> None:
    logger.info("Subscription updated: %s", _field(subscription, "id"))
    metadata = _field(subscription, "metadata") or {}
    status = _field(subscription, "status")

    if is_legal_product(metadata):
        if status == "canceled" or _field(subscription, "cancel_at_period_end"):
            logger.info("Legal subscription %s is being canceled", _field(subscription, "id"))
        if status == "active":
            plan_type = get_legal_plan_type(metadata)
            limits = get_legal_plan_limits(plan_type)
            for row in _rows_by_customer(db, _field(subscription, "customer")):
                row.legal_plan_id = plan_type
                row.legal_cases_limit = limits["cases_limit"]
                row.legal_documents_limit = limits["documents_limit"]
        return

    status = _subscription_status(subscription)
    for row in _rows_by_subscription(db, _field(subscription, "id")):
        if status:
            row.status = status
        row.current_period_start = _period(subscription, "current_period_start")
        row.current_period_end = _period(subscription, "current_period_end")
        row.cancel_at_period_end = bool(_field(subscription, "cancel_at_period_end", False))


def _handle_subscription_deleted(db: Session, subscription: Dict[str, Any]) -> None:
    logger.info("Subscription deleted: %s", _field(subscription, "id"))
    if is_legal_product(_field(subscription, "metadata")):
        logger.info("Reverting legal subscription to free plan")
        free = get_legal_plan_limits(LegalPlanId.FREE.value)
        for row in _rows_by_customer(db, _field(subscription, "customer")):
            row.legal_plan_id = LegalPlanId.FREE
            row.legal_cases_limit = free["cases_limit"]
            row.legal_documents_limit = free["documents_limit"]
        return

    for row in _rows_by_subscription(db, _field(subscription, "id")):
        row.plan_id = PlanId.FREE
        row.status = SubscriptionStatus.CANCELED
        row.stripe_subscription_id = None
        row.current_period_start = None
        row.current_period_end = None
        row.cancel_at_period_end = False


def _handle_payment_failed(db: Session, invoice: Dict[str, Any]) -> None:
    logger.info("Payment failed for invoice: %s", _field(invoice, "id"))
    subscription_id = _field(invoice, "subscription")
    if not subscription_id:
        return

    subscription = stripe.Subscription.retrieve(subscription_id)
    if is_legal_product(_field(subscription, "metadata")):
        logger.info("Payment failed for legal subscription, user retains access until cancellation")
        return

    for row in _rows_by_subscription(db, subscription_id):
        row.status = SubscriptionStatus.PAST_DUE


WEBHOOK_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.updated": _handle_subscription_updated,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_failed": _handle_payment_failed,
}


def handle_webhook_event(db: Session, event: Dict[str, Any]) -> Dict[str, bool]:
    """Apply a verified Stripe event to the subscriptions table"""
    event_type = event.get("type")
    logger.info(f"Received event: {event_type} ({event.get('id')})")

    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
        return {"received": True}

    try:
        handler(db, (event.get("data") or {}).get("object") or {})
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Error processing webhook")
        raise BillingError(f"Webhook handler error: {e}")

    return {"received": True}
