"""
Billing API Endpoints
=====================

Stripe checkout, customer portal and the webhook that keeps the
`subscriptions` table in sync.

    POST /api/v1/billing/legal-checkout-session  - Checkout for a legal plan
    POST /api/v1/billing/checkout-session        - Checkout for notebook Pro
    POST /api/v1/billing/portal                  - Stripe customer portal
    POST /api/v1/billing/webhook                 - Stripe events (no auth, signed)
    GET  /api/v1/billing/subscription            - Current subscription row
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from . import billing
from .auth import AuthContext, get_auth_context
from .db.models import User
from .db.session import get_db
from .errors import InsightsError, NotFoundError
from .schemas import CheckoutRequest, PortalRequest, serialize_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


def _current_user(db: Session, auth: AuthContext) -> User:
    user = db.query(User).filter(User.id == auth.user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


@router.post("/legal-checkout-session")
def create_legal_checkout_session(
    body: CheckoutRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    try:
        return billing.create_legal_checkout_session(
            db, _current_user(db, auth), body.price_id, body.success_url, body.cancel_url,
        )
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Error creating legal checkout session")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/checkout-session")
def create_checkout_session(
    body: CheckoutRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    try:
        return billing.create_checkout_session(
            db, _current_user(db, auth), body.price_id, body.success_url, body.cancel_url,
        )
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Error creating checkout session")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/portal")
def create_portal_session(
    body: PortalRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    try:
        return billing.create_customer_portal_session(db, _current_user(db, auth), body.return_url)
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Error creating portal session")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """
    Stripe webhook receiver.

    The raw body is needed for signature verification, so it is read
    directly from the request instead of through a pydantic model.
    """
    payload = await request.body()
    try:
        event = billing.parse_webhook_event(payload, stripe_signature)
    except billing.WebhookSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return billing.handle_webhook_event(db, event)


@router.get("/subscription")
def get_subscription(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(billing.get_subscription(db, auth.user_id))
