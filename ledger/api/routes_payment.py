"""
Payment API routes - online checkout through SumUp, or a promise to pay on site
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ledger.api.deps import get_config, get_gateway
from ledger.core.config import Settings
from ledger.core.db import get_db
from ledger.schemas.payment import CheckoutRequest, DelayRequest, VerifyRequest
from ledger.services.payment_service import PaymentService
from ledger.services.sumup_client import SumUpClient
from ledger.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/pricing")
def get_pricing(db: Session = Depends(get_db)):
    """Current tier and prices"""
    return success_response(
        message="Pricing retrieved successfully",
        data=PaymentService.pricing_summary(db)
    )

@router.post("/checkout")
def create_checkout(
    checkout_data: CheckoutRequest,
    db: Session = Depends(get_db),
    gateway: Optional[SumUpClient] = Depends(get_gateway),
    config: Settings = Depends(get_config)
):
    return success_response(
        message="Checkout created successfully",
        data=PaymentService.initiate_checkout(db, checkout_data.member_id, gateway, config)
    )

@router.post("/verify")
def verify_payment(
    verify_data: VerifyRequest,
    db: Session = Depends(get_db),
    gateway: Optional[SumUpClient] = Depends(get_gateway)
):
    """Ask the gateway where a checkout stands and record the outcome"""
    return success_response(
        message="Payment status retrieved",
        data=PaymentService.verify_payment(db, verify_data.checkout_id, gateway)
    )

@router.post("/callback")
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    gateway: Optional[SumUpClient] = Depends(get_gateway)
):
    """Gateway webhook. Always acknowledged, whatever the body holds."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Payment callback with a non-JSON body")
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return await run_in_threadpool(PaymentService.handle_callback, db, payload, gateway)

@router.post("/delayed")
def mark_delayed(
    delay_data: DelayRequest,
    db: Session = Depends(get_db)
):
    """The member will pay at the door"""
    return success_response(
        message="Payment marked as delayed",
        data=PaymentService.mark_delayed(db, delay_data.member_id)
    )
