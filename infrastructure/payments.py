"""In-process payment processor used for local runs and tests"""
import asyncio
import logging
from decimal import Decimal
from typing import Dict
from uuid import uuid4

from domain.enums import PaymentOutcomeStatus
from domain.gateways import PaymentGateway, PaymentOutcome

logger = logging.getLogger(__name__)

DECLINE_TOKEN = "tok_decline"
PROCESSING_TOKEN = "tok_processing"
ERROR_TOKEN = "tok_error"


class PaymentProcessorError(Exception):
    """Processor could not be reached or answered garbage"""


class SimulatedPaymentGateway(PaymentGateway):
    """Card processor stand-in

    Well-known tokens drive the outcome: ``tok_decline`` is declined,
    ``tok_processing`` stays in processing, ``tok_error`` raises. Any other
    token captures successfully. ``latency`` delays every call.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.captures: Dict[str, Decimal] = {}
        self.refunds: Dict[str, Decimal] = {}

    async def capture(self, amount: Decimal, token: str, metadata: Dict[str, str]) -> PaymentOutcome:
        if self.latency:
            await asyncio.sleep(self.latency)

        if token == ERROR_TOKEN:
            raise PaymentProcessorError("Payment processor unavailable")
        if token == DECLINE_TOKEN:
            return PaymentOutcome(status=PaymentOutcomeStatus.DECLINED, reason="Your card was declined")

        reference = f"pay_{uuid4().hex[:24]}"
        if token == PROCESSING_TOKEN:
            logger.info("Capture %s for %s is processing", reference, amount)
            return PaymentOutcome(status=PaymentOutcomeStatus.PROCESSING, payment_reference=reference)

        self.captures[reference] = amount
        logger.info("Captured %s as %s", amount, reference)
        return PaymentOutcome(status=PaymentOutcomeStatus.SUCCEEDED, payment_reference=reference)

    async def refund(self, payment_reference: str, amount: Decimal, metadata: Dict[str, str]) -> PaymentOutcome:
        if self.latency:
            await asyncio.sleep(self.latency)

        captured = self.captures.get(payment_reference)
        if captured is None:
            return PaymentOutcome(status=PaymentOutcomeStatus.DECLINED, reason="Unknown payment")

        already_refunded = self.refunds.get(payment_reference, Decimal("0"))
        if already_refunded + amount > captured:
            return PaymentOutcome(
                status=PaymentOutcomeStatus.DECLINED,
                payment_reference=payment_reference,
                reason="Refund exceeds captured amount"
            )

        self.refunds[payment_reference] = already_refunded + amount
        logger.info("Refunded %s of %s", amount, payment_reference)
        return PaymentOutcome(status=PaymentOutcomeStatus.SUCCEEDED, payment_reference=payment_reference)
