"""
Seller notifications for payout outcomes.

Notifications are queued with transaction.on_commit so a rolled-back
state change never emails the seller, and are sent by a Celery task
(earnings.tasks.send_payout_notification).

Templates:
    earnings/email/payout_completed.txt
    earnings/email/payout_failed.txt
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction
from django.template.loader import render_to_string

from earnings.state_machines import PayoutRequestStatus

if TYPE_CHECKING:
    from earnings.models import PayoutRequest

logger = logging.getLogger(__name__)

SUBJECTS = {
    PayoutRequestStatus.COMPLETED: "Your payout has been sent",
    PayoutRequestStatus.FAILED: "Your payout could not be completed",
}


def notify_payout_status(payout_request: PayoutRequest) -> None:
    """
    Queue an email about the request's current (final) status.

    Must be called inside the transaction that made the change.
    """
    from earnings.tasks import send_payout_notification

    request_id = str(payout_request.id)
    status = str(payout_request.status)
    transaction.on_commit(lambda: send_payout_notification.delay(request_id, status))


def send_payout_email(payout_request: PayoutRequest, status: str) -> bool:
    """
    Render and send the email for ``status``.

    Returns:
        False if there is no template for the status or no recipient
    """
    subject = SUBJECTS.get(status)
    recipient = payout_request.seller.user.email or payout_request.payout_email
    if subject is None or not recipient:
        logger.info(
            "No payout notification to send",
            extra={"payout_request_id": str(payout_request.id), "status": status},
        )
        return False

    context = {
        "payout_request": payout_request,
        "amount": f"{payout_request.amount_cents / 100:.2f}",
        "currency": payout_request.currency.upper(),
        "failure_reason": payout_request.failure_reason,
    }
    body = render_to_string(f"earnings/email/payout_{status}.txt", context)

    email = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient],
    )
    email.send(fail_silently=False)

    logger.info(
        f"Sent payout {status} email",
        extra={"payout_request_id": str(payout_request.id), "status": status},
    )
    return True
