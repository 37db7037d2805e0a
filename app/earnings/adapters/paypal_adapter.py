"""
PayPal REST adapter for payouts and webhook verification.

All PayPal calls go through PayPalAdapter so they share timeouts, error
translation, OAuth token caching and timing logs.

Features:
- Every call bounded by PAYPAL_API_TIMEOUT_SECONDS
- requests exceptions and HTTP errors translated to GatewayError subclasses,
  flagged outcome_unknown when PayPal may have acted on the request
- OAuth2 client-credentials token cached (django cache) until shortly
  before it expires
- Deterministic sender_batch_id per payout attempt (IdempotencyKeyGenerator)

Configuration (via settings):
- PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET
- PAYPAL_API_BASE: https://api-m.sandbox.paypal.com or https://api-m.paypal.com
- PAYPAL_API_TIMEOUT_SECONDS (default: 10)

Usage:
    from earnings.adapters import PayPalAdapter, CreatePayoutBatchParams

    result = PayPalAdapter.create_payout_batch(
        CreatePayoutBatchParams(
            sender_batch_id=IdempotencyKeyGenerator.generate("payout", request.id, 1),
            sender_item_id=request.sender_item_id,
            receiver="seller@example.com",
            amount_cents=5000,
        )
    )
    result.batch_id  # "5UXD2E8A7EBQJ"
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings
from django.core.cache import cache
from urllib3.exceptions import NewConnectionError

from earnings.exceptions import (
    GatewayAuthenticationError,
    GatewayConnectionError,
    GatewayError,
    GatewayRateLimitError,
    GatewayRejectedError,
    GatewayServerError,
    GatewayTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePayoutBatchParams:
    """
    A single-item PayPal payout batch.

    Attributes:
        sender_batch_id: Idempotency key; PayPal rejects a reused id
        sender_item_id: "{request_id}:{attempt}", echoed back in webhooks
        receiver: PayPal account email of the seller
        amount_cents: Amount to send
    """

    sender_batch_id: str
    sender_item_id: str
    receiver: str
    amount_cents: int
    currency: str = "usd"
    note: str = ""
    email_subject: str = ""
    email_message: str = ""

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.sender_batch_id:
            raise ValueError("sender_batch_id is required")
        if not self.receiver:
            raise ValueError("receiver is required")

    def to_payload(self) -> dict[str, Any]:
        value = (Decimal(self.amount_cents) / 100).quantize(Decimal("0.01"))
        return {
            "sender_batch_header": {
                "sender_batch_id": self.sender_batch_id,
                "email_subject": self.email_subject or settings.PAYOUT_EMAIL_SUBJECT,
                "email_message": self.email_message,
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": str(value), "currency": self.currency.upper()},
                    "receiver": self.receiver,
                    "note": self.note,
                    "sender_item_id": self.sender_item_id,
                }
            ],
        }


@dataclass
class PayoutBatchResult:
    """Response to a payout batch submission."""

    batch_id: str
    batch_status: str
    sender_batch_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutItemStatus:
    """
    One item of a payout batch, as returned by the batch status endpoint.

    transaction_status is one of SUCCESS, FAILED, PENDING, UNCLAIMED,
    RETURNED, ONHOLD, BLOCKED, REFUNDED, REVERSED.
    """

    payout_item_id: str
    transaction_status: str
    sender_item_id: str | None = None
    transaction_id: str | None = None
    errors: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutBatchDetails:
    batch_id: str
    batch_status: str
    items: list[PayoutItemStatus] = field(default_factory=list)
    raw_response: dict[str, Any] = field(default_factory=dict)

    def find_item(self, sender_item_id: str) -> PayoutItemStatus | None:
        for item in self.items:
            if item.sender_item_id == sender_item_id:
                return item
        # Single-item batches: fall back to the only item
        if len(self.items) == 1:
            return self.items[0]
        return None


class IdempotencyKeyGenerator:
    """
    Deterministic keys for gateway submissions.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always yields the same key, so a
    retried submission of one attempt is deduplicated by PayPal while a new
    attempt (attempt + 1) is a distinct batch.
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# PayPal Adapter
# =============================================================================


class PayPalAdapter:
    """
    Adapter for PayPal REST operations.

    All methods are classmethods; no instance state. The only shared state
    is the cached access token.
    """

    TOKEN_CACHE_KEY = "paypal:access_token"
    # Refresh this many seconds before PayPal's expiry
    TOKEN_EXPIRY_MARGIN = 60

    WEBHOOK_HEADERS = {
        "transmission_id": "paypal-transmission-id",
        "transmission_time": "paypal-transmission-time",
        "transmission_sig": "paypal-transmission-sig",
        "cert_url": "paypal-cert-url",
        "auth_algo": "paypal-auth-algo",
    }

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _url(path: str) -> str:
        return f"{settings.PAYPAL_API_BASE.rstrip('/')}{path}"

    @staticmethod
    def _timeout() -> float:
        return getattr(settings, "PAYPAL_API_TIMEOUT_SECONDS", 10)

    # =========================================================================
    # Authentication
    # =========================================================================

    @classmethod
    def get_access_token(cls) -> str:
        """
        Return a valid OAuth2 access token, fetching one if none is cached.

        Raises:
            GatewayAuthenticationError: Missing or rejected credentials
            GatewayError: Transport failure
        """
        token = cache.get(cls.TOKEN_CACHE_KEY)
        if token:
            return token

        if not settings.PAYPAL_CLIENT_ID or not settings.PAYPAL_CLIENT_SECRET:
            raise GatewayAuthenticationError("PayPal credentials are not configured")

        body = cls._send(
            "POST",
            "/v1/oauth2/token",
            log_context={"operation": "get_access_token"},
            data={"grant_type": "client_credentials"},
            auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
            headers={"Accept": "application/json"},
        )
        token = body.get("access_token")
        if not token:
            raise GatewayAuthenticationError("PayPal returned no access token")

        expires_in = int(body.get("expires_in", 0))
        ttl = max(expires_in - cls.TOKEN_EXPIRY_MARGIN, 0)
        if ttl:
            cache.set(cls.TOKEN_CACHE_KEY, token, timeout=ttl)
        return token

    @classmethod
    def clear_access_token(cls) -> None:
        cache.delete(cls.TOKEN_CACHE_KEY)

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_payout_batch(
        cls,
        params: CreatePayoutBatchParams,
        trace_id: str | None = None,
    ) -> PayoutBatchResult:
        """
        Submit a payout batch.

        Raises:
            GatewayError subclasses; check ``outcome_unknown`` before
            assuming the payout was not created.
        """
        log_context = {
            "operation": "create_payout_batch",
            "sender_batch_id": params.sender_batch_id,
            "sender_item_id": params.sender_item_id,
            "amount_cents": params.amount_cents,
            "trace_id": trace_id,
        }
        try:
            token = cls.get_access_token()
        except GatewayError as e:
            # The payout itself was never sent
            e.outcome_unknown = False
            raise
        body = cls._authorized(
            "POST",
            "/v1/payments/payouts",
            log_context=log_context,
            json=params.to_payload(),
            headers={"PayPal-Request-Id": params.sender_batch_id},
            token=token,
        )

        header = body.get("batch_header") or {}
        batch_id = header.get("payout_batch_id")
        if not batch_id:
            raise GatewayServerError(
                "PayPal response has no payout_batch_id",
                details={"response": body},
            )
        return PayoutBatchResult(
            batch_id=batch_id,
            batch_status=header.get("batch_status", ""),
            sender_batch_id=(header.get("sender_batch_header") or {}).get(
                "sender_batch_id", params.sender_batch_id
            ),
            raw_response=body,
        )

    @classmethod
    def get_payout_batch(cls, batch_id: str) -> PayoutBatchDetails:
        """Fetch a batch and its items."""
        body = cls._authorized(
            "GET",
            f"/v1/payments/payouts/{batch_id}",
            log_context={"operation": "get_payout_batch", "batch_id": batch_id},
            log_level=logging.DEBUG,
        )
        header = body.get("batch_header") or {}
        items = [
            PayoutItemStatus(
                payout_item_id=item.get("payout_item_id", ""),
                transaction_status=(item.get("transaction_status") or "").upper(),
                sender_item_id=(item.get("payout_item") or {}).get("sender_item_id"),
                transaction_id=item.get("transaction_id"),
                errors=item.get("errors") or {},
                raw=item,
            )
            for item in body.get("items") or []
        ]
        return PayoutBatchDetails(
            batch_id=header.get("payout_batch_id", batch_id),
            batch_status=header.get("batch_status", ""),
            items=items,
            raw_response=body,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        headers: Mapping[str, str],
        event: dict[str, Any],
        webhook_id: str,
    ) -> bool:
        """
        Ask PayPal whether a webhook delivery is authentic.

        Args:
            headers: Request headers (case-insensitive mapping)
            event: Parsed webhook body
            webhook_id: Id of the webhook subscription that received it

        Returns:
            True only if PayPal answers verification_status == SUCCESS

        Raises:
            GatewayError: PayPal could not be asked
        """
        values = {name: headers.get(header) for name, header in cls.WEBHOOK_HEADERS.items()}
        if not all(values.values()):
            cls.get_logger().warning(
                "Webhook is missing PayPal transmission headers",
                extra={"missing": [cls.WEBHOOK_HEADERS[k] for k, v in values.items() if not v]},
            )
            return False

        body = cls._authorized(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            log_context={
                "operation": "verify_webhook_signature",
                "transmission_id": values["transmission_id"],
            },
            json={**values, "webhook_id": webhook_id, "webhook_event": event},
            log_level=logging.DEBUG,
        )
        return body.get("verification_status") == "SUCCESS"

    # =========================================================================
    # Transport
    # =========================================================================

    @classmethod
    def _authorized(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        log_level: int = logging.INFO,
        headers: dict[str, str] | None = None,
        token: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        token = token or cls.get_access_token()
        return cls._send(
            method,
            path,
            log_context=log_context,
            log_level=log_level,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                **(headers or {}),
            },
            **kwargs,
        )

    @classmethod
    def _send(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        log_level: int = logging.INFO,
        **kwargs: Any,
    ) -> dict[str, Any]:
        logger = cls.get_logger()
        start_time = time.time()
        logger.log(log_level, "Starting PayPal operation", extra=log_context)

        try:
            response = requests.request(
                method,
                cls._url(path),
                timeout=cls._timeout(),
                **kwargs,
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_transport_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        if response.status_code >= 400:
            cls._handle_http_error(response, log_context, duration_ms)

        try:
            body = response.json() if response.content else {}
        except ValueError:
            logger.error(
                "Unreadable PayPal response",
                extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
            )
            raise GatewayServerError(
                "PayPal returned a response that is not JSON",
                status_code=response.status_code,
            )

        logger.log(
            log_level,
            "PayPal operation completed",
            extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return body

    # =========================================================================
    # Error Handling
    # =========================================================================

    @staticmethod
    def _never_connected(error: requests.ConnectionError) -> bool:
        if isinstance(error, requests.exceptions.ConnectTimeout):
            return True
        reason = getattr(error.args[0], "reason", None) if error.args else None
        return isinstance(reason, NewConnectionError)

    @classmethod
    def _handle_transport_error(
        cls,
        error: requests.RequestException,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate a requests exception into a GatewayError.

        Raises:
            GatewayConnectionError: No connection was made (definite), or it
                dropped after sending (outcome unknown)
            GatewayTimeoutError: Sent, no answer in time (outcome unknown)
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        # ConnectTimeout is both a ConnectionError and a Timeout
        if isinstance(error, requests.ConnectionError) and cls._never_connected(error):
            logger.error("Could not connect to PayPal", extra=log_context)
            raise GatewayConnectionError(
                "Could not connect to PayPal. Please retry.",
                gateway_code="connection_error",
            )

        if isinstance(error, requests.Timeout):
            logger.error("PayPal request timed out", extra=log_context)
            raise GatewayTimeoutError(
                f"PayPal did not answer within {cls._timeout()}s",
                gateway_code="timeout",
            )

        if isinstance(error, requests.ConnectionError):
            logger.error("Connection to PayPal dropped", extra=log_context, exc_info=True)
            raise GatewayConnectionError(
                "Connection to PayPal dropped before a response arrived",
                gateway_code="connection_dropped",
                outcome_unknown=True,
            )

        logger.error(
            f"Unexpected error calling PayPal: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayConnectionError(
            f"Unexpected PayPal transport error: {error}",
            gateway_code="unknown_error",
        )

    @classmethod
    def _handle_http_error(
        cls,
        response: requests.Response,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate a 4xx/5xx PayPal response into a GatewayError.

        PayPal error bodies look like
        {"name": "INSUFFICIENT_FUNDS", "message": "...", "debug_id": "..."}
        (OAuth errors use "error" / "error_description").
        """
        logger = cls.get_logger()
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        name = body.get("name") or body.get("error")
        message = body.get("message") or body.get("error_description") or response.reason
        debug_id = body.get("debug_id")
        log_context = {
            **log_context,
            "status_code": status,
            "gateway_code": name,
            "debug_id": debug_id,
            "duration_ms": duration_ms,
        }
        kwargs: dict[str, Any] = {
            "gateway_code": name,
            "debug_id": debug_id,
            "status_code": status,
        }

        if status in (401, 403):
            logger.critical("PayPal authentication failed - check credentials", extra=log_context)
            cls.clear_access_token()
            raise GatewayAuthenticationError(f"PayPal authentication failed: {message}", **kwargs)

        if status == 429:
            logger.warning("Rate limited by PayPal", extra=log_context)
            raise GatewayRateLimitError("PayPal rate limit exceeded. Please retry.", **kwargs)

        if 400 <= status < 500:
            logger.error("PayPal rejected the request", extra=log_context)
            raise GatewayRejectedError(f"PayPal rejected the request: {message}", **kwargs)

        logger.error("PayPal server error", extra=log_context)
        raise GatewayServerError(f"PayPal server error: {message}", **kwargs)


__all__ = [
    "CreatePayoutBatchParams",
    "IdempotencyKeyGenerator",
    "PayPalAdapter",
    "PayoutBatchDetails",
    "PayoutBatchResult",
    "PayoutItemStatus",
]
