"""
Tests for PayPalAdapter.

requests.request is patched; every test starts with an empty token cache.
"""

import pytest
import requests
from django.core.cache import cache
from urllib3.exceptions import NewConnectionError

from earnings.adapters import (
    CreatePayoutBatchParams,
    IdempotencyKeyGenerator,
    PayoutBatchDetails,
    PayoutItemStatus,
    PayPalAdapter,
)
from earnings.exceptions import (
    GatewayAuthenticationError,
    GatewayConnectionError,
    GatewayRateLimitError,
    GatewayRejectedError,
    GatewayServerError,
    GatewayTimeoutError,
)


def make_response(mocker, status_code=200, body=None, reason="OK"):
    response = mocker.MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body
    return response


TOKEN_BODY = {"access_token": "A21AA-token", "expires_in": 32400}


@pytest.fixture(autouse=True)
def paypal_settings(settings):
    settings.PAYPAL_CLIENT_ID = "client-id"
    settings.PAYPAL_CLIENT_SECRET = "client-secret"
    settings.PAYPAL_API_BASE = "https://api-m.sandbox.paypal.com"
    settings.PAYPAL_API_TIMEOUT_SECONDS = 10
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def mock_request(mocker):
    return mocker.patch("earnings.adapters.paypal_adapter.requests.request")


@pytest.fixture
def params():
    return CreatePayoutBatchParams(
        sender_batch_id="payout:req-1:1:abcd1234",
        sender_item_id="req-1",
        receiver="seller@paypal.example.com",
        amount_cents=5000,
    )


class TestCreatePayoutBatchParams:
    def test_payload(self, params):
        payload = params.to_payload()

        assert payload["sender_batch_header"]["sender_batch_id"] == "payout:req-1:1:abcd1234"
        item = payload["items"][0]
        assert item["amount"] == {"value": "50.00", "currency": "USD"}
        assert item["receiver"] == "seller@paypal.example.com"
        assert item["sender_item_id"] == "req-1"
        assert item["recipient_type"] == "EMAIL"

    @pytest.mark.parametrize(
        "overrides",
        [{"amount_cents": 0}, {"sender_batch_id": ""}, {"receiver": ""}],
    )
    def test_validation(self, overrides):
        fields = {
            "sender_batch_id": "k",
            "sender_item_id": "req-1",
            "receiver": "a@b.com",
            "amount_cents": 100,
            **overrides,
        }
        with pytest.raises(ValueError):
            CreatePayoutBatchParams(**fields)


class TestIdempotencyKeyGenerator:
    def test_deterministic_per_attempt(self):
        first = IdempotencyKeyGenerator.generate("payout", "req-1", 1)

        assert first == IdempotencyKeyGenerator.generate("payout", "req-1", 1)
        assert first != IdempotencyKeyGenerator.generate("payout", "req-1", 2)
        assert first.startswith("payout:req-1:1:")
        assert len(first.rsplit(":", 1)[1]) == 8


class TestAccessToken:
    def test_fetches_and_caches(self, mocker, mock_request):
        mock_request.return_value = make_response(mocker, body=TOKEN_BODY)

        assert PayPalAdapter.get_access_token() == "A21AA-token"
        assert PayPalAdapter.get_access_token() == "A21AA-token"

        assert mock_request.call_count == 1
        call = mock_request.call_args
        assert call.args == ("POST", "https://api-m.sandbox.paypal.com/v1/oauth2/token")
        assert call.kwargs["auth"] == ("client-id", "client-secret")
        assert call.kwargs["timeout"] == 10

    def test_missing_credentials(self, settings, mock_request):
        settings.PAYPAL_CLIENT_SECRET = ""

        with pytest.raises(GatewayAuthenticationError):
            PayPalAdapter.get_access_token()
        mock_request.assert_not_called()

    def test_no_token_in_response(self, mocker, mock_request):
        mock_request.return_value = make_response(mocker, body={})

        with pytest.raises(GatewayAuthenticationError):
            PayPalAdapter.get_access_token()


class TestCreatePayoutBatch:
    def test_success(self, mocker, mock_request, params):
        batch_body = {
            "batch_header": {
                "payout_batch_id": "5UXD2E8A7EBQJ",
                "batch_status": "PENDING",
                "sender_batch_header": {"sender_batch_id": params.sender_batch_id},
            }
        }
        mock_request.side_effect = [
            make_response(mocker, body=TOKEN_BODY),
            make_response(mocker, status_code=201, body=batch_body),
        ]

        result = PayPalAdapter.create_payout_batch(params)

        assert result.batch_id == "5UXD2E8A7EBQJ"
        assert result.batch_status == "PENDING"
        assert result.sender_batch_id == params.sender_batch_id
        payout_call = mock_request.call_args_list[1]
        assert payout_call.args[1].endswith("/v1/payments/payouts")
        headers = payout_call.kwargs["headers"]
        assert headers["Authorization"] == "Bearer A21AA-token"
        assert headers["PayPal-Request-Id"] == params.sender_batch_id

    def test_missing_batch_id_is_ambiguous(self, mocker, mock_request, params):
        mock_request.side_effect = [
            make_response(mocker, body=TOKEN_BODY),
            make_response(mocker, status_code=201, body={"batch_header": {}}),
        ]

        with pytest.raises(GatewayServerError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is True

    def test_token_timeout_is_definite(self, mock_request, params):
        mock_request.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(GatewayTimeoutError) as exc_info:
            PayPalAdapter.create_payout_batch(params)

        assert exc_info.value.outcome_unknown is False
        assert mock_request.call_count == 1
        assert mock_request.call_args.args[1].endswith("/v1/oauth2/token")

    def test_token_server_error_is_definite(self, mocker, mock_request, params):
        mock_request.return_value = make_response(
            mocker, status_code=503, body={"name": "SERVICE_UNAVAILABLE"}, reason="Service Unavailable"
        )

        with pytest.raises(GatewayServerError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is False


class TestErrorTranslation:
    @pytest.fixture(autouse=True)
    def cached_token(self):
        cache.set(PayPalAdapter.TOKEN_CACHE_KEY, "cached-token", timeout=60)

    def test_timeout_is_ambiguous(self, mock_request, params):
        mock_request.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(GatewayTimeoutError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is True

    def test_connect_timeout_is_definite(self, mock_request, params):
        mock_request.side_effect = requests.exceptions.ConnectTimeout("connect timed out")

        with pytest.raises(GatewayConnectionError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is False

    def test_refused_connection_is_definite(self, mocker, mock_request, params):
        reason = NewConnectionError(mocker.MagicMock(), "Connection refused")
        mock_request.side_effect = requests.exceptions.ConnectionError(
            mocker.MagicMock(reason=reason)
        )

        with pytest.raises(GatewayConnectionError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is False
        assert exc_info.value.gateway_code == "connection_error"

    def test_dropped_connection_is_ambiguous(self, mock_request, params):
        mock_request.side_effect = requests.exceptions.ConnectionError("Connection reset by peer")

        with pytest.raises(GatewayConnectionError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is True
        assert exc_info.value.gateway_code == "connection_dropped"

    def test_server_error_is_ambiguous(self, mocker, mock_request, params):
        mock_request.return_value = make_response(
            mocker,
            status_code=503,
            body={"name": "SERVICE_UNAVAILABLE", "debug_id": "dbg-1"},
            reason="Service Unavailable",
        )

        with pytest.raises(GatewayServerError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is True
        assert exc_info.value.debug_id == "dbg-1"

    def test_rejection_is_definite(self, mocker, mock_request, params):
        mock_request.return_value = make_response(
            mocker,
            status_code=422,
            body={"name": "INSUFFICIENT_FUNDS", "message": "Sender has insufficient funds"},
        )

        with pytest.raises(GatewayRejectedError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.outcome_unknown is False
        assert exc_info.value.gateway_code == "INSUFFICIENT_FUNDS"
        assert "insufficient funds" in exc_info.value.message

    def test_unauthorized_clears_token(self, mocker, mock_request, params):
        mock_request.return_value = make_response(
            mocker, status_code=401, body={"error": "invalid_token"}
        )

        with pytest.raises(GatewayAuthenticationError):
            PayPalAdapter.create_payout_batch(params)
        assert cache.get(PayPalAdapter.TOKEN_CACHE_KEY) is None

    def test_rate_limited(self, mocker, mock_request, params):
        mock_request.return_value = make_response(mocker, status_code=429, body={})

        with pytest.raises(GatewayRateLimitError) as exc_info:
            PayPalAdapter.create_payout_batch(params)
        assert exc_info.value.is_retryable is True

    def test_non_json_success_body(self, mocker, mock_request, params):
        response = make_response(mocker, status_code=201, body={})
        response.json.side_effect = ValueError("not json")
        mock_request.return_value = response

        with pytest.raises(GatewayServerError):
            PayPalAdapter.create_payout_batch(params)


class TestGetPayoutBatch:
    def test_parses_items(self, mocker, mock_request):
        cache.set(PayPalAdapter.TOKEN_CACHE_KEY, "cached-token", timeout=60)
        mock_request.return_value = make_response(
            mocker,
            body={
                "batch_header": {"payout_batch_id": "B-1", "batch_status": "SUCCESS"},
                "items": [
                    {
                        "payout_item_id": "ITEM-1",
                        "transaction_id": "TXN-1",
                        "transaction_status": "success",
                        "payout_item": {"sender_item_id": "req-1"},
                    }
                ],
            },
        )

        details = PayPalAdapter.get_payout_batch("B-1")

        assert details.batch_status == "SUCCESS"
        item = details.find_item("req-1")
        assert item.transaction_status == "SUCCESS"
        assert item.transaction_id == "TXN-1"
        assert mock_request.call_args.args == (
            "GET",
            "https://api-m.sandbox.paypal.com/v1/payments/payouts/B-1",
        )


class TestPayoutBatchDetails:
    def test_find_item_falls_back_to_only_item(self):
        details = PayoutBatchDetails(
            batch_id="B", batch_status="SUCCESS", items=[PayoutItemStatus("I", "SUCCESS")]
        )

        assert details.find_item("anything").payout_item_id == "I"

    def test_find_item_none_in_multi_item_batch(self):
        details = PayoutBatchDetails(
            batch_id="B",
            batch_status="SUCCESS",
            items=[PayoutItemStatus("I1", "SUCCESS", "a"), PayoutItemStatus("I2", "SUCCESS", "b")],
        )

        assert details.find_item("c") is None


class TestVerifyWebhookSignature:
    HEADERS = {
        "paypal-transmission-id": "t-1",
        "paypal-transmission-time": "2026-01-01T00:00:00Z",
        "paypal-transmission-sig": "sig",
        "paypal-cert-url": "https://api.paypal.com/cert",
        "paypal-auth-algo": "SHA256withRSA",
    }

    @pytest.fixture(autouse=True)
    def cached_token(self):
        cache.set(PayPalAdapter.TOKEN_CACHE_KEY, "cached-token", timeout=60)

    @pytest.mark.parametrize("status,expected", [("SUCCESS", True), ("FAILURE", False)])
    def test_verification_status(self, mocker, mock_request, status, expected):
        mock_request.return_value = make_response(mocker, body={"verification_status": status})

        verified = PayPalAdapter.verify_webhook_signature(self.HEADERS, {"id": "WH-1"}, "WH-ID")

        assert verified is expected
        body = mock_request.call_args.kwargs["json"]
        assert body["webhook_id"] == "WH-ID"
        assert body["transmission_sig"] == "sig"
        assert body["webhook_event"] == {"id": "WH-1"}

    def test_missing_headers(self, mock_request):
        headers = {k: v for k, v in self.HEADERS.items() if k != "paypal-transmission-sig"}

        assert PayPalAdapter.verify_webhook_signature(headers, {}, "WH-ID") is False
        mock_request.assert_not_called()
