"""
Tests for leadrouter/services/payments.py - the Stripe charge adapter.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from leadrouter.errors import PaymentFailed
from leadrouter.services.payments import StripeChargeGateway, _get_stripe


@pytest.fixture
def fake_stripe():
    module = MagicMock()
    module.StripeError = stripe.StripeError
    with patch("leadrouter.services.payments._get_stripe", return_value=module):
        yield module


def _intent(status, **extra):
    return SimpleNamespace(id="pi_123", status=status, client_secret="pi_123_secret", last_payment_error=None, **extra)


class TestCreateAndConfirm:
    async def test_confirms_in_one_call(self, fake_stripe):
        fake_stripe.PaymentIntent.create.return_value = _intent("succeeded")

        result = await StripeChargeGateway().create_and_confirm(
            1700, "usd", "pm_card_visa", {"leadId": "abc", "serviceRequestId": None, "proposalPrice": 150},
        )

        assert result.succeeded
        assert result.id == "pi_123"
        kwargs = fake_stripe.PaymentIntent.create.call_args.kwargs
        assert kwargs["amount"] == 1700
        assert kwargs["confirm"] is True
        assert kwargs["automatic_payment_methods"] == {"enabled": True, "allow_redirects": "never"}
        assert kwargs["metadata"] == {"leadId": "abc", "proposalPrice": "150"}

    @pytest.mark.parametrize("stripe_status,expected", [
        ("requires_action", "requires_action"),
        ("processing", "processing"),
        ("requires_capture", "processing"),
        ("requires_payment_method", "failed"),
        ("canceled", "canceled"),
        ("something_new", "failed"),
    ])
    async def test_status_mapping(self, fake_stripe, stripe_status, expected):
        fake_stripe.PaymentIntent.create.return_value = _intent(stripe_status)
        result = await StripeChargeGateway().create_and_confirm(500, "usd", "pm_1", {})
        assert result.status == expected

    async def test_last_payment_error_surfaces(self, fake_stripe):
        fake_stripe.PaymentIntent.create.return_value = SimpleNamespace(
            id="pi_9", status="requires_payment_method", client_secret=None,
            last_payment_error=SimpleNamespace(message="Your card was declined."),
        )
        result = await StripeChargeGateway().create_and_confirm(500, "usd", "pm_1", {})
        assert result.error == "Your card was declined."

    async def test_stripe_error_becomes_payment_failed(self, fake_stripe):
        fake_stripe.PaymentIntent.create.side_effect = stripe.StripeError("Your card has expired.")

        with pytest.raises(PaymentFailed) as exc_info:
            await StripeChargeGateway().create_and_confirm(500, "usd", "pm_1", {"leadId": "abc"})

        assert "Your card has expired." in exc_info.value.message


class TestRetrieve:
    async def test_retrieve(self, fake_stripe):
        fake_stripe.PaymentIntent.retrieve.return_value = _intent("processing")
        result = await StripeChargeGateway().retrieve("pi_123")
        assert result.awaiting_customer
        fake_stripe.PaymentIntent.retrieve.assert_called_once_with("pi_123")


class TestGetStripe:
    def test_requires_secret_key(self):
        with patch("leadrouter.services.payments.get_settings") as mock_settings:
            mock_settings.return_value.stripe_secret_key = ""
            with pytest.raises(ValueError):
                _get_stripe()

    def test_disables_automatic_retries(self):
        with patch("leadrouter.services.payments.get_settings") as mock_settings:
            mock_settings.return_value.stripe_secret_key = "sk_test_123"
            module = _get_stripe()
        assert module.api_key == "sk_test_123"
        assert module.max_network_retries == 0
