"""
Tests for leadrouter/services/payment_webhooks.py - deferred acceptance completion.
"""
import json
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from leadrouter.models import LeadEvent, Proposal
from leadrouter.services import lead_events
from leadrouter.services.lead_engine import accept_lead
from leadrouter.services.payment_webhooks import handle_payment_webhook
from leadrouter.services.pricing import LeadPricing


@pytest.fixture
def session_factory(db):
    """Route the webhook's own sessions to the test session."""
    @asynccontextmanager
    async def _factory():
        yield db

    with patch("leadrouter.services.payment_webhooks.async_session_factory", _factory):
        yield


@pytest.fixture
def dev_settings():
    with patch("leadrouter.services.payment_webhooks.get_settings") as mock_settings:
        mock_settings.return_value.stripe_webhook_secret = ""
        mock_settings.return_value.app_env = "development"
        yield mock_settings


def _event(event_type, intent_id, lead_id, **intent_fields):
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": 2000,
        "metadata": {
            "type": "lead_acceptance",
            "leadId": str(lead_id),
            "proposalDescription": "Replace the trap",
            "proposalPrice": "150.00",
        },
    }
    intent.update(intent_fields)
    return json.dumps({"type": event_type, "data": {"object": intent}}).encode()


async def _pending_acceptance(db, make, gateway):
    """A lead whose acceptance charge is waiting on 3-D Secure."""
    customer = await make.customer(email="pat@example.com")
    provider, _profile, _business = await make.provider(email="ace@provider.test")
    request = await make.service_request(customer)
    lead = await make.lead(request, provider)
    gateway.next_status = "requires_action"
    await accept_lead(
        db, lead.id, provider.id, "Replace the trap", "150.00", "pm_card_3ds",
        gateway=gateway, pricing=LeadPricing(),
    )
    return lead


async def _actions(db, lead) -> list[str]:
    result = await db.execute(select(LeadEvent.action).where(LeadEvent.lead_id == lead.id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# payment_intent.succeeded
# ---------------------------------------------------------------------------

class TestSucceeded:
    async def test_completes_acceptance(self, db, make, gateway, notifier, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)

        result = await handle_payment_webhook(_event("payment_intent.succeeded", "pi_test_1", lead.id), None)

        assert result == {"event_type": "payment_intent.succeeded", "handled": True, "error": None}
        await db.refresh(lead)
        assert lead.status == "accepted"
        assert lead.customer_email == "pat@example.com"
        assert lead.pending_proposal is None
        proposal = (await db.execute(select(Proposal).where(Proposal.lead_id == lead.id))).scalar_one()
        assert proposal.price == Decimal("150.00")

        await lead_events.drain()
        assert notifier.templates() == ["proposal_received"]
        assert notifier.sent[0][0] == "pat@example.com"

    async def test_replay_is_noop(self, db, make, gateway, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)
        payload = _event("payment_intent.succeeded", "pi_test_1", lead.id)

        await handle_payment_webhook(payload, None)
        await handle_payment_webhook(payload, None)

        proposals = (await db.execute(select(Proposal).where(Proposal.lead_id == lead.id))).scalars().all()
        assert len(proposals) == 1
        assert (await _actions(db, lead)).count("lead_accepted") == 1

    async def test_uses_intent_metadata_without_pending_proposal(self, db, make, session_factory, dev_settings):
        customer = await make.customer()
        provider, _profile, _business = await make.provider()
        request = await make.service_request(customer)
        lead = await make.lead(request, provider, stripe_payment_intent_id="pi_lost")

        await handle_payment_webhook(_event("payment_intent.succeeded", "pi_lost", lead.id), None)

        await db.refresh(lead)
        assert lead.status == "accepted"
        assert lead.lead_cost == 2000
        proposal = (await db.execute(select(Proposal).where(Proposal.lead_id == lead.id))).scalar_one()
        assert proposal.details == "Replace the trap"


# ---------------------------------------------------------------------------
# payment_intent.payment_failed / canceled
# ---------------------------------------------------------------------------

class TestFailedAndCanceled:
    async def test_failed_reopens_lead(self, db, make, gateway, notifier, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)

        await handle_payment_webhook(_event(
            "payment_intent.payment_failed", "pi_test_1", lead.id,
            last_payment_error={"message": "Authentication failed"},
        ), None)

        await db.refresh(lead)
        assert lead.status == "submitted"
        assert lead.stripe_payment_intent_id is None
        assert lead.pending_proposal is None
        assert "lead_payment_failed" in await _actions(db, lead)

        await lead_events.drain()
        assert notifier.templates() == ["lead_payment_failed"]
        assert notifier.sent[0][0] == "ace@provider.test"

    async def test_failed_for_superseded_intent_ignored(self, db, make, gateway, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)

        await handle_payment_webhook(_event("payment_intent.payment_failed", "pi_old", lead.id), None)

        await db.refresh(lead)
        assert lead.stripe_payment_intent_id == "pi_test_1"

    async def test_canceled_marks_cancelled(self, db, make, gateway, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)

        await handle_payment_webhook(_event(
            "payment_intent.canceled", "pi_test_1", lead.id, cancellation_reason="abandoned",
        ), None)

        await db.refresh(lead)
        assert lead.status == "cancelled"
        assert "lead_cancelled" in await _actions(db, lead)

    async def test_canceled_for_superseded_intent_ignored(self, db, make, gateway, session_factory, dev_settings):
        lead = await _pending_acceptance(db, make, gateway)

        await handle_payment_webhook(_event("payment_intent.canceled", "pi_old", lead.id), None)

        await db.refresh(lead)
        assert (lead.status, lead.stripe_payment_intent_id) == ("submitted", "pi_test_1")
        assert "lead_cancelled" not in await _actions(db, lead)

    async def test_late_cancel_does_not_block_current_charge(
        self, db, make, gateway, session_factory, dev_settings,
    ):
        lead = await _pending_acceptance(db, make, gateway)

        await handle_payment_webhook(_event("payment_intent.canceled", "pi_old", lead.id), None)
        await handle_payment_webhook(_event("payment_intent.succeeded", "pi_test_1", lead.id), None)

        await db.refresh(lead)
        assert lead.status == "accepted"
        assert lead.stripe_payment_intent_id == "pi_test_1"


# ---------------------------------------------------------------------------
# Dispatch and verification
# ---------------------------------------------------------------------------

class TestDispatch:
    async def test_other_payment_types_ignored(self, dev_settings):
        payload = json.dumps({
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_x", "metadata": {"type": "proposal_payment"}}},
        }).encode()
        result = await handle_payment_webhook(payload, None)
        assert result["handled"] is False
        assert result["error"] is None

    async def test_invalid_json_in_development(self, dev_settings):
        result = await handle_payment_webhook(b"{not json", None)
        assert result["handled"] is False
        assert result["error"].startswith("Invalid payload")

    async def test_bad_signature(self):
        class FakeSignatureError(Exception):
            pass

        fake_stripe = MagicMock()
        fake_stripe.SignatureVerificationError = FakeSignatureError
        fake_stripe.Webhook.construct_event.side_effect = FakeSignatureError("no match")

        with patch("leadrouter.services.payment_webhooks.get_settings") as mock_settings, \
                patch("leadrouter.services.payment_webhooks._get_stripe", return_value=fake_stripe):
            mock_settings.return_value.stripe_webhook_secret = "whsec_test"
            mock_settings.return_value.app_env = "production"
            result = await handle_payment_webhook(b"{}", "t=1,v1=bad")

        assert result == {"event_type": None, "handled": False, "error": "Invalid signature"}

    async def test_unknown_lead_is_handled_quietly(self, db, session_factory, dev_settings):
        result = await handle_payment_webhook(
            _event("payment_intent.succeeded", "pi_ghost", "8b1f0f5e-0000-4000-8000-000000000000"), None,
        )
        assert result["handled"] is True
