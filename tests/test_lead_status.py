"""
Tests for leadrouter/services/lead_status.py - provider inbox views.
"""
import pytest

from leadrouter.services.lead_status import (
    DisplayStatus,
    list_provider_leads,
    mask_email,
    mask_name,
    mask_phone,
    to_display_status,
)


class TestDisplayStatus:
    @pytest.mark.parametrize("status,intent,expected", [
        ("submitted", None, DisplayStatus.PENDING),
        ("routed", None, DisplayStatus.PENDING),
        ("submitted", "pi_1", DisplayStatus.PAYMENT_PENDING),
        ("accepted", "pi_1", DisplayStatus.ACCEPTED),
        ("rejected", None, DisplayStatus.REJECTED),
        ("cancelled", "pi_1", DisplayStatus.PAYMENT_FAILED),
        ("mystery", None, DisplayStatus.PENDING),
    ])
    def test_mapping(self, status, intent, expected):
        assert to_display_status(status, intent) == expected


class TestMasking:
    def test_name(self):
        assert mask_name("Jane Doe") == "Jane D***"
        assert mask_name("Cher") == "Cher"
        assert mask_name(None) is None

    def test_email(self):
        assert mask_email("jane@example.com") == "j***@example.com"
        assert mask_email("not-an-email") == "***"
        assert mask_email(None) is None

    def test_phone(self):
        assert mask_phone("+1 (512) 555-0100") == "***-***-0100"
        assert mask_phone("12") == "***"


class TestListProviderLeads:
    async def test_masks_until_accepted(self, db, make):
        customer = await make.customer()
        provider, _p, _b = await make.provider()
        pending_request = await make.service_request(customer)
        accepted_request = await make.service_request(customer)
        contact = dict(customer_name="Jane Doe", customer_email="jane@example.com", customer_phone="+15125550100")
        await make.lead(pending_request, provider, **contact)
        await make.lead(accepted_request, provider, status="accepted", stripe_payment_intent_id="pi_1", **contact)

        accepted = await list_provider_leads(db, provider.id, DisplayStatus.ACCEPTED)
        pending = await list_provider_leads(db, provider.id, DisplayStatus.PENDING)

        assert accepted["total"] == 1
        assert accepted["leads"][0]["customer_email"] == "jane@example.com"
        assert pending["leads"][0]["customer_name"] == "Jane D***"
        assert pending["leads"][0]["customer_email"] == "j***@example.com"
        assert pending["leads"][0]["customer_phone"] == "***-***-0100"
        assert pending["leads"][0]["project_title"] == "Fix leaking sink"

    async def test_filter_matches_display_status(self, db, make):
        customer = await make.customer()
        provider, _p, _b = await make.provider()
        for status, intent in [("submitted", None), ("submitted", "pi_wait"), ("cancelled", "pi_x"), ("rejected", None)]:
            request = await make.service_request(customer)
            await make.lead(request, provider, status=status, stripe_payment_intent_id=intent)

        for display in DisplayStatus:
            page = await list_provider_leads(db, provider.id, display)
            assert all(lead["display_status"] == display.value for lead in page["leads"])

        waiting = await list_provider_leads(db, provider.id, DisplayStatus.PAYMENT_PENDING)
        assert waiting["total"] == 1

    async def test_only_own_leads_paginated(self, db, make):
        customer = await make.customer()
        provider, _p, _b = await make.provider()
        other, _op, _ob = await make.provider(name="Other")
        for _ in range(3):
            await make.lead(await make.service_request(customer), provider)
        await make.lead(await make.service_request(customer), other)

        page = await list_provider_leads(db, provider.id, page=2, page_size=2)

        assert page["total"] == 3
        assert page["pages"] == 2
        assert len(page["leads"]) == 1
