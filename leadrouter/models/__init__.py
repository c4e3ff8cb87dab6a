"""
Database models - import all models here so Alembic can discover them.
"""
from leadrouter.models.user import User, ProviderProfile, Business
from leadrouter.models.subscription import SubscriptionPlan, UserSubscription
from leadrouter.models.service_request import ServiceRequest
from leadrouter.models.lead import Lead, LeadStatus, RejectionReason
from leadrouter.models.proposal import Proposal
from leadrouter.models.alternative_provider import AlternativeProviderSelection
from leadrouter.models.lead_event import LeadEvent

__all__ = [
    "User",
    "ProviderProfile",
    "Business",
    "SubscriptionPlan",
    "UserSubscription",
    "ServiceRequest",
    "Lead",
    "LeadStatus",
    "RejectionReason",
    "Proposal",
    "AlternativeProviderSelection",
    "LeadEvent",
]
