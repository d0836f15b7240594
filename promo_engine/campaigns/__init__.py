from promo_engine.campaigns.attribution import AttributionEngine, AttributionResult
from promo_engine.campaigns.audience import AudiencePreview, AudienceSelector
from promo_engine.campaigns.dispatch import CampaignDispatcher, DispatchSummary
from promo_engine.campaigns.lifecycle import CampaignLifecycle
from promo_engine.campaigns.variants import assign_variants

__all__ = [
    "AttributionEngine",
    "AttributionResult",
    "AudiencePreview",
    "AudienceSelector",
    "CampaignDispatcher",
    "CampaignLifecycle",
    "DispatchSummary",
    "assign_variants",
]
