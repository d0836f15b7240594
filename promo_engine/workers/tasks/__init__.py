from promo_engine.workers.tasks.campaigns import (
    run_campaign_dispatch,
    run_due_campaigns,
    run_stuck_campaign_monitor,
)
from promo_engine.workers.tasks.coupon_maintenance import run_coupon_status_rollover

__all__ = [
    "run_campaign_dispatch",
    "run_coupon_status_rollover",
    "run_due_campaigns",
    "run_stuck_campaign_monitor",
]
