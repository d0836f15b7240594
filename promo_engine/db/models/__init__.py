from promo_engine.db.models.base import Base
from promo_engine.db.models.campaigns import Campaign, CampaignRecipient, CampaignVariant
from promo_engine.db.models.catalog import Product, ProductCategory, Service, ServiceCategory
from promo_engine.db.models.coupons import Coupon, CouponReward
from promo_engine.db.models.customers import Customer
from promo_engine.db.models.transactions import Transaction, TransactionItem
from promo_engine.db.models.vehicles import Vehicle

__all__ = [
    "Base",
    "Campaign",
    "CampaignRecipient",
    "CampaignVariant",
    "Coupon",
    "CouponReward",
    "Customer",
    "Product",
    "ProductCategory",
    "Service",
    "ServiceCategory",
    "Transaction",
    "TransactionItem",
    "Vehicle",
]
