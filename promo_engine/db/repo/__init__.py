from promo_engine.db.repo.campaign_recipients_repo import CampaignRecipientsRepo
from promo_engine.db.repo.campaigns_repo import CampaignsRepo
from promo_engine.db.repo.catalog_repo import CatalogRepo
from promo_engine.db.repo.coupons_repo import CouponsRepo
from promo_engine.db.repo.customers_repo import CustomersRepo
from promo_engine.db.repo.transactions_repo import TransactionsRepo
