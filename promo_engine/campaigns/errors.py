class CampaignError(Exception):
    pass


class CampaignNotFoundError(CampaignError):
    pass


class CampaignAlreadyDispatchingError(CampaignError):
    pass


class CampaignNotDispatchableError(CampaignError):
    pass


class CampaignNotDueError(CampaignError):
    pass


class AudienceResolutionError(CampaignError):
    pass


class CampaignPersistenceError(CampaignError):
    pass


class VariantAllocationError(CampaignError):
    pass


class InvalidAudienceFilterError(CampaignError):
    pass
