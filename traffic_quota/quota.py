from traffic_quota.config import Limit, QuotaConfig
from traffic_quota.units import UnitConvention, parse_quota

# Quota assigned to instances without a configured limit. Large enough to be
# effectively unlimited while keeping percentages finite.
FALLBACK_QUOTA = "9999tb"


def fallback_limit(convention: UnitConvention) -> Limit:
    return Limit(reset_day=1, byte_quota=parse_quota(FALLBACK_QUOTA, convention))


def resolve_limit(instance: str, config: QuotaConfig) -> Limit:
    """Return the configured limit for ``instance``, or the fallback limit."""
    limit = config.limits.get(instance)
    if limit is None:
        return fallback_limit(config.unit_convention)
    return limit
