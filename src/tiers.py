from src.config import config
from src.interfaces.tiers import TierConfig

# Ordered from lowest to highest, the resolver keeps the last tier whose threshold is met
DEFAULT_TIERS: list[dict] = [
    {
        "name": "free",
        "min_holding_usd": 0,
        "daily_limit": 3,
        "rate_limit_per_minute": 5,
        "bonus_percent_for_reward_token": 20,
        "monthly_free_credits": 100,
    },
    {
        "name": "holder",
        "min_holding_usd": 10,
        "daily_limit": 100,
        "rate_limit_per_minute": 30,
        "bonus_percent_for_reward_token": 20,
        "monthly_free_credits": 1000,
    },
    {
        "name": "whale",
        "min_holding_usd": 100,
        "daily_limit": None,
        "rate_limit_per_minute": 120,
        "bonus_percent_for_reward_token": 20,
        "monthly_free_credits": 5000,
    },
]


def load_tiers(raw_tiers: list[dict]) -> list[TierConfig]:
    """Validate the tier list and order it by holding threshold."""
    tiers = sorted((TierConfig(**tier) for tier in raw_tiers), key=lambda tier: tier.min_holding_usd)
    if not tiers:
        raise ValueError("At least one tier must be configured")
    if tiers[0].min_holding_usd != 0:
        raise ValueError(f"Lowest tier '{tiers[0].name}' must not require any holdings")
    names = [tier.name for tier in tiers]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate tier names in {names}")
    return tiers


TIERS: list[TierConfig] = load_tiers(config.TIER_CONFIG or DEFAULT_TIERS)
TIERS_BY_NAME: dict[str, TierConfig] = {tier.name: tier for tier in TIERS}
DEFAULT_TIER: TierConfig = TIERS[0]


def get_tier(name: str | None) -> TierConfig:
    """Tier by name, falling back to the lowest tier for unknown names."""
    if name is None:
        return DEFAULT_TIER
    return TIERS_BY_NAME.get(name, DEFAULT_TIER)


def tier_rank(name: str | None) -> int:
    tier = get_tier(name)
    return TIERS.index(tier)


def highest_tier(*names: str | None) -> TierConfig:
    return max((get_tier(name) for name in names), key=lambda tier: TIERS.index(tier))


def tier_for_holdings(holding_usd: float) -> TierConfig:
    selected = DEFAULT_TIER
    for tier in TIERS:
        if holding_usd >= tier.min_holding_usd:
            selected = tier
    return selected


def next_tier(name: str) -> TierConfig | None:
    index = tier_rank(name)
    return TIERS[index + 1] if index + 1 < len(TIERS) else None
