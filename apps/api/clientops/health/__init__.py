from clientops.health.engine import HealthWeights, derive_health, overall_score, portfolio, trend_of
from clientops.health.schemas import ClientHealthRead, ClientHealthSnapshot, HealthComponent, HealthPortfolioRead, Trend

__all__ = [
    "HealthWeights",
    "derive_health",
    "overall_score",
    "portfolio",
    "trend_of",
    "ClientHealthRead",
    "ClientHealthSnapshot",
    "HealthComponent",
    "HealthPortfolioRead",
    "Trend",
]
