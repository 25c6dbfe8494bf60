"""League classification from total eligible volume."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config import settings
from models.xp import League


@dataclass(frozen=True)
class LeagueThresholds:
    """Minimum total eligible volume (USD) for each league above Bronze."""

    silver: float = 5_000.0
    gold: float = 25_000.0
    diamond: float = 125_000.0

    @classmethod
    def from_settings(cls) -> "LeagueThresholds":
        return cls(
            silver=settings.XP_LEAGUE_SILVER_MIN_EV,
            gold=settings.XP_LEAGUE_GOLD_MIN_EV,
            diamond=settings.XP_LEAGUE_DIAMOND_MIN_EV,
        )

    def ordered(self) -> tuple[tuple[float, League], ...]:
        """Thresholds from highest to lowest."""
        return (
            (self.diamond, League.DIAMOND),
            (self.gold, League.GOLD),
            (self.silver, League.SILVER),
        )


def determine_league(
    total_eligible_volume: float, thresholds: Optional[LeagueThresholds] = None
) -> League:
    """Map a wallet-week's total eligible volume to its league."""
    thresholds = thresholds or LeagueThresholds.from_settings()
    for minimum, league in thresholds.ordered():
        if total_eligible_volume >= minimum:
            return league
    return League.BRONZE
