# condor_stats/qualification.py

from condor_stats.models import PlayerMatchStatRow
from condor_stats.thresholds import QUALIFIED_MIN_INFANTRY_KILLS, QUALIFIED_MIN_KILL_DEATH_RATIO


def is_qualified(row: PlayerMatchStatRow) -> bool:
    """Condor gate: enough infantry kills and a non-negative trade (or no deaths)."""
    if row.infantry_kills < QUALIFIED_MIN_INFANTRY_KILLS:
        return False
    if row.deaths == 0:
        return True
    return row.kill_death_ratio >= QUALIFIED_MIN_KILL_DEATH_RATIO


def is_competitive(row: PlayerMatchStatRow) -> bool:
    """True unless the row's match is linked to a practice event."""
    return not row.is_practice


def ascenso_points(row: PlayerMatchStatRow) -> int:
    """Promotion score contributed by one match."""
    return row.combat + row.offense
