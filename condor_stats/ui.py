# condor_stats/ui.py

from typing import Any, Dict


class TerminalUI:
    """Plain-text rendering of report payloads."""

    @staticmethod
    def _format_metric(value: Any, decimals: int = 2) -> str:
        if value is None:
            return 'N/D'
        if isinstance(value, float):
            return f'{value:.{decimals}f}'
        return str(value)

    @staticmethod
    def _header(title: str):
        print("\n" + "="*60)
        print(title)
        print("="*60)

    def show_error(self, message: str):
        """Display error message."""
        print(f"\nERROR: {message}\n")

    def show_leaderboard(self, payload: Dict[str, Any]):
        """Display a leaderboard payload."""
        title = f"LEADERBOARD - {payload['metric']} ({payload['period']})"
        if payload.get('qualified'):
            title = "CONDOR " + title
        if 'weekNumber' in payload:
            title += f" - week {payload['weekNumber']}/{payload['year']}"
        self._header(title)

        entries = payload['leaderboard']
        if not entries:
            print("No matches in this window.")
            print("="*60)
            return

        print(f"{'#':<4}{'Member':<24}{'Matches':>8}{'Value':>12}{'K/D':>8}")
        print("-"*60)
        for entry in entries:
            print(
                f"{entry['rank']:<4}{entry['displayName'][:23]:<24}{entry['matches']:>8}"
                f"{self._format_metric(entry['value']):>12}{self._format_metric(entry['kdr']):>8}"
            )
        print("="*60)

    def show_rank_card(self, payload: Dict[str, Any]):
        """Display a personal rank card."""
        member = payload['member']
        aggregate = payload['aggregate']
        averages = payload['averages']
        self._header(f"RANK: {member['displayName']} ({payload['period']})")

        print(f"Matches:          {aggregate['matches']}")
        print(f"Kills:            {aggregate['kills']}")
        print(f"Deaths:           {aggregate['deaths']}")
        print(f"K/D:              {aggregate['killDeathRatio']:.2f}")
        print(f"Score:            {aggregate['score']}")
        print(f"Combat:           {aggregate['combat']}")
        print(f"Offense:          {aggregate['offense']}")
        print(f"Defense:          {aggregate['defense']}")
        print(f"Support:          {aggregate['support']}")

        print("\n" + "-"*60)
        print("PER MATCH")
        print("-"*60)
        print(f"Kills/min:        {averages['killsPerMinute']:.2f}")
        print(f"Deaths/min:       {averages['deathsPerMinute']:.2f}")
        print(f"Score/match:      {averages['scorePerMatch']:.1f}")
        print(f"Combat/match:     {averages['combatPerMatch']:.1f}")
        print(f"Offense/match:    {averages['offensePerMatch']:.1f}")
        print(f"Defense/match:    {averages['defensePerMatch']:.1f}")
        print(f"Support/match:    {averages['supportPerMatch']:.1f}")
        print(f"\nLast ID used:     {self._format_metric(payload['lastUsedProviderId'])}")
        print("="*60)

    def show_last_events(self, payload: Dict[str, Any]):
        self._header(f"LAST EVENTS: {payload['member']['displayName']} ({payload['period']})")
        if not payload['events']:
            print("No recent events.")
        for event in payload['events']:
            aggregate = event['aggregate']
            title = event['title'] or event['gameId']
            print(f"{event['importedAt'][:16]}  {title}")
            print(
                f"    K {aggregate['kills']}  D {aggregate['deaths']}  K/D {aggregate['killDeathRatio']:.2f}"
                f"  Combat {aggregate['combat']}  Off {aggregate['offense']}  Def {aggregate['defense']}"
                f"  Sup {aggregate['support']}"
            )
        print("="*60)

    def show_gulag(self, payload: Dict[str, Any]):
        self._header(
            f"GULAG (> {payload['inactivityDays']} days) - "
            f"{len(payload['gulag'])}/{payload['totalMembersEvaluated']} members"
        )
        print(f"{'Member':<24}{'Days':>6}{'Missed':>8}  Last played")
        print("-"*60)
        for row in payload['gulag']:
            last_played = row['lastPlayedAt'][:10] if row['lastPlayedAt'] else 'never'
            print(
                f"{row['displayName'][:23]:<24}{self._format_metric(row['daysWithoutPlay']):>6}"
                f"{row['eventsWithoutPlay']:>8}  {last_played}"
            )
        print("="*60)

    def show_members_report(self, payload: Dict[str, Any]):
        self._header(f"MEMBERS REPORT - {payload['totalMembers']} members")
        print(f"{'Member':<24}{'Tenure':>7}{'Events':>7}{'Kills':>7}{'K/D':>7}  Last played")
        print("-"*60)
        for row in payload['rows']:
            last_played = row['lastPlayedAt'][:10] if row['lastPlayedAt'] else 'never'
            print(
                f"{row['displayName'][:23]:<24}{self._format_metric(row['tenureDays']):>7}"
                f"{row['eventsParticipated']:>7}{row['kills']:>7}"
                f"{self._format_metric(row['avgKillDeathRatio']):>7}  {last_played}"
            )
        print("="*60)

    def show_matches(self, payload: Dict[str, Any]):
        self._header(f"QUALIFIED MATCHES ({payload['period']})")
        if not payload['matches']:
            print("No qualified matches in this window.")
        for match in payload['matches']:
            print(f"{match['importedAt'][:16]}  {match['title'] or match['gameId']}  [{match['qualifiedMembers']}]")
            print(f"    {', '.join(match['members'])}")
        print("="*60)
