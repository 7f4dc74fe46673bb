# condor_stats/identity.py

from typing import Dict, Iterable, List, Optional
import logging

from condor_stats.models import GameAccount, IdentitySet, Member, PlayerMatchStatRow

LOGGER = logging.getLogger(__name__)


def identity_for_member(member: Member, accounts: Optional[Iterable[GameAccount]] = None) -> IdentitySet:
    """
    Collect the account ids and provider ids that represent a member in match data.

    Args:
        member: Roster member
        accounts: Full account set; when omitted the member's own accounts are used

    Returns:
        IdentitySet for the member
    """
    if accounts is None:
        owned = list(member.accounts)
    else:
        owned = [a for a in accounts if a.member_id == member.member_id]
    return IdentitySet(
        account_ids=frozenset(a.account_id for a in owned),
        provider_ids=frozenset(a.provider_id for a in owned if a.provider_id),
    )


class IdentityIndex:
    """Bidirectional member <-> account/provider lookup for a member population."""

    def __init__(self):
        self.account_to_member: Dict[str, str] = {}
        self.provider_to_member: Dict[str, str] = {}
        self.member_identities: Dict[str, IdentitySet] = {}
        self.provider_collisions: List[str] = []

    @classmethod
    def build(cls, members: Iterable[Member]) -> 'IdentityIndex':
        """Index all members; a provider id shared across members stays with its first owner."""
        index = cls()
        for member in members:
            identity = identity_for_member(member)
            index.member_identities[member.member_id] = identity
            for account_id in identity.account_ids:
                index.account_to_member.setdefault(account_id, member.member_id)
            for provider_id in sorted(identity.provider_ids):
                owner = index.provider_to_member.get(provider_id)
                if owner is None:
                    index.provider_to_member[provider_id] = member.member_id
                elif owner != member.member_id:
                    index.provider_collisions.append(provider_id)
                    LOGGER.warning(
                        "Provider id %s linked to members %s and %s; keeping %s",
                        provider_id, owner, member.member_id, owner,
                    )
        return index

    @property
    def account_ids(self) -> List[str]:
        return sorted(self.account_to_member)

    @property
    def provider_ids(self) -> List[str]:
        return sorted(self.provider_to_member)

    def identity_set(self) -> IdentitySet:
        """Flattened identity of the whole population, for the data-source predicate."""
        return IdentitySet(
            account_ids=frozenset(self.account_to_member),
            provider_ids=frozenset(self.provider_to_member),
        )

    def identity_of(self, member_id: str) -> IdentitySet:
        return self.member_identities.get(member_id, IdentitySet())

    def resolve(self, account_id: Optional[str], provider_id: Optional[str]) -> Optional[str]:
        """Resolve a row reference to a member id.

        A row carrying an account id is matched on that id only. Provider id
        is consulted only when the row has no account link.
        """
        if account_id is not None:
            return self.account_to_member.get(account_id)
        if provider_id is not None:
            return self.provider_to_member.get(provider_id)
        return None

    def resolve_row(self, row: PlayerMatchStatRow) -> Optional[str]:
        return self.resolve(row.account_id, row.provider_id)

    def matches(self, row: PlayerMatchStatRow) -> bool:
        return self.resolve_row(row) is not None
