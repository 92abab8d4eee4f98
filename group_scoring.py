"""
Scoring, constraint and ranking helpers used by the placement engine.

Terminology:
- identity: a registration key, possibly standing for several people
  (``"ann2021-bob2021--x2"`` is two people)
- user -> group score: how many of the identity's friends are in the group
- group -> user score: how many group members listed the identity as a friend
"""

from functools import cmp_to_key
from typing import Dict, Iterable, List, Sequence

from group_config import SUPPORTED_MULTIPLIERS


Preferences = Dict[str, List[str]]
UserDetails = Dict[str, dict]


# ============================================================================
# SCORING PRIMITIVES
# ============================================================================

def multiplier(identity: str) -> int:
    """
    Number of people a single identity stands for.

    ``"mburstein2021"`` is one person; the joint registration
    ``"mburstein2021-auser2021--x2"`` is two. Unknown suffixes count as 1.
    """
    for suffix, value in SUPPORTED_MULTIPLIERS.items():
        if identity.endswith(suffix):
            return value
    return 1


def total_weight(identities: Iterable[str]) -> int:
    """Sum of multipliers over a collection of identities."""
    return sum(multiplier(identity) for identity in identities)


def user_group_score(preferences: Preferences, group: Sequence[str], candidate: str) -> int:
    """Weighted number of the candidate's friends already in ``group``."""
    friends = preferences.get(candidate, ())
    score = 0
    for member in group:
        if member in friends:
            score += multiplier(member)
    return score


def group_user_score(preferences: Preferences, group: Sequence[str], candidate: str) -> int:
    """Weighted number of group members who listed ``candidate`` as a friend."""
    candidate_weight = multiplier(candidate)
    score = 0
    for member in group:
        if candidate in preferences.get(member, ()):
            score += candidate_weight * multiplier(member)
    return score


# ============================================================================
# CONSTRAINT CHECKS
# ============================================================================

def exclusion_conflict(anti_preferences, group: Sequence[str], candidate: str) -> bool:
    """
    Check whether anyone in the group has an anti-preference with the candidate.

    Pairs are stored as ``"a__b"``; both orderings are looked up.
    """
    for member in group:
        if f"{member}__{candidate}" in anti_preferences:
            return True
        if f"{candidate}__{member}" in anti_preferences:
            return True
    return False


def at_capacity(group: Sequence[str],
                is_male: bool,
                max_total: float,
                max_same_gender: float,
                one_gender_mode: bool,
                details: UserDetails) -> bool:
    """
    Check whether a group has overflowed its size or its same-gender limit.

    Args:
        group: Members to count (include the newcomer to test an insertion)
        is_male: Gender whose weighted count is compared to ``max_same_gender``
        max_total: Largest allowed weighted size (may be ``math.inf``)
        max_same_gender: Largest allowed weighted same-gender count
        one_gender_mode: Groups are single-gender, so the gender limit is skipped
        details: Identity -> detail record with an ``isMale`` flag

    Returns:
        True if either limit is exceeded
    """
    current_total = 0
    current_same = 0

    for member in group:
        weight = multiplier(member)
        current_total += weight
        if bool(details[member]['isMale']) == bool(is_male):
            current_same += weight

    if one_gender_mode:
        return current_total > max_total

    return current_same > max_same_gender or current_total > max_total


# ============================================================================
# RANKING FUNCTIONS
# ============================================================================

def rank_groups_for_user(preferences: Preferences,
                         groups: Sequence[Sequence[str]],
                         candidate: str,
                         rng) -> List[int]:
    """
    Order group indices from the candidate's favourite to least favourite.

    Most friends first; on equal scores the larger group wins, and on equal
    sizes a coin flip drawn from ``rng.integers(2)`` decides.
    """
    scores = [(index, user_group_score(preferences, group, candidate))
              for index, group in enumerate(groups)]

    def compare(a, b):
        if a[1] == b[1]:
            length_difference = len(groups[b[0]]) - len(groups[a[0]])
            if length_difference == 0:
                return -1 if int(rng.integers(2)) == 0 else 1
            return length_difference
        return b[1] - a[1]

    return [index for index, _ in sorted(scores, key=cmp_to_key(compare))]


def rank_members_for_group(preferences: Preferences, group: Sequence[str]) -> List[str]:
    """Order members from most to least accepted; earlier members win ties."""
    scores = [group_user_score(preferences, group, member) for member in group]
    order = sorted(range(len(group)), key=lambda i: -scores[i])
    return [group[i] for i in order]
