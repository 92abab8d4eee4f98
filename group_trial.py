"""
Single-trial placement engine.

One trial turns a shuffled processing order into one candidate partition:

Phase A (ranked placement)
    Each identity that listed preferences joins its best-ranked group that has
    no exclusion conflict. When that overflows the group, the least accepted
    members of the newcomer's gender are evicted until the newcomer's weight is
    covered; evicted identities go back into the pool. If the newcomer evicts
    itself, the next-ranked group is tried. Passes over the order repeat while
    they change something.

Phase B (fallback placement)
    Every identity still unplaced (including those who never listed
    preferences) goes to the emptiest compatible group, first with the normal
    limits, then with only the size limit, then with no limit.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set

from group_config import MOVE_ON_COUNT
from group_scoring import (
    at_capacity,
    exclusion_conflict,
    multiplier,
    rank_groups_for_user,
    rank_members_for_group,
    total_weight,
    user_group_score,
)


@dataclass(frozen=True)
class TrialResult:
    """Outcome of one trial, kept for fitness comparison and summaries."""
    groups: List[List[str]]
    preferences: Dict[str, List[str]]
    users: Dict[str, dict]
    details: dict
    unplaced: List[str] = field(default_factory=list)

    @property
    def group_sizes(self) -> List[int]:
        return list(self.details['groupSizes'])

    @property
    def group_amount(self) -> int:
        return self.details['groupAmount']


def _evict_same_gender(group: List[str], newcomer: str, users: dict, placed: Set[str]) -> List[str]:
    """
    Remove members of the newcomer's gender from the tail of a ranked group
    until the removed weight covers the newcomer's weight.

    Returns:
        The evicted identities, in eviction order
    """
    is_male = bool(users[newcomer]['isMale'])
    needed = multiplier(newcomer)
    removed_weight = 0
    evicted = []

    for k in range(len(group) - 1, -1, -1):
        member = group[k]
        if bool(users[member]['isMale']) != is_male:
            continue
        del group[k]
        placed.discard(member)
        evicted.append(member)
        removed_weight += multiplier(member)
        if removed_weight >= needed:
            break

    return evicted


def _ranked_placement(preferences, users, anti_preferences, order, groups,
                      group_sizes, one_gender, rng, placed: Set[str]) -> int:
    """Phase A. Mutates ``groups`` and ``placed``; returns the passes made."""
    restarts = 0
    passes = 0

    while True:
        changed = False
        passes += 1

        for identity in order:
            if identity in placed:
                continue

            is_male = users[identity]['isMale']

            for group_id in rank_groups_for_user(preferences, groups, identity, rng):
                if exclusion_conflict(anti_preferences, groups[group_id], identity):
                    continue

                ranked = rank_members_for_group(preferences, groups[group_id] + [identity])
                groups[group_id] = ranked
                placed.add(identity)

                size = group_sizes[group_id]
                if at_capacity(ranked, is_male, size, size // 2, one_gender, users):
                    evicted = _evict_same_gender(ranked, identity, users, placed)
                    if identity in evicted:
                        if len(evicted) > 1:
                            changed = True
                        continue

                changed = True
                break

        if not changed or len(placed) >= len(order) or restarts >= MOVE_ON_COUNT:
            return passes
        restarts += 1


def _fallback_placement(preferences, users, anti_preferences, universe, groups,
                        group_sizes, one_gender, placed: Set[str]) -> List[str]:
    """Phase B. Mutates ``groups`` and ``placed``; returns identities left over."""
    unplaced = []

    for identity in universe:
        if identity in placed:
            continue

        is_male = users[identity]['isMale']

        # Emptiest groups first so the same groups don't keep growing at the end;
        # among equally full groups, the one with more friends.
        slots = sorted(
            range(len(groups)),
            key=lambda gid: (total_weight(groups[gid]) - group_sizes[gid],
                             -user_group_score(preferences, groups[gid], identity)),
        )

        for relax in range(3):
            for group_id in slots:
                group = groups[group_id]
                max_same = group_sizes[group_id] // 2 if relax == 0 else math.inf
                max_total = group_sizes[group_id] if relax < 2 else math.inf

                if exclusion_conflict(anti_preferences, group, identity):
                    continue
                if at_capacity(group + [identity], is_male, max_total, max_same, one_gender, users):
                    continue

                group.append(identity)
                placed.add(identity)
                break

            if identity in placed:
                break
        else:
            unplaced.append(identity)

    return unplaced


def run_trial(preferences: Dict[str, List[str]],
              users: Dict[str, dict],
              anti_preferences,
              order: Sequence[str],
              universe: Sequence[str],
              group_sizes: Sequence[int],
              one_gender: bool,
              rng) -> TrialResult:
    """
    Run one complete trial.

    Args:
        preferences: Identity -> ordered friend list (read only)
        users: Identity -> detail record, total over ``universe`` (read only)
        anti_preferences: Container of ``"a__b"`` strings supporting ``in``
        order: Shuffled processing order of identities with preferences
        universe: Every identity to place
        group_sizes: Target size per group; its length is the group count
        one_gender: Skip the same-gender limit
        rng: Generator used for the group-ranking coin flips

    Returns:
        TrialResult owning freshly built groups
    """
    groups: List[List[str]] = [[] for _ in group_sizes]
    placed: Set[str] = set()

    _ranked_placement(preferences, users, anti_preferences, list(order), groups,
                      group_sizes, one_gender, rng, placed)
    unplaced = _fallback_placement(preferences, users, anti_preferences, universe, groups,
                                   group_sizes, one_gender, placed)

    return TrialResult(
        groups=groups,
        preferences=preferences,
        users=users,
        details={
            'groupSizes': list(group_sizes),
            'groupAmount': len(group_sizes),
        },
        unplaced=unplaced,
    )
