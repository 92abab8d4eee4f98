"""
Statistics over a finished trial.

Everything here is a pure function of a ``TrialResult`` (and an optional
name map), so the same result always summarizes to the same numbers.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from group_scoring import multiplier, total_weight


def favorability(group: Sequence[str], preferences: Dict[str, List[str]]) -> float:
    """
    Share of realized friendships in a group.

    Every ordered pair of distinct members (i, j) is weighted by
    ``multiplier(i) * multiplier(j)``; a pair counts when j is on i's list.
    The sum is divided by the weight of all ordered pairs. Empty groups and
    groups without any pair are treated as perfect (1.0).
    """
    if len(group) == 0:
        return 1.0

    weights = [multiplier(member) for member in group]
    friends_sum = 0
    for i, member in enumerate(group):
        friends = preferences.get(member)
        if not friends:
            continue
        for j, other in enumerate(group):
            if i != j and other in friends:
                friends_sum += weights[i] * weights[j]

    total = sum(weights)
    possible = total * total - sum(w * w for w in weights)
    if possible == 0:
        return 1.0

    return friends_sum / possible


def gender_ratio(group: Sequence[str], details: Dict[str, dict]) -> float:
    """Fraction of the group's members (head count) flagged male; 0 when empty."""
    if len(group) == 0:
        return 0.0
    males = sum(1 for member in group if details[member]['isMale'])
    return males / len(group)


def min_friends(groups: Sequence[Sequence[str]],
                preferences: Dict[str, List[str]]) -> Tuple[float, List[str]]:
    """
    Lowest number of friends any user who listed preferences has in their group.

    Returns:
        ``(minimum, identities at that minimum)``; ``(inf, [])`` when nobody
        placed listed preferences
    """
    current_min = math.inf
    users_at_min: List[str] = []

    for group in groups:
        for identity in group:
            # Users without preferences aren't analyzed
            if not preferences.get(identity):
                continue

            friends = preferences[identity]
            count = sum(1 for other in group if other in friends)

            if count == current_min:
                users_at_min.append(identity)
            elif count < current_min:
                current_min = count
                users_at_min = [identity]

    return current_min, users_at_min


def trial_fitness(result) -> Tuple[float, int, float]:
    """
    Lexicographic fitness of a trial; larger is better.

    1. the worst-served user's friend count, as high as possible
    2. as few users tied at that minimum as possible
    3. the least favorable group as favorable as possible
    """
    minimum, tied = min_friends(result.groups, result.preferences)
    worst_favorability = min(favorability(group, result.preferences) for group in result.groups)
    return minimum, -len(tied), worst_favorability


def select_best(results):
    """Pick the fittest of several trial results; the earliest wins exact ties."""
    best = None
    best_fitness = None
    for result in results:
        fitness = trial_fitness(result)
        if best is None or fitness > best_fitness:
            best, best_fitness = result, fitness
    return best


def groups_with_names(groups: Sequence[Sequence[str]],
                      names: Optional[Dict[str, str]] = None,
                      use_usernames: bool = True) -> List[List[str]]:
    """Replace identities with display names (identities are kept when unknown)."""
    names = names or {}
    return [[identity if use_usernames else names.get(identity, identity) for identity in group]
            for group in groups]


def summarize_result(result,
                     names: Optional[Dict[str, str]] = None,
                     use_usernames: bool = True) -> dict:
    """
    Aggregate statistics for a trial result.

    Args:
        result: TrialResult to describe
        names: Identity -> display name map
        use_usernames: Show identities instead of display names

    Returns:
        Dictionary with per-group rows and run-level statistics
    """
    groups = result.groups
    preferences = result.preferences
    users = result.users

    favorabilities = np.array([favorability(g, preferences) for g in groups], dtype=float)
    ratios = np.array([gender_ratio(g, users) for g in groups], dtype=float)
    weights = [total_weight(g) for g in groups]
    display = groups_with_names(groups, names, use_usernames)

    user_weight = total_weight(users.keys())
    placed_weight = sum(weights)
    chose = [identity for identity, friends in preferences.items() if friends]
    minimum, tied = min_friends(groups, preferences)

    group_rows = []
    for index, group in enumerate(groups):
        group_rows.append({
            'group': index + 1,
            'target_size': result.details['groupSizes'][index],
            'size': weights[index],
            'head_count': len(group),
            'members': list(group),
            'display_members': display[index],
            'favorability': float(favorabilities[index]),
            'male_ratio': float(ratios[index]),
        })

    return {
        'groups': group_rows,
        'group_amount': result.details['groupAmount'],
        'available_group_sizes': list(result.details['groupSizes']),
        'actual_group_sizes': sorted(weights, reverse=True),
        'user_count': user_weight,
        'biggest_group_size': max(weights) if weights else 0,
        'smallest_group_size': min(weights) if weights else 0,
        'placed_percent': placed_weight / user_weight if user_weight else 1.0,
        'chose_percent': len(chose) / len(users) if users else 0.0,
        'avg_favorability': float(favorabilities.mean()) if len(groups) else 1.0,
        'max_favorability': float(favorabilities.max()) if len(groups) else 1.0,
        'min_favorability': float(favorabilities.min()) if len(groups) else 1.0,
        'min_friends': minimum,
        'min_friends_users': list(tied),
        'avg_male_ratio': float(ratios.mean()) if len(groups) else 0.0,
        'max_male_ratio': float(ratios.max()) if len(groups) else 0.0,
        'min_male_ratio': float(ratios.min()) if len(groups) else 0.0,
        'unplaced': list(result.unplaced),
    }


def percent(value: float) -> str:
    """Format a 0-1 fraction as ``"12.34%"``."""
    return f"{value * 100:.2f}%"
