import math

import pytest

from group_summary import (
    favorability,
    gender_ratio,
    groups_with_names,
    min_friends,
    percent,
    select_best,
    summarize_result,
    trial_fitness,
)
from group_trial import TrialResult


def _result(groups, preferences, users=None, sizes=None):
    users = users or {u: {'isMale': True} for g in groups for u in g}
    sizes = sizes or [len(g) for g in groups]
    return TrialResult(
        groups=groups,
        preferences=preferences,
        users=users,
        details={'groupSizes': sizes, 'groupAmount': len(sizes)},
    )


def test_favorability_of_empty_group_is_one():
    assert favorability([], {'a': ['b']}) == 1


def test_favorability_values():
    assert favorability(['a', 'b'], {'a': ['b']}) == pytest.approx(0.5)
    assert favorability(['a', 'b'], {'a': ['b'], 'b': ['a']}) == pytest.approx(1.0)
    assert favorability(['a', 'b', 'c'], {}) == 0
    assert favorability(['a'], {'a': []}) == 1


def test_favorability_is_weighted():
    # a--x2 -> b is worth 2 of the 4 weighted ordered pairs
    assert favorability(['a--x2', 'b'], {'a--x2': ['b']}) == pytest.approx(0.5)


def test_favorability_stays_in_unit_interval():
    preferences = {'a--x3': ['b', 'c', 'a--x3'], 'b': ['a--x3', 'c'], 'c': ['b', 'z']}
    value = favorability(['a--x3', 'b', 'c'], preferences)
    assert 0 <= value <= 1


def test_gender_ratio_is_head_count():
    details = {'m--x3': {'isMale': True}, 'f': {'isMale': False}}
    assert gender_ratio(['m--x3', 'f'], details) == 0.5
    assert gender_ratio([], details) == 0


def test_min_friends_only_counts_users_with_preferences():
    groups = [['a', 'b'], ['c', 'd']]
    minimum, users = min_friends(groups, {'a': ['b'], 'b': ['a']})
    assert minimum == 1
    assert users == ['a', 'b']


def test_min_friends_skips_empty_preference_lists(four_users):
    preferences, _ = four_users
    minimum, users = min_friends([['a', 'b'], ['c', 'd']], preferences)
    assert minimum == 1
    assert users == ['a', 'b']


def test_min_friends_collects_ties():
    groups = [['a', 'b', 'c']]
    minimum, users = min_friends(groups, {'a': ['b', 'c'], 'b': ['z'], 'c': ['y']})
    assert minimum == 0
    assert users == ['b', 'c']


def test_min_friends_without_preferences_is_infinite():
    minimum, users = min_friends([['a']], {})
    assert minimum == math.inf
    assert users == []


def test_select_best_prefers_higher_min_friends():
    everyone = lambda members: {m: [o for o in members if o != m] for m in members}
    worse = _result([['a', 'b', 'c']], everyone('abc'))
    better = _result([['a', 'b', 'c', 'd']], everyone('abcd'))

    assert trial_fitness(worse)[0] == 2
    assert trial_fitness(better)[0] == 3
    assert select_best([worse, better]) is better
    assert select_best([better, worse]) is better


def test_select_best_prefers_fewer_users_at_minimum():
    preferences = {'a': ['b'], 'b': ['a'], 'c': ['d'], 'd': ['e'], 'e': []}
    two_at_min = _result([['a', 'b', 'e'], ['c', 'd']], preferences)
    one_at_min = _result([['a', 'b'], ['c', 'e', 'd']], preferences)

    assert trial_fitness(two_at_min)[:2] == (0, -2)
    assert trial_fitness(one_at_min)[:2] == (0, -1)
    assert select_best([two_at_min, one_at_min]) is one_at_min


def test_select_best_then_prefers_best_worst_favorability():
    preferences = {'a': ['b'], 'b': ['a'], 'c': ['d'], 'd': ['c']}
    lopsided = _result([['a', 'b', 'x'], ['c', 'd']], preferences)
    balanced = _result([['a', 'b'], ['c', 'd', 'x']], preferences)
    # same worst favorability and minimum: first one wins
    assert select_best([lopsided, balanced]) is lopsided

    weak = _result([['a', 'b', 'x', 'y'], ['c', 'd']], preferences)
    assert trial_fitness(weak)[:2] == trial_fitness(lopsided)[:2]
    assert select_best([weak, lopsided]) is lopsided


def test_groups_with_names():
    groups = [['a', 'b'], ['c']]
    names = {'a': 'Ann', 'b': 'Bob'}
    assert groups_with_names(groups, names, use_usernames=False) == [['Ann', 'Bob'], ['c']]
    assert groups_with_names(groups, names, use_usernames=True) == groups


def test_summarize_result_statistics():
    users = {'a': {'isMale': True}, 'b': {'isMale': False}, 'c--x2': {'isMale': True},
             'd': {'isMale': False}, 'e': {'isMale': False}}
    preferences = {'a': ['b'], 'b': ['a'], 'd': []}
    result = _result([['a', 'b'], ['c--x2', 'd']], preferences, users, sizes=[3, 2])
    result.unplaced.append('e')

    stats = summarize_result(result, {'a': 'Ann'}, use_usernames=False)

    assert stats['group_amount'] == 2
    assert stats['available_group_sizes'] == [3, 2]
    assert stats['actual_group_sizes'] == [3, 2]
    assert stats['biggest_group_size'] == 3
    assert stats['smallest_group_size'] == 2
    assert stats['user_count'] == 6
    assert stats['placed_percent'] == pytest.approx(5 / 6)
    assert stats['chose_percent'] == pytest.approx(2 / 5)
    assert stats['min_friends'] == 1
    assert stats['min_friends_users'] == ['a', 'b']
    assert stats['max_favorability'] == pytest.approx(1.0)
    assert stats['min_favorability'] == pytest.approx(0.0)
    assert stats['avg_favorability'] == pytest.approx(0.5)
    assert stats['avg_male_ratio'] == pytest.approx(0.5)
    assert stats['groups'][0]['display_members'] == ['Ann', 'b']
    assert stats['groups'][1]['size'] == 3
    assert stats['unplaced'] == ['e']


def test_summarize_result_is_idempotent(four_users):
    preferences, users = four_users
    result = _result([['a', 'b'], ['c', 'd']], preferences, users, sizes=[2, 2])
    assert summarize_result(result) == summarize_result(result)


def test_percent():
    assert percent(0.1234) == "12.34%"
    assert percent(1) == "100.00%"
