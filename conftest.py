import pytest


class FixedCoin:
    """Stand-in generator whose coin flips always land on ``value``."""

    def __init__(self, value):
        self.value = value
        self.flips = 0

    def integers(self, n):
        self.flips += 1
        return self.value


@pytest.fixture
def coin():
    return FixedCoin


@pytest.fixture
def four_users():
    """a and b like each other, c and d listed nobody; everyone is male."""
    preferences = {'a': ['b'], 'b': ['a'], 'c': [], 'd': []}
    users = {u: {'isMale': True, 'grade': '2021'} for u in 'abcd'}
    return preferences, users
