"""
Run configuration for the preference group solver.

Everything a run needs beyond the registrant data lives in one immutable
``SolverConfig`` value that is built (and validated) once, before any trial
starts, and then handed to every component that needs it.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple


# Maximum number of full Phase A passes restarted within one trial.
MOVE_ON_COUNT = 100

# 10 ** 6.3 is roughly 2 million trials.
MAX_RUN_POWER = 6.3

# Identity suffixes encoding how many people one registration stands for.
SUPPORTED_MULTIPLIERS = {
    '--x5': 5,
    '--x4': 4,
    '--x3': 3,
    '--x2': 2,
    '--x1': 1,
}


class ConfigurationError(ValueError):
    """Raised when a run is configured with values the solver cannot use."""


class InputDataError(ValueError):
    """Raised when the registrant data cannot be turned into solver inputs."""


def parse_group_sizes(argument: str) -> Tuple[int, ...]:
    """
    Parse a hyphen-delimited size schedule such as ``"30-25-20"``.

    Returns:
        The sizes sorted in descending order. The length of the tuple is the
        number of groups.
    """
    if argument is None or not str(argument).strip():
        raise ConfigurationError("Group sizes must not be empty (expected e.g. '30-25-20')")

    sizes = []
    for token in str(argument).split('-'):
        token = token.strip()
        if not token.isdecimal():
            raise ConfigurationError(f"Invalid group size '{token}' in '{argument}'")
        size = int(token)
        if size <= 0:
            raise ConfigurationError(f"Group size must be positive, got {size} in '{argument}'")
        sizes.append(size)

    return tuple(sorted(sizes, reverse=True))


def trial_count(run_power: float) -> int:
    """Number of trials for a run power: ``floor(10 ** run_power)``."""
    return int(math.floor(math.pow(10, run_power)))


@dataclass(frozen=True)
class SolverConfig:
    """
    Immutable run configuration.

    Attributes:
        group_sizes: Descending target size per group
        run_power: Trials run is ``10 ** run_power`` (at most ``MAX_RUN_POWER``)
        one_gender: Groups are single-gender, so only total size is capped
        use_usernames: Display identities instead of student names in reports
        seed: Root seed; ``None`` draws fresh entropy
        workers: Worker processes for the trials (1 runs them in-process)
    """
    group_sizes: Tuple[int, ...]
    run_power: float = 2.0
    one_gender: bool = False
    use_usernames: bool = False
    seed: Optional[int] = None
    workers: int = 1

    def __post_init__(self):
        if not self.group_sizes:
            raise ConfigurationError("At least one group size is required")
        if any(int(size) <= 0 for size in self.group_sizes):
            raise ConfigurationError(f"Group sizes must be positive: {list(self.group_sizes)}")
        # Keep the schedule descending whatever order the caller used.
        object.__setattr__(self, 'group_sizes', tuple(sorted((int(s) for s in self.group_sizes), reverse=True)))

        if not math.isfinite(self.run_power):
            raise ConfigurationError(f"{self.run_power} is not a valid run power. It must be a finite number.")
        if self.run_power > MAX_RUN_POWER:
            raise ConfigurationError(
                f"{self.run_power} is not a valid run power. The maximum value is {MAX_RUN_POWER}."
            )
        if self.run_power < 0:
            raise ConfigurationError(f"{self.run_power} is not a valid run power. It must be at least 0.")
        if self.workers < 1:
            raise ConfigurationError(f"Worker count must be at least 1, got {self.workers}")
        if self.seed is not None and self.seed < 0:
            raise ConfigurationError(f"Seed must be non-negative, got {self.seed}")

    @classmethod
    def from_sizes(cls, sizes: str, **kwargs) -> 'SolverConfig':
        """Build a config from a ``"30-25-20"`` style size string."""
        return cls(group_sizes=parse_group_sizes(sizes), **kwargs)

    @property
    def group_amount(self) -> int:
        return len(self.group_sizes)

    @property
    def run_amount(self) -> int:
        return trial_count(self.run_power)
