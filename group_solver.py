"""
Preference Group Solver
=======================

Splits a grade's registrants into groups of given sizes so that as many
people as possible end up with the friends they listed.

Hard constraints (MUST be met):
1. Nobody shares a group with someone they have an anti-preference with
2. Every registrant is placed at most once

Soft constraints (in priority order):
1. Users who listed preferences are placed with as many friends as possible
2. Group sizes stay at their targets
3. No gender exceeds half of a group (unless groups are one-gender)

Method:
- Each trial shuffles the users who listed preferences and places them
  greedily, evicting the least accepted member of the same gender when a
  group overflows, then places everyone left over in the emptiest groups
- Many trials are run and the best one is kept: highest minimum number of
  friends, then fewest users at that minimum, then the best worst-group
  favorability
"""

import argparse
import multiprocessing as mp
import os
import sys
import warnings
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from group_config import ConfigurationError, InputDataError, SolverConfig, parse_group_sizes
from group_data import load_registrants
from group_summary import groups_with_names, percent, summarize_result, trial_fitness
from group_scoring import multiplier, total_weight
from group_trial import TrialResult, run_trial

warnings.filterwarnings('ignore')


# ============================================================================
# TRIAL WORKERS
# ============================================================================

# Read-only inputs shared by the trials of one pool.
_WORKER_INPUTS = {}


def _init_worker(inputs: dict):
    _WORKER_INPUTS.clear()
    _WORKER_INPUTS.update(inputs)


def trial_rng(entropy: int, index: int) -> np.random.Generator:
    """Independent generator for trial ``index`` of a run seeded with ``entropy``."""
    return np.random.default_rng([entropy, index])


def run_seeded_trial(inputs: dict, entropy: int, index: int) -> TrialResult:
    """Run trial ``index``; the same ``(entropy, index)`` always gives the same result."""
    rng = trial_rng(entropy, index)
    order = inputs['order']
    shuffled = [order[i] for i in rng.permutation(len(order))]
    return run_trial(
        inputs['preferences'],
        inputs['users'],
        inputs['anti_preferences'],
        shuffled,
        inputs['universe'],
        inputs['group_sizes'],
        inputs['one_gender'],
        rng,
    )


def _run_trial_job(args):
    """Pool job: returns only the trial's fitness to keep results small."""
    entropy, index = args
    result = run_seeded_trial(_WORKER_INPUTS, entropy, index)
    return index, trial_fitness(result)


class GroupSolver:
    """
    Randomized multi-trial solver for preference-based group formation.
    """

    def __init__(self,
                 preferences: Dict[str, List[str]],
                 users: Dict[str, dict],
                 anti_preferences: Iterable[str],
                 student_names: Optional[Dict[str, str]] = None,
                 verbose: bool = True):
        """
        Initialize the solver with already-resolved registrant data.

        Args:
            preferences: Identity -> ordered friend list (absent = no preference)
            users: Identity -> detail record with an ``isMale`` flag
            anti_preferences: ``"a__b"`` strings for pairs that must be kept apart
            student_names: Identity -> display name used in reports
            verbose: Whether to print progress messages
        """
        self.verbose = verbose
        self.preferences = {k: list(v) for k, v in preferences.items()}
        self.users = dict(users)
        self.anti_preferences = list(anti_preferences)
        self.student_names = dict(student_names or {})

        missing = [identity for identity in self.preferences if identity not in self.users]
        if missing:
            raise InputDataError(f"Users with preferences but no details: {', '.join(sorted(missing))}")
        no_gender = [identity for identity, record in self.users.items() if 'isMale' not in record]
        if no_gender:
            raise InputDataError(f"Users without a gender flag: {', '.join(sorted(no_gender))}")

        self.log("=" * 70)
        self.log("PREFERENCE GROUP SOLVER")
        self.log("=" * 70)
        self.log(f"Loaded {len(self.users)} registrations ({total_weight(self.users)} people)")
        self.log(f"  - With preferences: {len(self.preferences)}")
        self.log(f"  - Without preferences: {len(self.users) - len(self.preferences)}")
        self.log(f"  - Anti-preference entries: {len(self.anti_preferences)}")

    @classmethod
    def from_file(cls, data_path: str, grade: Optional[str] = None, verbose: bool = True) -> 'GroupSolver':
        """Build a solver from a JSON export or a roster sheet."""
        data = load_registrants(data_path, grade)
        solver = cls(data.preferences, data.users, data.anti_preferences,
                     student_names=data.student_names, verbose=verbose)
        solver.log(f"Read registrant data from {data_path}")
        for message in data.warnings:
            solver.log(f"  Warning: {message}")
        return solver

    def log(self, message: str):
        """Print a log message if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime("%H:%M:%S")
            print(f"[{timestamp}] {message}")

    def _trial_inputs(self, config: SolverConfig) -> dict:
        return {
            'preferences': self.preferences,
            'users': self.users,
            'anti_preferences': frozenset(self.anti_preferences),
            'order': [identity for identity, friends in self.preferences.items() if friends],
            'universe': list(self.users.keys()),
            'group_sizes': tuple(config.group_sizes),
            'one_gender': config.one_gender,
        }

    def run_trials(self, config: SolverConfig) -> TrialResult:
        """
        Run ``config.run_amount`` trials and return the fittest result.

        Trials are independent; with ``config.workers > 1`` they are spread over
        a process pool. A seeded run returns the same result for any worker count.
        """
        inputs = self._trial_inputs(config)
        entropy = config.seed if config.seed is not None else np.random.SeedSequence().entropy
        run_amount = max(config.run_amount, 1)

        if config.workers == 1:
            best = None
            best_fitness = None
            for index in tqdm(range(run_amount), desc="Working", disable=not self.verbose):
                result = run_seeded_trial(inputs, entropy, index)
                fitness = trial_fitness(result)
                if best is None or fitness > best_fitness:
                    best, best_fitness = result, fitness
            return best

        best_index = None
        best_fitness = None
        jobs = ((entropy, index) for index in range(run_amount))
        chunk_size = max(1, run_amount // (config.workers * 20))

        with mp.Pool(config.workers, initializer=_init_worker, initargs=(inputs,)) as pool:
            with tqdm(total=run_amount, desc="Working", disable=not self.verbose) as pbar:
                for index, fitness in pool.imap(_run_trial_job, jobs, chunksize=chunk_size):
                    if best_index is None or fitness > best_fitness:
                        best_index, best_fitness = index, fitness
                    pbar.update(1)

        # Rebuild the winning partition from its seed
        return run_seeded_trial(inputs, entropy, best_index)

    def solve(self, config: SolverConfig) -> dict:
        """
        Run the trials and describe the best partition.

        Args:
            config: Validated run configuration

        Returns:
            Solution dictionary with the result, its statistics and the config
        """
        self.log("")
        self.log("=" * 70)
        self.log("STARTING TRIALS")
        self.log("=" * 70)
        self.log(f"Group sizes: {list(config.group_sizes)} ({config.group_amount} groups, "
                 f"{sum(config.group_sizes)} places for {total_weight(self.users)} people)")
        self.log(f"Trials: {config.run_amount} (power {config.run_power}), workers: {config.workers}")
        self.log(f"One-gender groups: {'yes' if config.one_gender else 'no'}")

        result = self.run_trials(config)
        statistics = summarize_result(result, self.student_names, config.use_usernames)

        self.log(f"Best trial: min friends {statistics['min_friends']} "
                 f"({len(statistics['min_friends_users'])} users), "
                 f"min favorability {percent(statistics['min_favorability'])}")
        if result.unplaced:
            self.log(f"  {len(result.unplaced)} registrations could not be placed")

        return {
            'result': result,
            'statistics': statistics,
            'config': config,
        }

    def print_report(self, solution: dict):
        """Print the groups and statistics of a solution."""
        stats = solution['statistics']
        result = solution['result']

        print("\n" + "=" * 80)
        print("PREFERENCE GROUP SOLUTION REPORT")
        print("=" * 80)

        print(f"\n{'GROUPS':^80}")
        print("-" * 80)
        for row in stats['groups']:
            print(f"\n  Group {row['group']}: size {row['size']}/{row['target_size']} "
                  f"({row['head_count']} registrations)")
            print(f"     Favorability: {percent(row['favorability'])}, Male: {percent(row['male_ratio'])}")
            print(f"     Members: {', '.join(str(m) for m in row['display_members'])}")

        print(f"\n{'DETAILS':^80}")
        print("-" * 80)
        print(f"  Group Amount: {stats['group_amount']}")
        print(f"  Available Group Sizes: {stats['available_group_sizes']}")
        print(f"  Actual Group Sizes: {stats['actual_group_sizes']}")
        print(f"  User Count: {stats['user_count']}")

        print(f"\n{'RESULTS':^80}")
        print("-" * 80)
        print(f"  Biggest Group Size: {stats['biggest_group_size']}")
        print(f"  Smallest Group Size: {stats['smallest_group_size']}")

        print(f"\n{'STATS':^80}")
        print("-" * 80)
        print(f"  Placed: {percent(stats['placed_percent'])}")
        print(f"  Chosen: {percent(stats['chose_percent'])}")
        print(f"  Favorability avg/max/min: {percent(stats['avg_favorability'])} / "
              f"{percent(stats['max_favorability'])} / {percent(stats['min_favorability'])}")
        print(f"  Min Friends: {stats['min_friends']}")
        print(f"  Min Friends Users: {' '.join(stats['min_friends_users'])}")
        print(f"  Male avg/max/min: {percent(stats['avg_male_ratio'])} / "
              f"{percent(stats['max_male_ratio'])} / {percent(stats['min_male_ratio'])}")

        if result.unplaced:
            print(f"\n{'UNPLACED REGISTRATIONS':^80}")
            print("-" * 80)
            for identity in result.unplaced:
                print(f"  ✗ {identity}")

        print("\n" + "=" * 80)

    def export_solution(self, solution: dict, output_path: str = "group_assignments.xlsx"):
        """Export a solution to Excel (several sheets) or to one flat CSV."""
        self.log(f"Exporting solution to {output_path}...")
        result = solution['result']
        stats = solution['statistics']
        use_usernames = solution['config'].use_usernames
        names = groups_with_names(result.groups, self.student_names, use_usernames)

        # ---- Group Assignments ----
        assignment_rows = []
        for index, group in enumerate(result.groups):
            for position, identity in enumerate(group):
                friends = self.preferences.get(identity)
                assignment_rows.append({
                    'Group': index + 1,
                    'Rank In Group': position + 1,
                    'Identity': identity,
                    'Name': names[index][position],
                    'People': multiplier(identity),
                    'Gender': 'Male' if self.users[identity]['isMale'] else 'Female',
                    'Grade': self.users[identity].get('grade', ''),
                    'Listed Preferences': len(friends) if friends is not None else '',
                    'Friends In Group': sum(1 for m in group if m in friends) if friends is not None else '',
                })
        df_assignments = pd.DataFrame(assignment_rows)

        if output_path.lower().endswith('.csv'):
            df_assignments.to_csv(output_path, index=False)
            self.log(f"Solution exported to {output_path}")
            return

        # ---- Group Summary ----
        summary_rows = []
        for row in stats['groups']:
            summary_rows.append({
                'Group': row['group'],
                'Target Size': row['target_size'],
                'Size': row['size'],
                'Registrations': row['head_count'],
                'Favorability': round(row['favorability'], 4),
                'Male Ratio': round(row['male_ratio'], 4),
            })
        df_summary = pd.DataFrame(summary_rows)

        # ---- Statistics ----
        stat_rows = [
            {'Statistic': 'Placed %', 'Value': percent(stats['placed_percent'])},
            {'Statistic': 'Chosen %', 'Value': percent(stats['chose_percent'])},
            {'Statistic': 'Avg favorability %', 'Value': percent(stats['avg_favorability'])},
            {'Statistic': 'Max favorability %', 'Value': percent(stats['max_favorability'])},
            {'Statistic': 'Min favorability %', 'Value': percent(stats['min_favorability'])},
            {'Statistic': 'Min friends', 'Value': str(stats['min_friends'])},
            {'Statistic': 'Min friends users', 'Value': ' '.join(stats['min_friends_users'])},
            {'Statistic': 'Avg male %', 'Value': percent(stats['avg_male_ratio'])},
            {'Statistic': 'Max male %', 'Value': percent(stats['max_male_ratio'])},
            {'Statistic': 'Min male %', 'Value': percent(stats['min_male_ratio'])},
            {'Statistic': 'Unplaced', 'Value': ' '.join(stats['unplaced'])},
        ]
        df_stats = pd.DataFrame(stat_rows)

        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            df_summary.to_excel(writer, sheet_name='Group Summary', index=False)
            df_assignments.to_excel(writer, sheet_name='Group Assignments', index=False)
            df_stats.to_excel(writer, sheet_name='Statistics', index=False)

        self.log(f"Solution exported to {output_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Form groups from friend preferences")
    parser.add_argument('--data', required=True, help='Registrant export (.json, .csv, .xlsx)')
    parser.add_argument('--grade', default=None, help='Grade/cohort to group')
    parser.add_argument('--sizes', required=True, help="Group sizes, e.g. '30-25-20'")
    parser.add_argument('--power', type=float, default=2.0, help='Run 10**power trials')
    parser.add_argument('--ignore-gender', action='store_true', help='Groups are one-gender')
    parser.add_argument('--use-usernames', action='store_true', help='Report identities instead of names')
    parser.add_argument('--seed', type=int, default=None, help='Seed for reproducible runs')
    parser.add_argument('--workers', type=int, default=1, help='Worker processes for the trials')
    parser.add_argument('--output', default=None, help='Export file (.xlsx or .csv)')
    parser.add_argument('--quiet', action='store_true', help='Only print the report')
    return parser


def main(argv=None):
    """Main entry point for standalone execution."""
    args = build_parser().parse_args(argv)

    try:
        config = SolverConfig(
            group_sizes=parse_group_sizes(args.sizes),
            run_power=args.power,
            one_gender=args.ignore_gender,
            use_usernames=args.use_usernames,
            seed=args.seed,
            workers=args.workers,
        )
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    if not os.path.exists(args.data):
        print(f"Error: Data file not found: {args.data}")
        return 1

    try:
        solver = GroupSolver.from_file(args.data, grade=args.grade, verbose=not args.quiet)
    except InputDataError as e:
        print(f"Error: {e}")
        return 1

    solution = solver.solve(config)
    solver.print_report(solution)

    if args.output:
        solver.export_solution(solution, args.output)
        print(f"\nComplete! Check '{args.output}' for the full solution.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
