"""Analyze a registrant export to understand preferences and constraints before a run."""
import argparse
import sys

import pandas as pd

from group_data import load_registrants
from group_scoring import multiplier, total_weight


def analyze(data) -> dict:
    """Data-quality facts about loaded registrants."""
    users = data.users
    preferences = data.preferences

    males = [u for u, d in users.items() if d['isMale']]
    females = [u for u, d in users.items() if not d['isMale']]

    mutual_pairs = set()
    one_way = 0
    for identity, friends in preferences.items():
        for friend in friends:
            if identity in preferences.get(friend, ()):
                mutual_pairs.add(tuple(sorted([identity, friend])))
            else:
                one_way += 1

    exclusion_pairs = set()
    for pair in data.anti_preferences:
        parts = pair.split('__')
        if len(parts) == 2:
            exclusion_pairs.add(tuple(sorted(parts)))

    chose = [u for u, friends in preferences.items() if friends]
    list_lengths = pd.Series([len(f) for f in preferences.values()], dtype=float)

    return {
        'registrations': len(users),
        'people': total_weight(users),
        'joint_registrations': sum(1 for u in users if multiplier(u) > 1),
        'male_people': total_weight(males),
        'female_people': total_weight(females),
        'with_preferences': len(chose),
        'without_preferences': len(users) - len(chose),
        'avg_preferences': float(list_lengths.mean()) if len(list_lengths) else 0.0,
        'max_preferences': int(list_lengths.max()) if len(list_lengths) else 0,
        'mutual_pairs': len(mutual_pairs),
        'one_way_preferences': one_way,
        'exclusion_pairs': len(exclusion_pairs),
        'warnings': list(data.warnings),
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description="Inspect a registrant export")
    parser.add_argument('data', help='Registrant export (.json, .csv, .xlsx)')
    parser.add_argument('--grade', default=None)
    args = parser.parse_args(argv)

    facts = analyze(load_registrants(args.data, args.grade))

    print(f"=== TOTAL REGISTRATIONS: {facts['registrations']} ({facts['people']} people) ===")
    print(f"Joint registrations: {facts['joint_registrations']}")

    print("\n=== GENDER (people) ===")
    print(f"  Male: {facts['male_people']}")
    print(f"  Female: {facts['female_people']}")

    print("\n=== PREFERENCES ===")
    print(f"Listed preferences: {facts['with_preferences']}")
    print(f"No preferences: {facts['without_preferences']}")
    print(f"Avg list length: {facts['avg_preferences']:.1f} (max {facts['max_preferences']})")
    print(f"Mutual pairs: {facts['mutual_pairs']}")
    print(f"One-way preferences: {facts['one_way_preferences']}")

    print("\n=== ANTI-PREFERENCES ===")
    print(f"Pairs kept apart: {facts['exclusion_pairs']}")

    if facts['warnings']:
        print(f"\n=== WARNINGS ({len(facts['warnings'])}) ===")
        for w in facts['warnings']:
            print(f"  ⚠ {w}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
