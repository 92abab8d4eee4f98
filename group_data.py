"""
Registrant data loading.

Turns a local export of registration data into the three solver inputs
(preference map, user-detail map, anti-preference list) plus a display-name map.

Supported layouts:
- ``.json``: export of the registration document store::

      {
        "grades": {"2021": {"antiPreferences": ["a__b", ...],
                            "students": {"a": "Ann A", ...}}},
        "user-records": {"a": {"isMale": false, "grade": "2021",
                               "preferences": ["b", "c"]}, ...}
      }

- ``.csv`` / ``.xlsx`` / ``.xls``: one row per registration with identity,
  gender, grade, going, preferences, exclusions and name columns.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from group_config import SUPPORTED_MULTIPLIERS, InputDataError


MULTIPLIER_SUFFIX = re.compile(r'--x(\d+)$')

# Accepted header spellings for roster sheets (matched case-insensitively)
COLUMN_ALIASES = {
    'identity': ['username', 'user', 'identity', 'id', 'user_id'],
    'gender': ['isMale', 'is_male', 'male', 'gender', 'sex'],
    'grade': ['grade', 'cohort', 'class', 'year'],
    'going': ['isGoing', 'is_going', 'going', 'attending'],
    'preferences': ['preferences', 'friends', 'prefs'],
    'exclusions': ['antiPreferences', 'anti_preferences', 'exclusions', 'avoid'],
    'name': ['name', 'full_name', 'student_name', 'display_name'],
}


@dataclass
class RegistrantData:
    """Resolved solver inputs for one grade."""
    preferences: Dict[str, List[str]]
    users: Dict[str, dict]
    anti_preferences: List[str]
    student_names: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def anti_preference_pair(a: str, b: str) -> List[str]:
    """Both canonical orderings of an exclusion between ``a`` and ``b``."""
    return [f"{a}__{b}", f"{b}__{a}"]


def find_col(cols, possible_names):
    for name in possible_names:
        if name in cols:
            return name
    for col in cols:
        low = str(col).strip().lower()
        for name in possible_names:
            if low == name.lower():
                return col
    return None


def parse_list_field(cell) -> List[str]:
    """Split a ``;``, ``,`` or ``/`` separated cell into stripped tokens."""
    if isinstance(cell, (list, tuple)):
        return [str(p).strip() for p in cell if str(p).strip()]
    if cell is None or pd.isna(cell) or str(cell).strip() == '':
        return []
    s = str(cell)
    sep = ';' if ';' in s else ',' if ',' in s else '/'
    return [p.strip() for p in s.split(sep) if p.strip() != '']


def normalize_bool(x) -> Optional[bool]:
    if x is None or (not isinstance(x, (list, dict)) and pd.isna(x)):
        return None
    if isinstance(x, bool):
        return x
    s = str(x).strip().lower()
    if s in ('1', 'yes', 'y', 'true', 't'):
        return True
    if s in ('0', 'no', 'n', 'false', 'f'):
        return False
    try:
        return float(s) > 0
    except ValueError:
        return None


def normalize_gender_male(x) -> bool:
    """Read a male flag from either a boolean column or a gender label."""
    if isinstance(x, bool):
        return x
    if x is None or pd.isna(x):
        return False
    s = str(x).strip().lower()
    if s in ('male', 'm', 'boy', 'man'):
        return True
    if s in ('female', 'f', 'girl', 'woman'):
        return False
    return bool(normalize_bool(s))


def unsupported_multiplier(identity: str) -> bool:
    """True for identities with a ``--xN`` suffix the solver doesn't recognise."""
    match = MULTIPLIER_SUFFIX.search(identity)
    return bool(match) and match.group(0) not in SUPPORTED_MULTIPLIERS


def collect_warnings(users: Dict[str, dict], preferences: Dict[str, List[str]],
                     anti_preferences: List[str]) -> List[str]:
    """Data-quality notes that don't stop a run."""
    warnings = []
    for identity in users:
        if unsupported_multiplier(identity):
            warnings.append(f"{identity}: unsupported multiplier suffix, counted as 1 person")

    for identity, friends in preferences.items():
        for friend in friends:
            if friend not in users:
                warnings.append(f"{identity}: preference for unknown user '{friend}'")

    for pair in anti_preferences:
        parts = pair.split('__')
        if len(parts) != 2:
            warnings.append(f"Malformed anti-preference '{pair}'")
            continue
        for part in parts:
            if part not in users:
                warnings.append(f"Anti-preference '{pair}' names unknown user '{part}'")
                break

    return warnings


def _build_preferences(users: Dict[str, dict]) -> Dict[str, List[str]]:
    """Only users who filled in the form have a preference entry."""
    preferences = {}
    for identity, record in users.items():
        if record.get('preferences') is None:
            continue
        preferences[identity] = list(record['preferences'])
    return preferences


def load_json_export(path: str, grade: Optional[str]) -> RegistrantData:
    with open(path, encoding='utf-8') as handle:
        export = json.load(handle)

    grades = export.get('grades', {})
    records = export.get('user-records', {})

    if grade is None:
        if len(grades) != 1:
            raise InputDataError(f"Export has grades {sorted(grades)}; choose one with --grade")
        grade = next(iter(grades))
    if grade not in grades:
        raise InputDataError(f"Grade '{grade}' not found in {path}")

    grade_doc = grades[grade] or {}
    users = {}
    for identity, record in records.items():
        if not record.get('grade') or str(record['grade']) != str(grade):
            continue
        users[identity] = dict(record)
        users[identity]['isMale'] = normalize_gender_male(record.get('isMale'))

    preferences = _build_preferences(users)
    anti_preferences = list(grade_doc.get('antiPreferences', []) or [])
    student_names = dict(grade_doc.get('students', {}) or {})

    return RegistrantData(
        preferences=preferences,
        users=users,
        anti_preferences=anti_preferences,
        student_names=student_names,
        warnings=collect_warnings(users, preferences, anti_preferences),
    )


def load_roster(df: pd.DataFrame, grade: Optional[str]) -> RegistrantData:
    """Build solver inputs from a roster frame (one row per registration)."""
    cols = list(df.columns)
    col = {key: find_col(cols, aliases) for key, aliases in COLUMN_ALIASES.items()}

    if col['identity'] is None:
        raise InputDataError(f"No identity column found (expected one of {COLUMN_ALIASES['identity']})")
    if col['gender'] is None:
        raise InputDataError(f"No gender column found (expected one of {COLUMN_ALIASES['gender']})")

    users = {}
    student_names = {}
    exclusions = {}

    for _, row in df.iterrows():
        identity = row[col['identity']]
        if pd.isna(identity) or str(identity).strip() == '':
            continue
        identity = str(identity).strip()

        row_grade = row[col['grade']] if col['grade'] else None
        if row_grade is not None and not pd.isna(row_grade):
            row_grade = str(row_grade).strip()
            if row_grade.endswith('.0'):
                row_grade = row_grade[:-2]
        else:
            row_grade = None
        if grade is not None and row_grade != str(grade):
            continue

        record = {
            'isMale': normalize_gender_male(row[col['gender']]),
            'grade': row_grade,
        }
        if col['going']:
            going = normalize_bool(row[col['going']])
            if going is not None:
                record['isGoing'] = going
        if col['preferences']:
            cell = row[col['preferences']]
            if not (cell is None or pd.isna(cell)):
                record['preferences'] = parse_list_field(cell)
        if col['exclusions']:
            exclusions[identity] = parse_list_field(row[col['exclusions']])
        if col['name']:
            name = row[col['name']]
            if not pd.isna(name) and str(name).strip():
                student_names[identity] = str(name).strip()

        users[identity] = record

    anti_preferences = []
    seen = set()
    for identity, others in exclusions.items():
        for other in others:
            for pair in anti_preference_pair(identity, other):
                if pair not in seen:
                    seen.add(pair)
                    anti_preferences.append(pair)

    preferences = _build_preferences(users)

    return RegistrantData(
        preferences=preferences,
        users=users,
        anti_preferences=anti_preferences,
        student_names=student_names,
        warnings=collect_warnings(users, preferences, anti_preferences),
    )


def load_registrants(path: str, grade: Optional[str] = None) -> RegistrantData:
    """
    Load registrants for one grade from a JSON export or a roster sheet.

    Args:
        path: ``.json``, ``.csv``, ``.xlsx`` or ``.xls`` file
        grade: Grade/cohort to keep (``None`` keeps all rows of a roster, or the
            only grade of a JSON export)
    """
    lower = path.lower()
    if lower.endswith('.json'):
        return load_json_export(path, grade)
    if lower.endswith('.csv'):
        return load_roster(pd.read_csv(path, dtype=str), grade)
    if lower.endswith(('.xlsx', '.xls')):
        return load_roster(pd.read_excel(path, dtype=str), grade)
    raise InputDataError(f"Unsupported registrant file '{path}' (expected .json, .csv, .xlsx or .xls)")
