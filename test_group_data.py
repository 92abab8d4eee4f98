import json

import pandas as pd
import pytest

from group_config import InputDataError
from group_data import (
    anti_preference_pair,
    load_registrants,
    normalize_gender_male,
    parse_list_field,
    unsupported_multiplier,
)


@pytest.fixture
def export_path(tmp_path):
    export = {
        'grades': {
            '2021': {
                'antiPreferences': ['ann__cat', 'cat__ann'],
                'students': {'ann': 'Ann Adams', 'bob': 'Bob Brown'},
            },
            '2022': {'antiPreferences': [], 'students': {}},
        },
        'user-records': {
            'ann': {'isMale': False, 'grade': '2021', 'preferences': ['bob', 'ghost']},
            'bob': {'isMale': True, 'grade': '2021', 'preferences': ['ann']},
            'cat': {'isMale': False, 'grade': '2021', 'isGoing': True},
            'dan--x9': {'isMale': True, 'grade': '2021'},
            'eve': {'isMale': False, 'grade': '2022', 'preferences': []},
        },
    }
    path = tmp_path / "export.json"
    path.write_text(json.dumps(export))
    return str(path)


def test_json_export_filters_by_grade(export_path):
    data = load_registrants(export_path, grade='2021')

    assert sorted(data.users) == ['ann', 'bob', 'cat', 'dan--x9']
    assert data.preferences == {'ann': ['bob', 'ghost'], 'bob': ['ann']}
    assert data.anti_preferences == ['ann__cat', 'cat__ann']
    assert data.student_names['ann'] == 'Ann Adams'
    assert data.users['cat']['isGoing'] is True


def test_json_export_warnings(export_path):
    data = load_registrants(export_path, grade='2021')

    assert any('dan--x9' in w and 'multiplier' in w for w in data.warnings)
    assert any("unknown user 'ghost'" in w for w in data.warnings)


def test_json_export_requires_known_grade(export_path):
    with pytest.raises(InputDataError):
        load_registrants(export_path, grade='1999')
    with pytest.raises(InputDataError):
        load_registrants(export_path)


def test_csv_roster(tmp_path):
    df = pd.DataFrame([
        {'Username': 'ann', 'Gender': 'F', 'Grade': '2021', 'Friends': 'bob; cat', 'Avoid': 'dan', 'Name': 'Ann'},
        {'Username': 'bob', 'Gender': 'M', 'Grade': '2021', 'Friends': 'ann', 'Avoid': '', 'Name': 'Bob'},
        {'Username': 'cat', 'Gender': 'female', 'Grade': '2021', 'Friends': '', 'Avoid': '', 'Name': ''},
        {'Username': 'dan', 'Gender': 'male', 'Grade': '2021', 'Friends': 'bob', 'Avoid': 'ann', 'Name': 'Dan'},
        {'Username': 'eve', 'Gender': 'F', 'Grade': '2022', 'Friends': 'ann', 'Avoid': '', 'Name': 'Eve'},
    ])
    path = tmp_path / "roster.csv"
    df.to_csv(path, index=False)

    data = load_registrants(str(path), grade='2021')

    assert sorted(data.users) == ['ann', 'bob', 'cat', 'dan']
    assert data.users['ann']['isMale'] is False
    assert data.users['dan']['isMale'] is True
    assert data.preferences == {'ann': ['bob', 'cat'], 'bob': ['ann'], 'dan': ['bob']}
    assert sorted(data.anti_preferences) == ['ann__dan', 'dan__ann']
    assert data.student_names == {'ann': 'Ann', 'bob': 'Bob', 'dan': 'Dan'}


def test_roster_without_gender_column(tmp_path):
    path = tmp_path / "roster.csv"
    pd.DataFrame([{'username': 'ann', 'friends': 'bob'}]).to_csv(path, index=False)
    with pytest.raises(InputDataError):
        load_registrants(str(path))


def test_unknown_extension():
    with pytest.raises(InputDataError):
        load_registrants("registrants.parquet")


def test_anti_preference_pair():
    assert anti_preference_pair('a', 'b') == ['a__b', 'b__a']


def test_parse_list_field():
    assert parse_list_field('a; b ;c') == ['a', 'b', 'c']
    assert parse_list_field('a,b') == ['a', 'b']
    assert parse_list_field('a/b') == ['a', 'b']
    assert parse_list_field(float('nan')) == []
    assert parse_list_field(['a', ' ']) == ['a']


def test_normalize_gender_male():
    assert normalize_gender_male(True) is True
    assert normalize_gender_male('Male') is True
    assert normalize_gender_male('true') is True
    assert normalize_gender_male('F') is False
    assert normalize_gender_male(None) is False


def test_unsupported_multiplier():
    assert unsupported_multiplier('amy--x9')
    assert not unsupported_multiplier('amy--x1')
    assert not unsupported_multiplier('amy--x3')
    assert not unsupported_multiplier('amy')
