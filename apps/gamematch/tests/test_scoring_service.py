"""
Tests for skill scoring.
"""

import pytest

from gamematch.models.schemas import Gender, Rank
from gamematch.services.scoring_service import gender_multiplier, rank_value, score
from conftest import make_player


def test_rank_values():
    assert [rank_value(r) for r in Rank] == [7.0, 6.0, 5.0, 4.0, 3.0, 2.0, 1.0]


def test_missing_rank_is_midpoint():
    assert rank_value(None) == 3.5


def test_gender_multipliers():
    assert gender_multiplier(Gender.MALE) == 1.2
    assert gender_multiplier(Gender.FEMALE) == 0.9
    assert gender_multiplier(None) == 1.0


@pytest.mark.parametrize(
    "rank,gender,expected",
    [
        ("S", "male", 8.4),
        ("S", "female", 6.3),
        ("C", None, 4.0),
        (None, None, 3.5),
        (None, "male", 4.2),
    ],
)
def test_score(rank, gender, expected):
    player = make_player("p1", rank=rank, gender=gender)
    assert score(player) == pytest.approx(expected)


def test_legacy_gender_labels_are_normalized():
    assert make_player("p1", gender="남").gender == Gender.MALE
    assert make_player("p2", gender="여").gender == Gender.FEMALE
    assert make_player("p3", gender="").gender is None


def test_blank_rank_is_missing():
    assert score(make_player("p1", rank="")) == pytest.approx(3.5)
