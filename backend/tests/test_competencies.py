import random

import pytest

from compasses.competencies import (
	COMPETENCIES,
	FUNCTIONAL,
	MANAGERIAL,
	SPECIFIC,
	build_assessment_competencies,
	difficulty_tier,
	get_level_data,
)


@pytest.mark.parametrize(
	"years,expected",
	[
		(0, (1, 1)),
		(1, (1, 1)),
		(2, (2, 1)),
		(3, (3, 2)),
		(4, (4, 3)),
		(5, (4, 3)),
		(6, (5, 4)),
		(25, (5, 4)),
	],
)
def test_level_data_breakpoints(years, expected):
	data = get_level_data(years)
	assert (data["level"], data["standardScore"]) == expected


def test_level_data_has_five_distinct_pairs():
	pairs = {tuple(get_level_data(y).values()) for y in range(0, 40)}
	assert len(pairs) == 5


@pytest.mark.parametrize(
	"years,tier",
	[(0, "Beginner"), (2, "Beginner"), (3, "Intermediate"), (5, "Intermediate"), (10, "Advanced"), (11, "Expert")],
)
def test_difficulty_tier(years, tier):
	label, length = difficulty_tier(years)
	assert label.startswith(tier)
	assert "sentences" in length


def test_assessment_set_mix():
	picked = build_assessment_competencies(random.Random(7))
	categories = [c.category for c in picked]
	assert categories == [FUNCTIONAL] * 2 + [SPECIFIC] * 2 + [MANAGERIAL] * 2
	assert len({c.id for c in picked}) == 6
	# Specific items come from the catalog in order
	assert [c.id for c in picked[2:4]] == ["s1", "s2"]


def test_assessment_set_varies_with_seed():
	draws = {tuple(c.id for c in build_assessment_competencies(random.Random(seed))) for seed in range(20)}
	assert len(draws) > 1


def test_bilingual_names():
	for item in COMPETENCIES:
		assert item.name("en") == item.name_en
		assert item.name("th") == item.name_th
