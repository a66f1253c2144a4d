import pytest
from tasker.config import DEFAULT_CONFIG, GamificationConfig, LevelThreshold
from tasker.engine.xp import (
    calculate_task_xp, calculate_level, xp_for_next_level, xp_for_current_level,
    level_progress, xp_until_next_level, will_level_up, new_level,
    streak_multiplier, format_xp, level_title,
)

TOP_XP = DEFAULT_CONFIG.level_thresholds[-1].xp_required


class TestCalculateTaskXP:
    def test_medium_priority_reference(self):
        assert calculate_task_xp(30, "medium", False, 0) == 105

    def test_high_priority_urgent_reference(self):
        assert calculate_task_xp(30, "high", True, 0) == 190

    def test_streak_multiplier_reference(self):
        # 105 * 1.5 = 157.5 rounds up
        assert calculate_task_xp(30, "medium", False, 5) == 158

    def test_low_priority_base_only(self):
        assert calculate_task_xp(0, "low") == 10

    def test_urgent_bonus_not_scaled_by_priority(self):
        assert calculate_task_xp(0, "high", True, 0) == 10 * 2 + 50

    def test_streak_scales_urgent_bonus(self):
        assert calculate_task_xp(30, "high", True, 2) == 228

    def test_streak_multiplier_uncapped(self):
        assert calculate_task_xp(0, "low", False, 100) == 110

    def test_negative_time_not_rejected(self):
        assert calculate_task_xp(-10, "low") == -10

    def test_unknown_priority_raises(self):
        with pytest.raises(ValueError):
            calculate_task_xp(30, "critical")

    def test_streak_multiplier_value(self):
        assert streak_multiplier(0) == 1
        assert streak_multiplier(5) == pytest.approx(1.5)

    def test_custom_config(self):
        config = GamificationConfig(base_xp=0, xp_per_minute=1, urgent_task_bonus=5)
        assert calculate_task_xp(10, "low", True, 0, config) == 15


class TestCalculateLevel:
    def test_zero_xp_is_level_1(self):
        assert calculate_level(0) == 1

    def test_negative_xp_floors_at_level_1(self):
        assert calculate_level(-100) == 1

    def test_boundaries(self):
        assert calculate_level(99) == 1
        assert calculate_level(100) == 2
        assert calculate_level(249) == 2
        assert calculate_level(250) == 3

    def test_top_level_is_ceiling(self):
        assert calculate_level(TOP_XP) == 15
        assert calculate_level(10_000_000) == 15

    def test_every_threshold_maps_to_its_level(self):
        for t in DEFAULT_CONFIG.level_thresholds:
            assert calculate_level(t.xp_required) == t.level
            if t.level > 1:
                assert calculate_level(t.xp_required - 1) < t.level

    def test_monotonic(self):
        levels = [calculate_level(xp) for xp in range(0, TOP_XP + 5000, 37)]
        assert levels == sorted(levels)

    def test_repeat_calls_identical(self):
        assert calculate_level(12345) == calculate_level(12345)
        assert level_progress(12345) == level_progress(12345)

    def test_custom_table(self):
        config = GamificationConfig(level_thresholds=(
            LevelThreshold(level=1, xp_required=0),
            LevelThreshold(level=2, xp_required=10),
        ))
        assert calculate_level(10, config) == 2
        assert xp_for_next_level(2, config) is None


class TestThresholdLookups:
    def test_next_level_xp(self):
        assert xp_for_next_level(1) == 100
        assert xp_for_next_level(14) == TOP_XP

    def test_next_level_none_at_max(self):
        assert xp_for_next_level(15) is None
        assert xp_for_next_level(99) is None

    def test_current_level_xp(self):
        assert xp_for_current_level(3) == 250

    def test_current_level_unknown_is_zero(self):
        assert xp_for_current_level(0) == 0
        assert xp_for_current_level(16) == 0

    def test_level_brackets_total(self):
        for xp in range(0, TOP_XP, 113):
            lvl = calculate_level(xp)
            assert xp_for_current_level(lvl) <= xp < xp_for_next_level(lvl)


class TestLevelProgress:
    def test_start_of_level(self):
        assert level_progress(0) == 0.0
        assert level_progress(100) == 0.0

    def test_midway(self):
        assert level_progress(50) == pytest.approx(0.5)
        assert level_progress(175) == pytest.approx(0.5)

    def test_max_level_is_complete(self):
        assert level_progress(TOP_XP) == 1.0
        assert level_progress(TOP_XP * 3) == 1.0

    def test_bounds(self):
        for xp in range(0, TOP_XP + 10_000, 97):
            assert 0.0 <= level_progress(xp) <= 1.0

    def test_xp_until_next_level(self):
        assert xp_until_next_level(90) == 10
        assert xp_until_next_level(0) == 100

    def test_xp_until_next_level_at_max(self):
        assert xp_until_next_level(TOP_XP) == 0
        assert xp_until_next_level(TOP_XP + 1) == 0


class TestWillLevelUp:
    def test_crossing_threshold(self):
        assert will_level_up(90, 15) is True

    def test_staying_below_threshold(self):
        assert will_level_up(90, 5) is False

    def test_zero_gain(self):
        assert will_level_up(100, 0) is False

    def test_at_max_level(self):
        assert will_level_up(TOP_XP, 1000) is False

    def test_new_level(self):
        assert new_level(90, 15) == 2
        assert new_level(0, TOP_XP) == 15


class TestFormatXP:
    def test_small(self):
        assert format_xp(999) == "999"

    def test_thousands(self):
        assert format_xp(1500) == "1.5K"

    def test_millions(self):
        assert format_xp(2_000_000) == "2.0M"


class TestLevelTitle:
    def test_level_1_is_beginner(self):
        assert level_title(1) == "Beginner"

    def test_level_15_is_ascended(self):
        assert level_title(15) == "Ascended"

    def test_beyond_table_falls_back(self):
        assert level_title(16) == "Level 16"
        assert level_title(0) == "Level 0"
