"""Level curve tests: thresholds grow by 1.5x per level."""

from quizarena.gamification.level_thresholds import MAX_LEVEL, compute_level, get_level_title, level_threshold


class TestLevelComputation:
    def test_level_1_at_zero_points(self):
        result = compute_level(0)
        assert result["level"] == 1
        assert result["experience"] == 0
        assert result["next_level_threshold"] == 1000
        assert result["title"] == "Beginner"

    def test_boundary_999_points(self):
        """999 points is still level 1."""
        result = compute_level(999)
        assert result["level"] == 1
        assert result["experience"] == 999

    def test_level_2_at_1000_points(self):
        result = compute_level(1000)
        assert result["level"] == 2
        assert result["experience"] == 0
        assert result["next_level_threshold"] == 1500

    def test_level_3_at_2500_points(self):
        result = compute_level(2500)  # 1000 + 1500
        assert result["level"] == 3
        assert result["experience"] == 0
        assert result["next_level_threshold"] == 2250

    def test_experience_into_level(self):
        result = compute_level(2499)
        assert result["level"] == 2
        assert result["experience"] == 1499

    def test_level_capped(self):
        result = compute_level(10**30)
        assert result["level"] == MAX_LEVEL


class TestLevelThreshold:
    def test_threshold_is_floored(self):
        assert level_threshold(1) == 1000
        assert level_threshold(2) == 1500
        assert level_threshold(4) == 3375  # floor(1000 * 1.5 ** 3)
        assert level_threshold(5) == 5062  # 5062.5 floored

    def test_threshold_grows(self):
        assert all(level_threshold(n + 1) > level_threshold(n) for n in range(1, 30))


class TestLevelTitles:
    def test_named_tiers(self):
        assert get_level_title(3) == "Beginner"
        assert get_level_title(4) == "Intermediate"
        assert get_level_title(10) == "Expert"
        assert get_level_title(15) == "Grand Master"
        assert get_level_title(20) == "Legend"

    def test_unnamed_levels_fall_back(self):
        assert get_level_title(21) == "Level 21"
