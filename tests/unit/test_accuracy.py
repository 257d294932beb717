"""Accuracy percentage and half-up rounding."""

from quizarena.gamification.accuracy import compute_accuracy, round_half_up


class TestComputeAccuracy:
    def test_no_questions_is_zero(self):
        assert compute_accuracy(0, 0) == 0.0

    def test_simple_ratio(self):
        assert compute_accuracy(7, 10) == 70.0

    def test_all_correct(self):
        assert compute_accuracy(5, 5) == 100.0

    def test_rounded_to_two_places(self):
        assert compute_accuracy(2, 3) == 66.67
        assert compute_accuracy(1, 3) == 33.33

    def test_exact_fraction_kept(self):
        assert compute_accuracy(1, 8) == 12.5


class TestRoundHalfUp:
    def test_half_rounds_up_not_to_even(self):
        assert round_half_up(2.5) == 3.0
        assert round_half_up(0.5) == 1.0  # round() would give 0

    def test_places(self):
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(66.664, 2) == 66.66
