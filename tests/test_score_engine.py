"""Tests for the pure score engine functions."""

from datetime import datetime, timedelta

import pytest

from letsmeet.db.models import TrustLevel
from letsmeet.services.score_engine import (
    trust_level,
    attendance_rate_score,
    no_show_penalty,
    cancellation_penalty,
    host_experience_score,
    clamp_score,
)


class TestTrustLevel:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (100, TrustLevel.trust),
            (90, TrustLevel.trust),
            (89, TrustLevel.stable),
            (70, TrustLevel.stable),
            (69, TrustLevel.caution),
            (50, TrustLevel.caution),
            (49, TrustLevel.restricted),
            (0, TrustLevel.restricted),
            (-15, TrustLevel.restricted),
            (250, TrustLevel.trust),
        ],
    )
    def test_tier_table(self, score, expected):
        assert trust_level(score) == expected

    def test_monotonic(self):
        order = [TrustLevel.restricted, TrustLevel.caution, TrustLevel.stable, TrustLevel.trust]
        ranks = [order.index(trust_level(s)) for s in range(-5, 106)]
        assert ranks == sorted(ranks)


class TestAttendanceRateScore:
    def test_below_minimum_sample_gets_nothing(self):
        assert attendance_rate_score(2, 2) == 0
        assert attendance_rate_score(0, 0) == 0

    def test_perfect_rate(self):
        assert attendance_rate_score(3, 3) == 40

    def test_partial_rate_rounds(self):
        assert attendance_rate_score(1, 3) == 13
        assert attendance_rate_score(2, 3) == 27

    def test_half_rounds_up(self):
        # 40 * 1/16 = 2.5
        assert attendance_rate_score(1, 16) == 3

    def test_bounded(self):
        assert attendance_rate_score(5, 3) == 40
        assert attendance_rate_score(-1, 3) == 0


class TestNoShowPenalty:
    @pytest.mark.parametrize("count,expected", [(0, 0), (1, -10), (2, -20), (3, -30), (10, -30), (-2, 0)])
    def test_steps_and_cap(self, count, expected):
        assert no_show_penalty(count) == expected


class TestCancellationPenalty:
    MEETING = datetime(2030, 1, 10, 18, 0, 0)

    def _notice(self, hours):
        return cancellation_penalty(self.MEETING - timedelta(hours=hours), self.MEETING)

    def test_exactly_24_hours_is_free(self):
        assert self._notice(24) == 0

    def test_just_under_24_hours(self):
        assert self._notice(23.99) == -5

    @pytest.mark.parametrize(
        "hours,expected",
        [(72, 0), (12, -5), (11.5, -10), (6, -10), (5, -15), (1, -15), (0.5, -20), (0, -20), (-2, -20)],
    )
    def test_tiers(self, hours, expected):
        assert self._notice(hours) == expected


class TestHostExperienceScore:
    @pytest.mark.parametrize("count,expected", [(0, 0), (1, 2), (3, 5), (4, 5), (5, 10), (12, 10)])
    def test_steps(self, count, expected):
        assert host_experience_score(count) == expected

    def test_two_hosted_falls_in_gap(self):
        # Known gap in the production table: two hosted meetings score
        # below one. Kept as-is until the product owner decides.
        assert host_experience_score(2) == 0
        assert host_experience_score(2) < host_experience_score(1)


def test_clamp_score():
    assert clamp_score(-5) == 0
    assert clamp_score(55) == 55
    assert clamp_score(140) == 100
