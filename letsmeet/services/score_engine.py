"""
Score Engine - Trust score components

Pure functions mapping attendance history to point values and a trust tier.
NOT stateful - no database access, no side effects.

Components:
- Attendance rate: 0..40 points, needs at least 3 approvals
- No-show penalty: stepped, capped at -30
- Late cancellation: tiered by hours of notice, down to -20
- Host experience: 0..10 points by meetings hosted
"""
import math
from datetime import datetime

from letsmeet.config import settings
from letsmeet.db.models import TrustLevel

# Tier floors, checked from the top
TRUST_LEVEL_THRESHOLDS = [
    (90, TrustLevel.trust),
    (70, TrustLevel.stable),
    (50, TrustLevel.caution),
]

ATTENDANCE_MAX_POINTS = 40
ATTENDANCE_MIN_APPROVALS = 3

NO_SHOW_STEP = -10
NO_SHOW_CAP = -30

# (minimum hours of notice, penalty)
CANCELLATION_TIERS = [
    (24, 0),
    (12, -5),
    (6, -10),
    (1, -15),
]
CANCELLATION_MAX_PENALTY = -20


def trust_level(score: int) -> TrustLevel:
    """Map a trust score to its display tier"""
    for floor, level in TRUST_LEVEL_THRESHOLDS:
        if score >= floor:
            return level
    return TrustLevel.restricted


def attendance_rate_score(attended: int, approved: int) -> int:
    """
    Points for showing up, 0..40.

    Users with fewer than 3 approvals get no credit either way, so a single
    attendance cannot be used to farm a perfect rate.
    """
    if approved < ATTENDANCE_MIN_APPROVALS:
        return 0
    rate = max(attended, 0) / approved
    # Half-up rounding, not banker's rounding
    points = math.floor(rate * ATTENDANCE_MAX_POINTS + 0.5)
    return min(max(points, 0), ATTENDANCE_MAX_POINTS)


def no_show_penalty(no_show_count: int) -> int:
    """-10 per no-show, never below -30"""
    if no_show_count <= 0:
        return 0
    return max(no_show_count * NO_SHOW_STEP, NO_SHOW_CAP)


def cancellation_penalty(cancelled_at: datetime, meeting_date: datetime) -> int:
    """Penalty for withdrawing, by hours of notice given before the meeting"""
    hours_until_meeting = (meeting_date - cancelled_at).total_seconds() / 3600
    for min_hours, penalty in CANCELLATION_TIERS:
        if hours_until_meeting >= min_hours:
            return penalty
    return CANCELLATION_MAX_PENALTY


def host_experience_score(hosted_count: int) -> int:
    """
    Points for hosting experience.

    hosted_count == 2 deliberately falls through to 0, matching the
    production step table.
    """
    if hosted_count == 1:
        return 2
    if 3 <= hosted_count < 5:
        return 5
    if hosted_count >= 5:
        return 10
    return 0


def clamp_score(score: int) -> int:
    return min(max(score, settings.SCORE_MIN), settings.SCORE_MAX)
