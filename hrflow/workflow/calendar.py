"""Calendar arithmetic for leave requests: business days and department overlap.

Both components are pure: callers pass in the holiday set and the headcounts,
nothing here touches the database.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import AbstractSet, Iterable, Optional

logger = logging.getLogger(__name__)

# Saturday (5) and Sunday (6)
WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})


# ═════════════════════════════════════════════════════════════════════
# BusinessDayCalculator
# ═════════════════════════════════════════════════════════════════════


class BusinessDayCalculator:
    """Counts days in an inclusive range that are neither weekend nor holiday."""

    def __init__(self, weekend_days: AbstractSet[int] = WEEKEND_DAYS) -> None:
        self.weekend_days = frozenset(weekend_days)

    def is_business_day(self, day: date, holidays: AbstractSet[date]) -> bool:
        return day.weekday() not in self.weekend_days and day not in holidays

    def business_days(
        self,
        start: date,
        end: date,
        holidays: AbstractSet[date],
    ) -> list[date]:
        """Business days in [start, end]; empty when end < start."""
        days: list[date] = []
        current = start
        while current <= end:
            if self.is_business_day(current, holidays):
                days.append(current)
            current += timedelta(days=1)
        return days

    def count(self, start: date, end: date, holidays: AbstractSet[date]) -> int:
        """Number of business days in [start, end].

        Returns 0 for a range made only of weekends/holidays; rejecting such
        a submission is the caller's policy decision.
        """
        return len(self.business_days(start, end, holidays))


# ═════════════════════════════════════════════════════════════════════
# ConflictDetector
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ConflictAssessment:
    overlapping_headcount: int
    department_headcount: int
    warning: Optional[str] = None

    @property
    def ratio(self) -> float:
        if not self.department_headcount:
            return 0.0
        return self.overlapping_headcount / self.department_headcount

    @property
    def flagged(self) -> bool:
        return self.warning is not None


class ConflictDetector:
    """Advisory check: is too much of a department away at once?

    The result never blocks a submission; it only produces a warning string
    for the submitter and the audit trail.
    """

    def __init__(self, threshold: float = 0.30) -> None:
        if not 0 <= threshold <= 1:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold

    def assess(
        self,
        department_name: Optional[str],
        department_headcount: int,
        overlapping_employee_ids: Iterable[uuid.UUID],
    ) -> ConflictAssessment:
        """
        Args:
            department_name: Used in the warning text only.
            department_headcount: Active employees in the department.
            overlapping_employee_ids: Owners of other active (pending,
                pending_hr, approved) requests in the department that
                intersect the proposed range. Duplicates count once.
        """
        overlapping = len(set(overlapping_employee_ids))
        if department_headcount <= 0:
            return ConflictAssessment(overlapping, department_headcount)

        if overlapping / department_headcount <= self.threshold:
            return ConflictAssessment(overlapping, department_headcount)

        warning = (
            f"Warning: More than {self.threshold:.0%} of your department "
            f"({department_name or 'unassigned'}) is likely to be away during this period."
        )
        logger.info(
            "Department overlap %d/%d in %s exceeds %.2f",
            overlapping, department_headcount, department_name, self.threshold,
        )
        return ConflictAssessment(overlapping, department_headcount, warning)
