import calendar
import math
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from constructpro.app.db.models import TaskModel


class TimeScale(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# Pixel width of one grid column per scale
COLUMN_WIDTHS: Dict[TimeScale, int] = {
    TimeScale.DAY: 40,
    TimeScale.WEEK: 100,
    TimeScale.MONTH: 200,
}

# Length of one column in days; months are approximated
UNIT_DAYS: Dict[TimeScale, float] = {
    TimeScale.DAY: 1.0,
    TimeScale.WEEK: 7.0,
    TimeScale.MONTH: 30.44,
}

_SNAP_EPSILON = 1e-6


def start_of_week(d: date) -> date:
    """Sunday on or before ``d``."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def end_of_week(d: date) -> date:
    """Saturday on or after ``d``."""
    return start_of_week(d) + timedelta(days=6)


def add_months(d: date, months: int) -> date:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    years, month_index = divmod(d.month - 1 + months, 12)
    year = d.year + years
    month = month_index + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def local_week_number(d: date) -> int:
    """Week of year with Sunday-start weeks where week 1 contains January 1st."""
    sow = start_of_week(d)
    if date(sow.year + 1, 1, 1) <= sow + timedelta(days=6):
        return 1
    return (sow - start_of_week(date(sow.year, 1, 1))).days // 7 + 1


def overall_range(tasks: Iterable[TaskModel], today: Optional[date] = None) -> Tuple[date, date]:
    """Visible range of the timeline: whole weeks covering every task.

    An empty task set shows four weeks starting from the current week.
    """
    tasks = list(tasks)
    if not tasks:
        today = today or date.today()
        return start_of_week(today), end_of_week(today + timedelta(weeks=4))
    min_start = min(t.start_date for t in tasks)
    max_end = max(t.end_date for t in tasks)
    return start_of_week(min_start), end_of_week(max_end)


def parse_scale(value) -> TimeScale:
    if isinstance(value, TimeScale):
        return value
    try:
        return TimeScale(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown time scale {value!r}; expected one of day, week, month")


class TimelineMapper:
    """Maps calendar dates to horizontal pixel offsets and back.

    Offsets are measured from ``overall_start``. At month scale the 30.44-day
    approximation means converting back may drift by up to a day.
    """

    def __init__(self, overall_start: date, overall_end: date, scale=TimeScale.DAY):
        self.overall_start = overall_start
        self.overall_end = overall_end
        self.scale = parse_scale(scale)

    @classmethod
    def for_tasks(cls, tasks: Iterable[TaskModel], scale=TimeScale.DAY, today: Optional[date] = None) -> "TimelineMapper":
        start, end = overall_range(tasks, today=today)
        return cls(start, end, scale)

    @property
    def column_width(self) -> int:
        return COLUMN_WIDTHS[self.scale]

    @property
    def unit_days(self) -> float:
        return UNIT_DAYS[self.scale]

    @property
    def pixels_per_day(self) -> float:
        return self.column_width / self.unit_days

    def date_to_offset(self, d: date) -> float:
        units = (d - self.overall_start).days / self.unit_days
        return units * self.column_width

    def offset_to_date(self, pixels: float) -> date:
        days = pixels / self.pixels_per_day
        nearest = round(days)
        if abs(days - nearest) < _SNAP_EPSILON:
            whole = int(nearest)
        else:
            whole = math.floor(days)
        return self.overall_start + timedelta(days=whole)

    def days_for_delta(self, delta_pixels: float) -> int:
        """Whole days represented by a pointer delta, truncated toward zero."""
        return int(delta_pixels / self.pixels_per_day)

    def grid_dates(self) -> List[date]:
        dates: List[date] = []
        current = self.overall_start
        step = 0
        while current <= self.overall_end:
            dates.append(current)
            step += 1
            if self.scale is TimeScale.DAY:
                current = self.overall_start + timedelta(days=step)
            elif self.scale is TimeScale.WEEK:
                current = self.overall_start + timedelta(weeks=step)
            else:
                current = add_months(self.overall_start, step)
        return dates

    def header_label(self, d: date) -> str:
        if self.scale is TimeScale.DAY:
            return f"{d.day} {calendar.month_abbr[d.month]}"
        if self.scale is TimeScale.WEEK:
            return f"Week {local_week_number(d)}"
        return f"{calendar.month_name[d.month]} {d.year}"

    @property
    def total_width(self) -> int:
        return len(self.grid_dates()) * self.column_width

    def bar_geometry(self, start: date, end: date) -> Tuple[float, float]:
        """Left offset and width of a task bar.

        At day scale the end column is included so a single-day task is visible.
        """
        left = self.date_to_offset(start)
        width = self.date_to_offset(end) - left
        if self.scale is TimeScale.DAY:
            width += self.column_width
        return left, max(0.0, width)

    def today_offset(self, today: Optional[date] = None) -> Optional[float]:
        """Offset of the today marker, or None when today is outside the visible range."""
        today = today or date.today()
        offset = self.date_to_offset(today)
        if offset > 0 and self.overall_start < today < self.overall_end:
            return offset
        return None
