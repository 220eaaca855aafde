"""Calendar event projections for external sync."""

from fincalendar.calendar.projections import (
    TAG_PREFIX,
    CalendarEventProjection,
    ProjectionKind,
    event_window,
    is_managed_event,
    make_tag,
    month_projections,
    month_window,
)

__all__ = [
    "TAG_PREFIX",
    "CalendarEventProjection",
    "ProjectionKind",
    "event_window",
    "is_managed_event",
    "make_tag",
    "month_projections",
    "month_window",
]
