"""Timeline layout and interactive schedule editing."""

from festflow.scheduler.editor import LinkResult, ScheduleEditor
from festflow.scheduler.layout import Placement, Timeline, compute_timeline

__all__ = ["LinkResult", "Placement", "ScheduleEditor", "Timeline", "compute_timeline"]
