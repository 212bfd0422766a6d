"""Workbook input/output layer.

Public API:
    load_schedule_rows(workbook)          -- bulk-read the annual schedule sheet
    ControlSheet(worksheet)               -- plan targets + exception ledger store
    write_cumulative_module_columns(...)  -- module columns on the cumulative report
    write_category_counts(...)            -- lesson/event category counts
    write_plan_summary(...)               -- plan summary + day-by-day schedule sheet
"""

from .control import ControlLayout, ControlSheet, exception_to_row
from .reader import get_sheet, load_schedule_rows

__all__ = [
    "ControlLayout",
    "ControlSheet",
    "exception_to_row",
    "get_sheet",
    "load_schedule_rows",
    "write_category_counts",
    "write_cumulative_module_columns",
    "write_plan_summary",
]


# Lazy imports: styles are only needed when rendering.
def write_cumulative_module_columns(*args, **kwargs):
    from .xlsx import write_cumulative_module_columns as _fn
    return _fn(*args, **kwargs)

def write_category_counts(*args, **kwargs):
    from .xlsx import write_category_counts as _fn
    return _fn(*args, **kwargs)

def write_plan_summary(*args, **kwargs):
    from .xlsx import write_plan_summary as _fn
    return _fn(*args, **kwargs)
