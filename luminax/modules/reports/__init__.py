"""
Reports Module
==============

Services:
- ProgressReportService: Summary, chart, subject breakdown and history views
"""

from .service import ProgressReportService

__all__ = ["ProgressReportService"]
