"""
                        Services Module

Contains all business logic services.

Services:
    - feedback: order lookup, eligibility and zone fan-out of customer feedback
    - excel_manager: File-locked Excel export of submitted feedback
"""

from tableserve.services.excel_manager import FeedbackExcelManager

__all__ = ["FeedbackExcelManager"]
