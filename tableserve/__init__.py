"""
                TableServe Feedback Service

Customer feedback backend for TableServe restaurant and zone orders:
order lookup by number and phone, feedback eligibility, and fan-out of
zone reviews to the per-shop child orders.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
