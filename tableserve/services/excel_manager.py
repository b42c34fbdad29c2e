"""
Excel File Manager with Concurrency Control

Process-safe Excel export of submitted feedback, one row per order that
received a rating (zone main order and each child it propagated to).
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from tableserve.core.config import get_settings
from tableserve.services.feedback.base import FeedbackResult, OrderRecord, TargetOutcome
from tableserve.services.feedback.rules import plain_value

logger = logging.getLogger(__name__)


class FeedbackExcelManager:
    """File-locked feedback workbook."""

    FEEDBACK_COLUMNS = [
        "order_id",
        "order_number",
        "order_type",
        "parent_order_number",
        "rating",
        "comment",
        "is_public",
        "submitted_at",
        "exported_at",
    ]

    @classmethod
    def _paths(cls) -> tuple[Path, Path]:
        """Workbook and lock file paths from current settings."""
        settings = get_settings()
        data_dir = Path(settings.data_directory)
        workbook = data_dir / settings.feedback_excel_filename
        return workbook, workbook.with_name(workbook.name + ".lock")

    @classmethod
    def _ensure_data_dir(cls, workbook: Path) -> None:
        """Create data directory if needed."""
        if not workbook.parent.exists():
            workbook.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {workbook.parent}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path) -> pd.DataFrame:
        """
        Load existing file or create new DataFrame.

        A workbook that exists but cannot be read raises; rewriting it
        would drop every row exported so far.
        """
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except Exception as e:
                logger.error(f"Error reading {file_path}, export aborted: {e}")
                raise
        return pd.DataFrame(columns=cls.FEEDBACK_COLUMNS)

    @classmethod
    def export_feedback(cls, rows: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Append feedback rows to the workbook under a file lock.

        Args:
            rows: Dicts keyed by FEEDBACK_COLUMNS (``exported_at`` is filled in)

        Returns:
            dict: ``success``, ``message``, ``exported_rows``, ``exported_at``

        Raises:
            Exception: The existing workbook could not be read; the file is
                left untouched so the task can retry
        """
        workbook, lock_path = cls._paths()
        cls._ensure_data_dir(workbook)
        timeout = get_settings().excel_lock_timeout

        result = {
            "success": False,
            "message": "",
            "exported_rows": 0,
            "exported_at": None,
        }

        if not rows:
            result["success"] = True
            result["message"] = "Nothing to export"
            return result

        try:
            with FileLock(str(lock_path), timeout=timeout):
                logger.debug(f"Lock acquired for {len(rows)} feedback rows")

                df = cls._load_or_create_df(workbook)

                export_time = datetime.now().isoformat()
                new_rows = [
                    {column: row.get(column) for column in cls.FEEDBACK_COLUMNS[:-1]}
                    | {"exported_at": export_time}
                    for row in rows
                ]

                df = pd.concat([df, pd.DataFrame(new_rows)], ignore_index=True)
                df.to_excel(str(workbook), index=False, engine="openpyxl")

                logger.info(f"{len(new_rows)} feedback rows exported to Excel")

                result["success"] = True
                result["message"] = f"{len(new_rows)} feedback rows exported"
                result["exported_rows"] = len(new_rows)
                result["exported_at"] = export_time

        except Timeout:
            result["message"] = f"Lock timeout ({timeout}s)"
            logger.error(f"Lock timeout exporting {len(rows)} feedback rows")

        return result

    @classmethod
    def get_all_feedback(cls) -> list[dict[str, Any]]:
        """Get all exported feedback rows."""
        workbook, _ = cls._paths()
        if not workbook.exists():
            return []
        df = pd.read_excel(workbook, engine="openpyxl")
        return df.to_dict("records")

    @classmethod
    def clear_all(cls) -> bool:
        """Delete the workbook and its lock file."""
        for f in cls._paths():
            if f.exists():
                f.unlink()
        logger.info("Feedback export cleared")
        return True


def feedback_export_rows(result: FeedbackResult) -> list[dict[str, Any]]:
    """
    Rows for every order a submission actually rated.

    Args:
        result: FeedbackResult from the propagator

    Returns:
        Main order row (if applied) followed by applied children
    """
    rows = []
    main = result.order

    if result.target == TargetOutcome.APPLIED:
        rows.append(_row(main, parent_order_number=None))

    for child in result.applied_children:
        rows.append(_row(child.order, parent_order_number=main.order_number))

    return rows


def _row(order: OrderRecord, parent_order_number: Optional[str]) -> dict[str, Any]:
    feedback = order.feedback
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "order_type": plain_value(order.order_type),
        "parent_order_number": parent_order_number,
        "rating": feedback.rating,
        "comment": feedback.comment,
        "is_public": feedback.is_public,
        "submitted_at": feedback.submitted_at.isoformat(),
    }
