"""
Feedback Export Verification Script

Verifies data integrity of the feedback Excel export.
Run from project root: python scripts/verify.py
"""

import os
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from tableserve.core.config import get_settings

settings = get_settings()
EXCEL_FILE = Path(settings.data_directory) / settings.feedback_excel_filename


def verify_excel() -> bool:
    """Verify the feedback export file."""

    print("=" * 60)
    print("🔍 FEEDBACK EXPORT REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {EXCEL_FILE}")
    print("=" * 60)

    if not EXCEL_FILE.exists():
        print("\n❌ Excel file not found!")
        print("   Submit feedback with FEEDBACK_EXPORT_ENABLED=true and a running worker first")
        return False

    try:
        df = pd.read_excel(EXCEL_FILE, engine='openpyxl')
        print(f"\n✅ File loaded successfully!")
    except Exception as e:
        print(f"\n❌ Could not read Excel file: {e}")
        return False

    print(f"\n📊 STATISTICS:")
    print(f"   Total Rows: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    required = ['order_id', 'order_number', 'rating', 'submitted_at']
    missing = [col for col in required if col not in df.columns]
    ok = not missing

    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print(f"\n✅ All required columns present")

    # Each order can be rated once
    if 'order_number' in df.columns:
        duplicates = df['order_number'].duplicated().sum()
        if duplicates > 0:
            ok = False
            print(f"\n⚠️ {duplicates} orders exported more than once!")
        else:
            print(f"✅ No order rated twice")

    if 'rating' in df.columns and len(df) > 0:
        out_of_range = (~df['rating'].between(1, 5)).sum()
        if out_of_range:
            ok = False
            print(f"⚠️ {out_of_range} ratings outside 1-5")
        print(f"\n⭐ RATINGS:")
        print(f"   Average: {df['rating'].mean():.1f}/5")
        print(df['rating'].value_counts().sort_index().to_string())

    print(f"\n📋 RECENT FEEDBACK:")
    print("-" * 60)
    if len(df) > 0:
        cols = ['order_number', 'order_type', 'parent_order_number', 'rating']
        cols = [c for c in cols if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "⚠️ VERIFICATION FOUND PROBLEMS")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_excel() else 1)
