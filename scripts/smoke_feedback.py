"""
Feedback Smoke Test

Runs the zone feedback flow end to end against an in-memory order store:
    1. Zone main order submission fans out to completed child orders
    2. Order lookup variants (case, phone formatting) resolve the same order
    3. Eligibility per order type
    4. Feedback retrieval summary for the zone

Run from project root: python scripts/smoke_feedback.py
"""

import asyncio
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableserve.services.feedback import (
    FeedbackPropagator,
    FeedbackQuery,
    InMemoryOrderStore,
    OrderRecord,
    is_eligible,
    normalize_lookup,
)
from tableserve.services.feedback.reports import get_zone_feedback

ZONE_ORDER_NUMBER = "ZN16FGV"
CUSTOMER_PHONE = "7826482736"
ZONE_ID = "zone-16"


def build_store() -> InMemoryOrderStore:
    """Zone order ZN16FGV with two completed shop orders."""
    return InMemoryOrderStore([
        OrderRecord(
            id="mockId123",
            order_number=ZONE_ORDER_NUMBER,
            order_type="zone_main",
            status="ready",
            customer_phone=CUSTOMER_PHONE,
            customer_name="Test Customer",
            child_order_ids=["child1", "child2"],
            zone_id=ZONE_ID,
        ),
        OrderRecord(
            id="child1",
            order_number="FGV16XYZ",
            order_type="zone_shop",
            status="completed",
            customer_phone=CUSTOMER_PHONE,
            zone_id=ZONE_ID,
            shop_id="shop-pizza",
            shop_name="Pizza Palace",
            parent_order_id="mockId123",
        ),
        OrderRecord(
            id="child2",
            order_number="FGV16ABC",
            order_type="zone_shop",
            status="completed",
            customer_phone=CUSTOMER_PHONE,
            zone_id=ZONE_ID,
            shop_id="shop-curry",
            shop_name="Curry House",
            parent_order_id="mockId123",
        ),
    ])


def check(condition: bool, message: str) -> bool:
    print(f"   {'✅' if condition else '❌'} {message}")
    return condition


async def test_zone_submission(store: InMemoryOrderStore) -> bool:
    print("\nTest 1: Zone main order feedback submission")

    comment = "Excellent service across all shops!"
    result = await FeedbackPropagator(store).submit_feedback(
        "zn16fgv", "(782) 648-2736", 5, comment, True
    )

    ok = check(result.target.value == "applied", f"Main order: {result.target.value}")
    ok &= check(result.order.feedback.rating == 5, "Main order rating is 5")
    for child in result.children:
        stored = store.get(child.id)
        ok &= check(
            child.outcome.value == "applied"
            and stored.feedback.rating == 5
            and stored.feedback.comment == f"{comment} (Zone review)",
            f"Child {child.order_number}: {child.outcome.value}",
        )
    return ok


def test_lookup_variants() -> bool:
    print("\nTest 2: Order lookup variants")

    variants = [
        ("zn16fgv", "7826482736"),
        ("ZN16FGV", "782-648-2736"),
        ("ZN16FGV", "(782) 648-2736"),
    ]
    keys = {normalize_lookup(number, phone) for number, phone in variants}
    for number, phone in variants:
        key = normalize_lookup(number, phone)
        print(f"   📞 {number!r} / {phone!r} → {key.order_number} / {key.phone_digits}")
    return check(len(keys) == 1, "All variants normalize to the same key")


def test_order_types() -> bool:
    print("\nTest 3: Eligibility per order type")

    cases = [
        ("zone_main", "ready", True),
        ("zone_shop", "pending", True),
        ("single", "pending", False),
        ("single", "completed", True),
    ]
    ok = True
    for order_type, status, expected in cases:
        order = OrderRecord(
            id=order_type, order_number="X", order_type=order_type,
            status=status, customer_phone=CUSTOMER_PHONE,
        )
        ok &= check(
            is_eligible(order) == expected,
            f"{order_type}/{status}: {'allowed' if expected else 'rejected'}",
        )
    return ok


async def test_retrieval(store: InMemoryOrderStore) -> bool:
    print("\nTest 4: Zone feedback retrieval")

    data = await get_zone_feedback(store, ZONE_ID, FeedbackQuery())
    for item in data["feedback"]:
        print(f"   {item['order_number']} ({item['review_type']}): {item['rating']}/5 - {item['shop_name']}")
    summary = data["summary"]
    print(f"   📈 Average Rating: {summary['average_rating']}/5")
    print(f"   📊 Review Breakdown: {summary['review_breakdown']}")

    return check(
        summary["total_reviews"] == 3
        and summary["review_breakdown"] == {"Zone Review": 1, "Shop Review": 2},
        "Zone and shop reviews are listed",
    )


async def main() -> int:
    print("=" * 60)
    print("🧪 FEEDBACK SMOKE TEST")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')}")

    store = build_store()
    results = [
        await test_zone_submission(store),
        test_lookup_variants(),
        test_order_types(),
        await test_retrieval(store),
    ]

    print("\n" + "=" * 60)
    if all(results):
        print("✅ ALL CHECKS PASSED")
    else:
        print(f"❌ {results.count(False)} CHECK GROUP(S) FAILED")
    print("=" * 60)

    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
