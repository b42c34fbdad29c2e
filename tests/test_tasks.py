# tests/test_tasks.py

from types import SimpleNamespace

import pytest

from tableserve import tasks
from tableserve.database import async_session_maker, init_db
from tableserve.models import OrderType
from tableserve.services.feedback import OrderNotFoundError, SqlAlchemyOrderStore
from tableserve.tasks import _resume_zone_fan_out, health_check, resume_zone_fan_out
from tests.conftest import FIXED_NOW, orm_order, seed_orders


class TestResumeZoneFanOut:
    """Test cases for the fan-out recovery job"""

    @pytest.mark.asyncio
    async def test_completes_missing_children(self):
        await init_db()

        async with async_session_maker() as session:
            child_ids = await seed_orders(
                session,
                orm_order("RESUME-SHOP1", order_type=OrderType.ZONE_SHOP),
                orm_order(
                    "RESUME-SHOP2",
                    order_type=OrderType.ZONE_SHOP,
                    feedback_rating=2,
                    feedback_comment="Cold",
                    feedback_submitted_at=FIXED_NOW,
                    feedback_is_public=False,
                ),
            )
            [main_id] = await seed_orders(
                session,
                orm_order(
                    "RESUME-ZONE",
                    order_type=OrderType.ZONE_MAIN,
                    child_order_ids=child_ids,
                    feedback_rating=4,
                    feedback_comment="Good",
                    feedback_submitted_at=FIXED_NOW,
                    feedback_is_public=True,
                ),
            )

        result = await _resume_zone_fan_out(main_id)

        assert result["target"] == "already_rated"
        assert result["order_number"] == "RESUME-ZONE"
        assert [c["outcome"] for c in result["children"]] == ["applied", "skipped:already_rated"]

        async with async_session_maker() as session:
            child = await SqlAlchemyOrderStore(session).find_order_by_id(child_ids[0])

        assert child.feedback.rating == 4
        assert child.feedback.comment == "Good (Zone review)"
        assert child.feedback.is_public is True


class TestResumeTaskRun:
    """Test cases for the resume_zone_fan_out Celery task"""

    def test_engine_disposed_after_each_run(self, monkeypatch):
        events = []

        async def fake_resume(order_id):
            events.append(("resume", order_id))
            return {"order_number": "ZONE1"}

        async def fake_dispose():
            events.append(("dispose",))

        monkeypatch.setattr(tasks, "_resume_zone_fan_out", fake_resume)
        monkeypatch.setattr(tasks, "engine", SimpleNamespace(dispose=fake_dispose))

        resume_zone_fan_out.apply(args=[7])
        outcome = resume_zone_fan_out.apply(args=[8])

        assert outcome.result == {"order_number": "ZONE1"}
        assert events == [("resume", 7), ("dispose",), ("resume", 8), ("dispose",)]

    def test_engine_disposed_when_run_fails(self, monkeypatch):
        disposed = []

        async def failing_resume(order_id):
            raise OrderNotFoundError(f"Order {order_id} not found")

        async def fake_dispose():
            disposed.append(True)

        monkeypatch.setattr(tasks, "_resume_zone_fan_out", failing_resume)
        monkeypatch.setattr(tasks, "engine", SimpleNamespace(dispose=fake_dispose))

        outcome = resume_zone_fan_out.apply(args=[9])

        assert outcome.failed()
        assert disposed == [True]


class TestHealthTask:

    def test_health_check(self):
        assert health_check.apply().result["status"] == "healthy"
