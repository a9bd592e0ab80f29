"""Tests for order summaries, staff notifications and periodic jobs"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.jobs import tasks
from app.models.business import StaffContact
from app.models.processed_message import ProcessedMessage
from app.services import notifications
from app.services.notifications import build_order_summary, format_money, notify_staff_new_order
from tests.conftest import book, local


class FakeMessages:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = fail_for

    def create(self, body, from_, to):
        if to in self.fail_for:
            raise RuntimeError("undeliverable")
        self.sent.append((to, body))


class FakeTwilio:
    messages = None

    def __init__(self, account_sid, auth_token):
        pass


def test_format_money():
    assert format_money(1050) == "$10.50"
    assert format_money(0, "LBP ") == "LBP 0.00"


@pytest.mark.asyncio
async def test_order_summary(test_db, test_business, test_menu_items):
    order = await book(test_db, test_business, test_menu_items["Chef's Table"], local("2026-10-20T19:00"))

    summary = build_order_summary(order, test_business)

    assert summary.startswith(f"Order #{order.order_number} - Test Bistro")
    assert "1x Chef's Table - $200.00" in summary
    assert "Total: $200.00" in summary
    assert "Type: Takeaway" in summary
    assert "Scheduled: Tuesday 20 October at 19:00" in summary


@pytest.mark.asyncio
async def test_notify_staff(test_db, test_business, test_menu_items, monkeypatch):
    """Test each active staff contact gets a text, and one failure does not stop the rest"""
    for name, phone, active in [
        ("Kitchen", "+96170000101", True),
        ("Manager", "+96170000102", True),
        ("Former", "+96170000103", False),
    ]:
        test_db.add(StaffContact(business_id=test_business.id, name=name, phone=phone, is_active=active))
    await test_db.commit()

    messages = FakeMessages(fail_for=("+96170000102",))
    FakeTwilio.messages = messages
    monkeypatch.setattr(notifications, "TwilioClient", FakeTwilio)

    order = await book(test_db, test_business, test_menu_items["Margherita Pizza"], None)
    sent = await notify_staff_new_order(test_db, order.id)

    assert sent == 1
    assert [to for to, _ in messages.sent] == ["+96170000101"]
    assert messages.sent[0][1].startswith("New order!\nOrder #")


@pytest.mark.asyncio
async def test_notify_staff_without_contacts(test_db, test_business, test_menu_items):
    order = await book(test_db, test_business, test_menu_items["Margherita Pizza"], None)

    assert await notify_staff_new_order(test_db, order.id) == 0


@pytest.mark.asyncio
async def test_purge_processed_messages(session_factory, test_business, clock):
    """Test dedup records older than the TTL are purged"""
    async with session_factory() as db:
        for key, age in [("old", 30), ("recent", 1)]:
            db.add(
                ProcessedMessage(
                    business_id=test_business.id,
                    customer_identifier="+96170111222",
                    dedup_key=key,
                    function_name="clear_cart",
                    response_json={"success": True},
                    created_at=clock.now() - timedelta(hours=age),
                )
            )
        await db.commit()

    deleted = await tasks._purge_processed_messages(session_factory, clock.now())

    assert deleted == 1
    async with session_factory() as db:
        remaining = await db.execute(select(func.count(ProcessedMessage.id)))
        assert remaining.scalar() == 1


@pytest.mark.asyncio
async def test_expire_inactive_carts_job(run, session_factory, clock):
    await run("add_item_to_cart", {"item_name": "Margherita Pizza"})

    assert await tasks._expire_inactive_carts(session_factory, clock.now()) == 0
    assert await tasks._expire_inactive_carts(session_factory, clock.now() + timedelta(hours=3)) == 1
