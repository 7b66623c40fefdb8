from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlmodel import Session, select

from marketplace.constants.order_status import OrderStatus
from marketplace.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketplace.models.item import Item
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.services import inventory_service
from marketplace.services.inventory_service import reserve_stock
from marketplace.services.order_service import merge_order_lines, transition_order_status
from tests.conftest import OTHER_USER_ID, USER_ID


def _stock(session, item):
    session.refresh(item)
    return item.stock


class TestMergeOrderLines:
    def test_repeated_items_are_folded(self):
        merged = merge_order_lines([(1, 2), (2, 1), (1, 3)])
        assert merged == {1: 5, 2: 1}
        assert list(merged.keys()) == [1, 2]

    def test_empty_order_rejected(self):
        with pytest.raises(ValidationError):
            merge_order_lines([])

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            merge_order_lines([(1, 0)])


class TestCreateOrder:
    def test_reserves_stock_and_snapshots_total(self, session, order_service, catalog):
        lamp, mug = catalog["lamp"], catalog["mug"]

        order = order_service.create_order(USER_ID, [(lamp.id, 2), (mug.id, 3)])

        assert order.status == OrderStatus.PENDING.value
        assert order.total == Decimal("27.50")
        assert _stock(session, lamp) == 3
        assert _stock(session, mug) == 7

        lines = {line.item_id: line for line in order.items}
        assert lines[lamp.id].unit_price == Decimal("10.00")
        assert lines[lamp.id].vendor_id == lamp.vendor_id
        assert lines[mug.id].quantity == 3

    def test_total_is_not_recomputed_after_price_change(self, session, order_service, catalog):
        lamp = catalog["lamp"]
        order = order_service.create_order(USER_ID, [(lamp.id, 1)])

        lamp.price = Decimal("99.00")
        session.add(lamp)
        session.commit()

        session.refresh(order)
        assert order.total == Decimal("10.00")
        assert order.items[0].unit_price == Decimal("10.00")

    def test_duplicate_item_lines_become_one_order_item(self, session, order_service, catalog):
        lamp = catalog["lamp"]
        order = order_service.create_order(USER_ID, [(lamp.id, 1), (lamp.id, 2)])

        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert _stock(session, lamp) == 2

    def test_queues_order_confirmation(self, order_service, notifications, sender, catalog):
        order = order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])

        assert notifications.pending == 1
        assert notifications.run() == 1
        kind, recipient, variables = sender.sent[0]
        assert kind == "order_confirmation"
        assert recipient == USER_ID
        assert variables["order_id"] == order.id
        assert Decimal(variables["total_amount"]) == Decimal("2.50")

    def test_unknown_item(self, session, order_service, catalog):
        with pytest.raises(NotFoundError) as exc:
            order_service.create_order(USER_ID, [(catalog["lamp"].id, 1), (999, 1)])

        assert exc.value.details["item_ids"] == [999]
        assert _stock(session, catalog["lamp"]) == 5
        assert session.exec(select(Order)).all() == []


class TestInsufficientStock:
    def test_rejected_without_any_stock_change(self, session, order_service, notifications, catalog):
        lamp, basket = catalog["lamp"], catalog["basket"]

        with pytest.raises(InsufficientStockError) as exc:
            order_service.create_order(USER_ID, [(lamp.id, 2), (basket.id, 4)])

        assert exc.value.item_id == basket.id
        assert exc.value.available == 3
        assert exc.value.requested == 4
        assert "Basket" in exc.value.message

        assert _stock(session, lamp) == 5
        assert _stock(session, basket) == 3
        assert session.exec(select(Order)).all() == []
        assert session.exec(select(OrderItem)).all() == []
        assert notifications.pending == 0

    def test_guard_catches_stock_taken_after_read(self, session, catalog):
        lamp = catalog["lamp"]
        session.refresh(lamp)

        # another buyer takes 4 units behind our back
        session.execute(
            update(Item)
            .where(Item.id == lamp.id)
            .values(stock=1)
            .execution_options(synchronize_session=False)
        )

        assert lamp.stock == 5
        with pytest.raises(InsufficientStockError) as exc:
            reserve_stock(session, lamp, 2)

        assert exc.value.available == 1
        session.rollback()

    def test_exact_stock_can_be_reserved(self, session, order_service, catalog):
        basket = catalog["basket"]
        order_service.create_order(USER_ID, [(basket.id, 3)])

        assert _stock(session, basket) == 0
        with pytest.raises(InsufficientStockError):
            order_service.create_order(OTHER_USER_ID, [(basket.id, 1)])

    def test_decrement_failure_after_flush_rolls_back_the_order(
        self, engine, session, order_service, notifications, catalog
    ):
        lamp, basket = catalog["lamp"], catalog["basket"]

        # another buyer empties the basket after our session loaded it
        with Session(engine) as other:
            other.execute(update(Item).where(Item.id == basket.id).values(stock=0))
            other.commit()
        assert basket.stock == 3

        with pytest.raises(InsufficientStockError) as exc:
            order_service.create_order(USER_ID, [(lamp.id, 2), (basket.id, 2)])

        assert exc.value.available == 0
        assert _stock(session, lamp) == 5
        assert _stock(session, basket) == 0
        assert session.exec(select(Order)).all() == []
        assert session.exec(select(OrderItem)).all() == []
        assert notifications.pending == 0


class TestCancelOrder:
    def test_cancel_restores_stock(self, session, order_service, catalog):
        lamp, mug = catalog["lamp"], catalog["mug"]
        order = order_service.create_order(USER_ID, [(lamp.id, 2), (mug.id, 1)])

        cancelled = order_service.cancel_order(order.id, USER_ID)

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert _stock(session, lamp) == 5
        assert _stock(session, mug) == 10

    def test_second_cancel_is_rejected_and_stock_untouched(self, session, order_service, catalog):
        lamp = catalog["lamp"]
        order = order_service.create_order(USER_ID, [(lamp.id, 2)])
        order_service.cancel_order(order.id, USER_ID)

        with pytest.raises(InvalidStateError) as exc:
            order_service.cancel_order(order.id, USER_ID)

        assert exc.value.current == OrderStatus.CANCELLED.value
        assert exc.value.expected == OrderStatus.PENDING.value
        assert _stock(session, lamp) == 5

    def test_processing_order_cannot_be_cancelled(self, session, order_service, catalog):
        lamp = catalog["lamp"]
        order = order_service.create_order(USER_ID, [(lamp.id, 1)])
        assert transition_order_status(session, order.id, OrderStatus.PENDING, OrderStatus.PROCESSING)
        session.commit()

        with pytest.raises(InvalidStateError):
            order_service.cancel_order(order.id, USER_ID)

        assert _stock(session, lamp) == 4

    def test_restock_failure_rolls_back_the_cancel(self, session, order_service, catalog, monkeypatch):
        lamp, mug = catalog["lamp"], catalog["mug"]
        order = order_service.create_order(USER_ID, [(lamp.id, 2), (mug.id, 1)])

        original = inventory_service.restore_stock
        calls = []

        def flaky_restore(session, item_id, quantity):
            calls.append(item_id)
            if len(calls) > 1:
                raise RuntimeError("connection dropped")
            original(session, item_id, quantity)

        monkeypatch.setattr(inventory_service, "restore_stock", flaky_restore)

        with pytest.raises(RuntimeError):
            order_service.cancel_order(order.id, USER_ID)

        assert len(calls) == 2
        session.refresh(order)
        assert order.status == OrderStatus.PENDING.value
        assert _stock(session, lamp) == 3
        assert _stock(session, mug) == 9
        assert [e.event_type for e in order_service.order_timeline(order.id, USER_ID)] == ["order_placed"]

    def test_other_user_cannot_cancel(self, session, order_service, catalog):
        order = order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])

        with pytest.raises(ForbiddenError):
            order_service.cancel_order(order.id, OTHER_USER_ID)

        session.refresh(order)
        assert order.status == OrderStatus.PENDING.value

    def test_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            order_service.cancel_order(12345, USER_ID)


class TestTransitionOrderStatus:
    def test_only_applies_from_expected_status(self, session, order_service, catalog):
        order = order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])

        assert not transition_order_status(
            session, order.id, OrderStatus.PROCESSING, OrderStatus.SHIPPED
        )
        assert transition_order_status(
            session, order.id, OrderStatus.PENDING, OrderStatus.PROCESSING
        )
        assert not transition_order_status(
            session, order.id, OrderStatus.PENDING, OrderStatus.CANCELLED
        )
        session.commit()

        session.refresh(order)
        assert order.status == OrderStatus.PROCESSING.value

    def test_illegal_transition_is_a_programming_error(self, session):
        with pytest.raises(ValueError):
            transition_order_status(session, 1, OrderStatus.CANCELLED, OrderStatus.PENDING)


class TestOrderReads:
    def test_list_orders_only_returns_own_orders(self, order_service, catalog):
        order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])
        order_service.create_order(USER_ID, [(catalog["lamp"].id, 1)])
        order_service.create_order(OTHER_USER_ID, [(catalog["basket"].id, 1)])

        page = order_service.list_orders(USER_ID, page=1, limit=1)

        assert page["total_items"] == 2
        assert page["total_pages"] == 2
        assert page["has_more"] is True
        assert len(page["results"]) == 1
        assert page["results"][0].user_id == USER_ID

    def test_timeline_records_each_transition(self, order_service, catalog):
        order = order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])
        order_service.cancel_order(order.id, USER_ID)

        events = order_service.order_timeline(order.id, USER_ID)

        assert [event.event_type for event in events] == ["order_placed", "order_cancelled"]
        assert events[1].meta == {"items_restocked": 1}

    def test_get_order_of_other_user_is_forbidden(self, order_service, catalog):
        order = order_service.create_order(USER_ID, [(catalog["mug"].id, 1)])

        with pytest.raises(ForbiddenError):
            order_service.get_order(order.id, OTHER_USER_ID)
