from __future__ import annotations

import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from ordering_portal.models import ItemReceivingStatus, OrderStatus
from ordering_portal.services.order_service import (
    add_order_item,
    create_order,
    edit_order_line,
    get_order_detail,
    list_orders,
    update_order,
    update_order_item,
)
from ordering_portal.services.order_status_service import STATUS_POLICY_COERCE, OrderStateError
from db_helpers import add_distributor, add_order, add_product, add_store, make_session_factory


class OrderServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.store = add_store(self.db)
        self.other_store = add_store(self.db, name='Falmouth', code='FAL')
        self.distributor = add_distributor(self.db)
        self.rice = add_product(self.db, self.distributor, name='Arroz', item_code='1', unit_price='20.00')
        self.beans = add_product(self.db, self.distributor, name='Feijao', item_code='2', unit_price='7.50')
        self.order = add_order(
            self.db,
            self.store,
            self.distributor,
            [(self.rice, '10', '20.00'), (self.beans, '5', '7.50')],
        )
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()


class CreateAndListTests(OrderServiceTestCase):
    def test_new_orders_start_pending(self) -> None:
        order = create_order(self.db, store_id=self.store.id, distributor_id=self.distributor.id, total='99.999')
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.total, Decimal('100.00'))

    def test_create_requires_known_store(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Store not found'):
            create_order(self.db, store_id=999, distributor_id=self.distributor.id, total='1')

    def test_list_filters_by_store(self) -> None:
        create_order(self.db, store_id=self.other_store.id, distributor_id=self.distributor.id, total='1')
        self.db.commit()
        self.assertEqual(len(list_orders(self.db)), 2)
        self.assertEqual([o.id for o in list_orders(self.db, store_id=self.store.id)], [self.order.id])
        self.assertEqual(list_orders(self.db, distributor_id=999), [])

    def test_detail_nests_items_with_products(self) -> None:
        order = get_order_detail(self.db, self.order.id)
        self.assertEqual(order.store.name, 'Hyannis')
        self.assertEqual([item.product.name for item in order.items], ['Arroz', 'Feijao'])

    def test_add_item_computes_missing_total(self) -> None:
        item = add_order_item(self.db, self.order.id, product_id=self.rice.id, quantity='3', price='2,5')
        self.assertEqual(item.total, Decimal('7.50'))

    def test_oversized_amounts_fall_back_to_zero(self) -> None:
        order = create_order(self.db, store_id=self.store.id, distributor_id=self.distributor.id, total='1e30')
        self.assertEqual(order.total, Decimal('0.00'))
        item = add_order_item(self.db, order.id, product_id=self.rice.id, quantity='1e300', price='2')
        self.assertEqual((item.quantity, item.total), (Decimal('0.00'), Decimal('0.00')))


class UpdateOrderTests(OrderServiceTestCase):
    def test_entering_receiving_records_actor_and_notes(self) -> None:
        order = update_order(
            self.db,
            self.order.id,
            {'status': 'receiving', 'receiving_notes': 'n' * 1500, 'received_by': 'spoofed'},
            actor_username='gol',
        )
        self.assertEqual(order.status, OrderStatus.RECEIVING)
        self.assertEqual(order.received_by, 'gol')
        self.assertIsNotNone(order.received_at)
        self.assertEqual(len(order.receiving_notes), 1000)

    def test_client_supplied_received_at_is_kept(self) -> None:
        when = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        order = update_order(
            self.db,
            self.order.id,
            {'status': 'receiving', 'received_at': when},
            actor_username='gol',
        )
        self.assertEqual(order.received_at, when)

    def test_unknown_status_rejected_by_default(self) -> None:
        with self.assertRaises(ValueError):
            update_order(self.db, self.order.id, {'status': 'lost'}, actor_username='gol')

    def test_unknown_status_coerced_under_legacy_policy(self) -> None:
        self.order.status = OrderStatus.SHIPPED
        order = update_order(
            self.db,
            self.order.id,
            {'status': 'lost'},
            actor_username='gol',
            status_policy=STATUS_POLICY_COERCE,
        )
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_cancelled_order_is_final(self) -> None:
        update_order(self.db, self.order.id, {'status': 'cancelled'}, actor_username='gol')
        with self.assertRaises(OrderStateError):
            update_order(self.db, self.order.id, {'status': 'pending'}, actor_username='gol')


class UpdateOrderItemTests(OrderServiceTestCase):
    def test_receiving_fields_rejected_outside_receiving(self) -> None:
        item = self.order.items[0]
        with self.assertRaises(OrderStateError):
            update_order_item(self.db, item.id, {'received_quantity': '10'})

    def test_receiving_fields_derive_status_and_missing(self) -> None:
        update_order(self.db, self.order.id, {'status': 'receiving'}, actor_username='gol')
        item = self.order.items[1]
        update_order_item(self.db, item.id, {'received_quantity': '0', 'receiving_notes': 'x' * 600})
        self.assertEqual(item.receiving_status, ItemReceivingStatus.MISSING)
        self.assertEqual(item.missing_quantity, Decimal('5.00'))
        self.assertEqual(len(item.receiving_notes), 500)

    def test_quantity_change_recomputes_line_total(self) -> None:
        item = self.order.items[0]
        update_order_item(self.db, item.id, {'quantity': '4'})
        self.assertEqual(item.total, Decimal('80.00'))


class EditOrderLineTests(OrderServiceTestCase):
    def test_price_edit_updates_line_order_and_product(self) -> None:
        item = self.order.items[1]
        edit_order_line(self.db, item.id, quantity='6', price='8.00')
        self.db.commit()

        self.assertEqual(item.total, Decimal('48.00'))
        self.assertEqual(self.order.total, Decimal('248.00'))
        self.assertEqual(self.beans.unit_price, Decimal('8.00'))
        self.assertEqual(self.beans.previous_unit_price, Decimal('7.50'))

    def test_price_edit_can_leave_product_alone(self) -> None:
        item = self.order.items[1]
        edit_order_line(self.db, item.id, price='8.00', update_product_price=False)
        self.assertEqual(self.beans.unit_price, Decimal('7.50'))
        self.assertEqual(self.order.total, Decimal('240.00'))

    def test_failed_order_total_write_rolls_back_everything(self) -> None:
        item = self.order.items[1]
        real_flush = self.db.flush
        calls = {'n': 0}

        def failing_flush(*args, **kwargs):
            calls['n'] += 1
            real_flush(*args, **kwargs)
            if calls['n'] == 2:
                raise SQLAlchemyError('simulated failure')

        with patch.object(self.db, 'flush', side_effect=failing_flush):
            with self.assertRaises(SQLAlchemyError):
                edit_order_line(self.db, item.id, price='9.00')
        self.db.rollback()

        self.assertEqual(item.price, Decimal('7.50'))
        self.assertEqual(self.beans.unit_price, Decimal('7.50'))
        self.assertEqual(self.order.total, Decimal('237.50'))

    def test_nothing_to_update(self) -> None:
        with self.assertRaises(ValueError):
            edit_order_line(self.db, self.order.items[0].id)


if __name__ == '__main__':
    unittest.main()
