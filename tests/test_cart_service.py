from __future__ import annotations

import unittest
from decimal import Decimal

from ordering_portal.models import OrderStatus
from ordering_portal.services.cart_service import Cart, build_cart, checkout
from db_helpers import add_distributor, add_product, add_store, make_session_factory


class CartTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.store = add_store(self.db)
        self.atlantic = add_distributor(self.db, name='Atlantic Foods', code='ATL')
        self.boston = add_distributor(self.db, name='Boston Produce', code='BOS')
        self.rice = add_product(self.db, self.atlantic, name='Arroz', item_code='1', unit_price='20.00', box_price='110.00')
        self.oil = add_product(self.db, self.atlantic, name='Oleo', item_code='2', unit_price='8.00')
        self.banana = add_product(self.db, self.boston, name='Banana', item_code='3', unit_price='1.25')
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_add_merges_same_product_and_unit_mode(self) -> None:
        cart = Cart()
        self.assertTrue(cart.add(self.rice, 2))
        self.assertTrue(cart.add(self.rice, '1'))
        self.assertTrue(cart.add(self.rice, 1, is_box_unit=True))
        self.assertEqual(len(cart.lines), 2)
        self.assertEqual(cart.lines[0].quantity, Decimal('3'))
        self.assertEqual(cart.total, Decimal('170.00'))

    def test_box_mode_needs_a_box_price(self) -> None:
        cart = Cart()
        self.assertFalse(cart.add(self.oil, 1, is_box_unit=True))
        self.assertFalse(cart.add(self.oil, 0))
        self.assertEqual(cart.lines, [])

    def test_update_quantity_to_zero_removes_line(self) -> None:
        cart = Cart()
        cart.add(self.oil, 2)
        cart.update_quantity(self.oil.id, 5, is_box_unit=False)
        self.assertEqual(cart.lines[0].quantity, Decimal('5'))
        cart.update_quantity(self.oil.id, 0, is_box_unit=False)
        self.assertEqual(cart.lines, [])

    def test_remove_and_clear(self) -> None:
        cart = Cart()
        cart.add(self.oil, 1)
        cart.add(self.banana, 1)
        cart.remove(self.oil.id)
        self.assertEqual([line.product.id for line in cart.lines], [self.banana.id])
        cart.clear()
        self.assertEqual(cart.total, Decimal('0.00'))

    def test_groups_lines_by_distributor(self) -> None:
        cart = Cart()
        cart.add(self.rice, 1)
        cart.add(self.banana, 4)
        cart.add(self.oil, 1)
        grouped = cart.by_distributor()
        self.assertEqual(sorted(grouped), sorted([self.atlantic.id, self.boston.id]))
        self.assertEqual(len(grouped[self.atlantic.id]), 2)

    def test_checkout_places_one_pending_order_per_distributor(self) -> None:
        cart, rejected = build_cart(
            self.db,
            [
                {'product_id': self.rice.id, 'quantity': 1, 'is_box_unit': True},
                {'product_id': self.oil.id, 'quantity': '2'},
                {'product_id': self.banana.id, 'quantity': 12},
            ],
        )
        self.assertEqual(rejected, [])

        orders = checkout(self.db, cart, store_id=self.store.id)
        self.db.commit()

        self.assertEqual(len(orders), 2)
        by_distributor = {order.distributor_id: order for order in orders}
        atlantic_order = by_distributor[self.atlantic.id]
        self.assertEqual(atlantic_order.status, OrderStatus.PENDING)
        self.assertEqual(atlantic_order.total, Decimal('126.00'))
        self.assertEqual(
            sorted((item.price, item.total) for item in atlantic_order.items),
            [(Decimal('8.00'), Decimal('16.00')), (Decimal('110.00'), Decimal('110.00'))],
        )
        self.assertEqual(by_distributor[self.boston.id].total, Decimal('15.00'))

    def test_build_cart_reports_unknown_products(self) -> None:
        cart, rejected = build_cart(self.db, [{'product_id': 999, 'quantity': 1}])
        self.assertEqual(cart.lines, [])
        self.assertEqual(rejected, ['Product 999 not found'])

    def test_checkout_of_empty_cart(self) -> None:
        with self.assertRaisesRegex(ValueError, 'empty'):
            checkout(self.db, Cart(), store_id=self.store.id)


if __name__ == '__main__':
    unittest.main()
