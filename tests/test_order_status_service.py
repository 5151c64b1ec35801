from __future__ import annotations

import unittest
from decimal import Decimal

from ordering_portal.models import ItemReceivingStatus, OrderStatus
from ordering_portal.services.order_status_service import (
    STATUS_POLICY_COERCE,
    ItemQuantities,
    OrderStateError,
    assert_item_receiving_allowed,
    assert_receiving_allowed,
    assert_transition_allowed,
    final_order_status,
    item_receiving_status,
    missing_quantity,
    resolve_order_status,
)


class ResolveOrderStatusTests(unittest.TestCase):
    def test_known_values_are_accepted(self) -> None:
        for status in OrderStatus:
            self.assertEqual(resolve_order_status(status.value), status)
        self.assertEqual(resolve_order_status(' Shipped '), OrderStatus.SHIPPED)

    def test_unknown_value_is_rejected_by_default(self) -> None:
        with self.assertRaises(ValueError):
            resolve_order_status('lost')

    def test_unknown_value_is_coerced_under_legacy_policy(self) -> None:
        with self.assertLogs('ordering_portal.services.order_status_service', level='WARNING'):
            self.assertEqual(resolve_order_status('lost', policy=STATUS_POLICY_COERCE), OrderStatus.PENDING)


class TransitionTests(unittest.TestCase):
    def test_terminal_states_cannot_change(self) -> None:
        for terminal in (OrderStatus.CANCELLED, OrderStatus.RECEIVED):
            with self.assertRaises(OrderStateError):
                assert_transition_allowed(terminal, OrderStatus.PENDING)
            with self.assertRaises(OrderStateError):
                assert_receiving_allowed(terminal)
            # Re-asserting the current status is a no-op.
            assert_transition_allowed(terminal, terminal)

    def test_partially_received_accepts_another_pass(self) -> None:
        assert_transition_allowed(OrderStatus.PARTIALLY_RECEIVED, OrderStatus.RECEIVING)
        assert_receiving_allowed(OrderStatus.PARTIALLY_RECEIVED)

    def test_item_receiving_fields_need_a_receiving_order(self) -> None:
        assert_item_receiving_allowed(OrderStatus.RECEIVING)
        assert_item_receiving_allowed(OrderStatus.PARTIALLY_RECEIVED)
        with self.assertRaises(OrderStateError):
            assert_item_receiving_allowed(OrderStatus.SHIPPED)

    def test_state_error_is_a_value_error(self) -> None:
        self.assertTrue(issubclass(OrderStateError, ValueError))


class ItemReceivingStatusTests(unittest.TestCase):
    def test_truth_table(self) -> None:
        cases = [
            (10, 10, ItemReceivingStatus.RECEIVED),
            (0, 10, ItemReceivingStatus.MISSING),
            (3, 10, ItemReceivingStatus.PARTIAL),
            (12, 10, ItemReceivingStatus.PENDING),
            (0, 0, ItemReceivingStatus.RECEIVED),
            ('2.50', '5.00', ItemReceivingStatus.PARTIAL),
        ]
        for received, ordered, expected in cases:
            with self.subTest(received=received, ordered=ordered):
                self.assertEqual(item_receiving_status(received, ordered), expected)

    def test_missing_quantity_never_negative(self) -> None:
        self.assertEqual(missing_quantity(3, 5), Decimal('2.00'))
        self.assertEqual(missing_quantity(7, 5), Decimal('0.00'))


class FinalOrderStatusTests(unittest.TestCase):
    def test_all_received(self) -> None:
        items = [ItemQuantities(Decimal('10'), Decimal('10')), ItemQuantities(Decimal('5'), Decimal('5'))]
        self.assertEqual(final_order_status(items), OrderStatus.RECEIVED)

    def test_any_short_line_is_partial(self) -> None:
        items = [ItemQuantities(Decimal('10'), Decimal('10')), ItemQuantities(Decimal('5'), Decimal('3'))]
        self.assertEqual(final_order_status(items), OrderStatus.PARTIALLY_RECEIVED)

    def test_unrecorded_items_count_as_nothing_received(self) -> None:
        items = [ItemQuantities(Decimal('10'), Decimal('10')), ItemQuantities(Decimal('5'), None)]
        self.assertEqual(final_order_status(items), OrderStatus.PARTIALLY_RECEIVED)


if __name__ == '__main__':
    unittest.main()
