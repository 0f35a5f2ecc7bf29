import unittest

from nexo.services.stock_service import LineSnapshot, stock_deltas


def _line(product_id, quantity, tracks_stock=True):
    return LineSnapshot(product_id=product_id, quantity=quantity, tracks_stock=tracks_stock)


class StockDeltaTests(unittest.TestCase):
    def setUp(self):
        self.lines = [_line(1, 2), _line(2, 3), _line(9, 4, tracks_stock=False)]

    def test_entering_completed_decrements(self):
        self.assertEqual(stock_deltas("Pending", "Completed", self.lines), {1: -2, 2: -3})

    def test_creating_completed_decrements(self):
        self.assertEqual(stock_deltas(None, "Completed", self.lines), {1: -2, 2: -3})

    def test_leaving_completed_restores(self):
        self.assertEqual(stock_deltas("Completed", "Pending", self.lines), {1: 2, 2: 3})
        self.assertEqual(stock_deltas("Completed", "Cancelled", self.lines), {1: 2, 2: 3})

    def test_deleting_completed_restores(self):
        self.assertEqual(stock_deltas("Completed", None, self.lines), {1: 2, 2: 3})

    def test_transitions_outside_completed_move_nothing(self):
        for old, new in [
            ("Pending", "Cancelled"),
            ("Cancelled", "Pending"),
            (None, "Pending"),
            (None, "Cancelled"),
            ("Pending", None),
            ("Cancelled", None),
        ]:
            with self.subTest(old=old, new=new):
                self.assertEqual(stock_deltas(old, new, self.lines), {})

    def test_same_status_is_noop(self):
        for status in ("Pending", "Completed", "Cancelled"):
            with self.subTest(status=status):
                self.assertEqual(stock_deltas(status, status, self.lines), {})

    def test_lines_on_same_product_are_aggregated(self):
        lines = [_line(1, 2), _line(1, 5), _line(3, 1)]
        self.assertEqual(stock_deltas("Pending", "Completed", lines), {1: -7, 3: -1})

    def test_services_never_appear(self):
        lines = [_line(7, 3, tracks_stock=False)]
        self.assertEqual(stock_deltas("Pending", "Completed", lines), {})
        self.assertEqual(stock_deltas("Completed", None, lines), {})

    def test_round_trip_nets_to_zero(self):
        out = stock_deltas("Pending", "Completed", self.lines)
        back = stock_deltas("Completed", "Pending", self.lines)
        for pid in out:
            self.assertEqual(out[pid] + back[pid], 0)


if __name__ == "__main__":
    unittest.main()
