import unittest

from slot_allocator import enumerate_slots


class TestEnumerateSlots(unittest.TestCase):
    def test_default_window_yields_eighteen_hourly_slots(self) -> None:
        slots = enumerate_slots(4, 22)

        self.assertEqual(len(slots), 18)
        self.assertEqual(slots[0].start, 4)
        self.assertEqual(slots[0].end, 5)
        self.assertEqual(slots[0].label, "4:00 - 5:00")
        self.assertEqual(slots[-1].label, "21:00 - 22:00")
        for slot in slots:
            self.assertEqual(slot.end - slot.start, 1)

    def test_late_window_reaches_midnight(self) -> None:
        slots = enumerate_slots(4, 24)

        self.assertEqual(len(slots), 20)
        self.assertEqual(slots[-1].label, "23:00 - 24:00")

    def test_is_restartable(self) -> None:
        self.assertEqual(enumerate_slots(8, 12), enumerate_slots(8, 12))

    def test_rejects_empty_or_out_of_range_windows(self) -> None:
        with self.assertRaises(ValueError):
            enumerate_slots(10, 10)
        with self.assertRaises(ValueError):
            enumerate_slots(12, 8)
        with self.assertRaises(ValueError):
            enumerate_slots(4, 25)


if __name__ == "__main__":
    unittest.main()
