import unittest

from server.app.transport import MODES, aggregate_modes, canonical_mode


class CanonicalModeTests(unittest.TestCase):
    def test_airmail_is_air(self) -> None:
        self.assertEqual(canonical_mode("Airmail"), "Air")

    def test_precedence_sea_air_postal_courier(self) -> None:
        cases = {
            "Sea mail": "Sea",
            "SEA FREIGHT": "Sea",
            "Air courier": "Air",
            "Parcel Post": "Postal",
            "Mail": "Postal",
            "Postal courier": "Postal",
            "Courier": "Courier",
            "Rail": "Other",
            "": "Other",
            None: "Other",
        }
        for label, expected in cases.items():
            with self.subTest(label=label):
                self.assertEqual(canonical_mode(label), expected)

    def test_result_is_always_a_known_mode(self) -> None:
        for label in ("Pipeline", "Own propulsion", "airport", "Courier", "post"):
            self.assertIn(canonical_mode(label), MODES)


class AggregateModesTests(unittest.TestCase):
    def test_sums_per_mode_in_discovery_order(self) -> None:
        pairs = [("Air", 5), ("Sea", 10), ("Airmail", -20), ("Rail", 0), ("Sea cargo", 2.5)]
        self.assertEqual(
            aggregate_modes(pairs),
            [{"mode": "Air", "value": 15}, {"mode": "Sea", "value": 12.5}],
        )

    def test_zero_totals_are_dropped(self) -> None:
        self.assertEqual(aggregate_modes([("Courier", 4), ("Courier", -4)]), [])
        self.assertEqual(aggregate_modes([]), [])


if __name__ == "__main__":
    unittest.main()
