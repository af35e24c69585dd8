import unittest
from datetime import datetime, timedelta

from analysis import _round2, _summarize_vitals
from db import Database
from errors import InvalidArgument, NotFound
from vitals import delete_vital, list_vital_types, list_vitals, record_vital, summarize_vitals

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


class VitalsTests(unittest.TestCase):
    def setUp(self):
        self.db = Database(":memory:").open()
        self._conn_cm = self.db.connect()
        self.conn = self._conn_cm.__enter__()
        self.uid = self._add_user("alice")
        self.other = self._add_user("bob")

    def tearDown(self):
        self._conn_cm.__exit__(None, None, None)
        self.db.close()

    def _add_user(self, username):
        cur = self.conn.execute(
            "INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)",
            (username, f"{username}@example.com", "not-a-real-hash"),
        )
        self.conn.commit()
        return cur.lastrowid

    def _record(self, value, days_ago, vital_type="heart_rate", unit="bpm", user=None):
        return record_vital(
            self.conn, user or self.uid, vital_type, value, unit,
            measured_at=_iso(NOW - timedelta(days=days_ago)),
        )

    def test_summary_over_trailing_window(self):
        self._record(70, 1)
        self._record(80, 3)
        self._record(90, 10)
        summary, vitals = summarize_vitals(self.conn, self.uid, "heart_rate", 7, now=NOW)
        self.assertEqual(summary["count"], 2)
        self.assertEqual(summary["current"], 70)
        self.assertEqual(summary["average"], 75.00)
        self.assertEqual(summary["min"], 70.00)
        self.assertEqual(summary["max"], 80.00)
        self.assertEqual(summary["unit"], "bpm")
        self.assertEqual(summary["period_days"], 7)
        self.assertEqual([v["value"] for v in vitals], [80, 70])

    def test_current_is_latest_measurement_not_latest_insert(self):
        self._record(65, 0.5)
        self._record(99, 5)
        summary, _ = summarize_vitals(self.conn, self.uid, "heart_rate", 30, now=NOW)
        self.assertEqual(summary["current"], 65)

    def test_summary_unit_comes_from_earliest_reading(self):
        self._record(98.6, 4, vital_type="temperature", unit="F")
        self._record(37.0, 1, vital_type="temperature", unit="C")
        summary, _ = summarize_vitals(self.conn, self.uid, "temperature", 30, now=NOW)
        self.assertEqual(summary["unit"], "F")

    def test_summary_without_data_is_none(self):
        self._record(70, 40)
        summary, vitals = summarize_vitals(self.conn, self.uid, "heart_rate", 30, now=NOW)
        self.assertIsNone(summary)
        self.assertEqual(vitals, [])
        summary, _ = summarize_vitals(self.conn, self.uid, "weight", 30, now=NOW)
        self.assertIsNone(summary)

    def test_summary_ignores_future_and_other_users(self):
        self._record(120, -2)
        self._record(50, 1, user=self.other)
        summary, _ = summarize_vitals(self.conn, self.uid, "heart_rate", 30, now=NOW)
        self.assertIsNone(summary)

    def test_summary_rejects_bad_window(self):
        for days in (0, -3, "7", True):
            with self.assertRaises(InvalidArgument):
                summarize_vitals(self.conn, self.uid, "heart_rate", days, now=NOW)

    def test_rounding_is_half_away_from_zero(self):
        self.assertEqual(_round2(2.675), 2.68)
        self.assertEqual(_round2(70.125), 70.13)
        self.assertEqual(_round2(-70.125), -70.13)
        self.assertEqual(_round2(75), 75.0)
        rows = [{"value": 1.0, "unit": "u"}, {"value": 2.0, "unit": "u"}, {"value": 2.0, "unit": "u"}]
        self.assertEqual(_summarize_vitals(rows, "x", 30)["average"], 1.67)

    def test_record_then_list_round_trips(self):
        created = record_vital(
            self.conn, self.uid, "temperature", 98.65, "°F",
            measured_at="2026-10-18T08:30:00Z", notes="after a run",
        )
        vitals = list_vitals(self.conn, self.uid)
        self.assertEqual(len(vitals), 1)
        got = vitals[0]
        self.assertEqual(got["id"], created["id"])
        self.assertEqual(got["vital_type"], "temperature")
        self.assertEqual(got["value"], 98.65)
        self.assertEqual(got["unit"], "°F")
        self.assertEqual(got["measured_at"], "2026-10-18T08:30:00Z")
        self.assertEqual(got["notes"], "after a run")

    def test_measured_at_offsets_are_normalized_to_utc(self):
        vital = record_vital(self.conn, self.uid, "heart_rate", 60, "bpm",
                             measured_at="2026-10-18T10:30:00+02:00")
        self.assertEqual(vital["measured_at"], "2026-10-18T08:30:00Z")

    def test_fractional_seconds_survive_round_trip(self):
        record_vital(self.conn, self.uid, "heart_rate", 61, "bpm",
                     measured_at="2026-10-18T08:30:00.250Z")
        record_vital(self.conn, self.uid, "heart_rate", 62, "bpm",
                     measured_at="2026-10-18T08:30:00.123456+02:00")
        got = {v["value"]: v["measured_at"] for v in list_vitals(self.conn, self.uid)}
        self.assertEqual(got[61], "2026-10-18T08:30:00.250Z")
        self.assertEqual(got[62], "2026-10-18T06:30:00.123456Z")

    def test_sub_second_readings_keep_their_order(self):
        self._record(70, 1)
        record_vital(self.conn, self.uid, "heart_rate", 71, "bpm", measured_at="2026-10-18T12:00:00.900Z")
        record_vital(self.conn, self.uid, "heart_rate", 72, "bpm", measured_at="2026-10-18T12:00:00.100Z")
        summary, vitals = summarize_vitals(self.conn, self.uid, "heart_rate", 7, now=NOW)
        self.assertEqual([v["value"] for v in vitals], [70, 72, 71])
        self.assertEqual(summary["current"], 71)

    def test_date_only_upper_bound_covers_the_last_instant_of_the_day(self):
        record_vital(self.conn, self.uid, "heart_rate", 66, "bpm", measured_at="2026-10-17T23:59:59.500Z")
        ranged = list_vitals(self.conn, self.uid, to_date="2026-10-17")
        self.assertEqual([v["value"] for v in ranged], [66])
        self.assertEqual(list_vitals(self.conn, self.uid, to_date="2026-10-16"), [])

    def test_very_wide_summary_window(self):
        self._record(70, 1)
        self._record(80, 4000)
        for days in (1_000_000, 10 ** 12):
            summary, _ = summarize_vitals(self.conn, self.uid, "heart_rate", days, now=NOW)
            self.assertEqual(summary["count"], 2)
            self.assertEqual(summary["period_days"], days)

    def test_instants_outside_the_calendar_are_rejected(self):
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", 70, "bpm",
                         measured_at="0001-01-01T00:00:00+01:00")
        with self.assertRaises(InvalidArgument):
            list_vitals(self.conn, self.uid, to_date="9999-12-31T23:30:00-01:00")
        self.assertEqual(list_vitals(self.conn, self.uid), [])

    def test_notes_must_be_text(self):
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", 70, "bpm", notes={"mood": "ok"})
        vital = record_vital(self.conn, self.uid, "heart_rate", 70, "bpm", notes="")
        self.assertIsNone(vital["notes"])

    def test_zero_is_a_valid_value(self):
        vital = record_vital(self.conn, self.uid, "steps", 0, "count")
        self.assertEqual(vital["value"], 0)
        self.assertIsNotNone(vital["measured_at"])

    def test_missing_fields_are_rejected(self):
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", None, "bpm")
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "", 70, "bpm")
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", 70, "")
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", "seventy", "bpm")
        with self.assertRaises(InvalidArgument):
            record_vital(self.conn, self.uid, "heart_rate", 70, "bpm", measured_at="yesterday")

    def test_measured_at_defaults_to_now(self):
        vital = record_vital(self.conn, self.uid, "heart_rate", 72, "bpm", now=NOW)
        self.assertEqual(vital["measured_at"], "2026-10-19T12:00:00Z")

    def test_list_filters_and_orders_descending(self):
        self._record(70, 1)
        self._record(80, 3)
        self._record(120, 2, vital_type="blood_pressure", unit="mmHg")
        vitals = list_vitals(self.conn, self.uid, vital_type="heart_rate")
        self.assertEqual([v["value"] for v in vitals], [70, 80])

        all_vitals = list_vitals(self.conn, self.uid)
        self.assertEqual([v["value"] for v in all_vitals], [70, 120, 80])

        day_of_second = (NOW - timedelta(days=2)).date().isoformat()
        ranged = list_vitals(self.conn, self.uid, from_date=day_of_second, to_date=day_of_second)
        self.assertEqual([v["value"] for v in ranged], [120])
        self.assertEqual(list_vitals(self.conn, self.other), [])

    def test_list_rejects_unparseable_range(self):
        with self.assertRaises(InvalidArgument):
            list_vitals(self.conn, self.uid, from_date="last week")

    def test_vital_types_keep_each_unit(self):
        self._record(70, 1)
        self._record(37.0, 1, vital_type="temperature", unit="C")
        self._record(98.6, 2, vital_type="temperature", unit="F")
        self._record(71, 2)
        types = list_vital_types(self.conn, self.uid)
        self.assertEqual(types, [
            {"vital_type": "heart_rate", "unit": "bpm"},
            {"vital_type": "temperature", "unit": "C"},
            {"vital_type": "temperature", "unit": "F"},
        ])

    def test_delete_requires_ownership(self):
        vital = self._record(70, 1)
        with self.assertRaises(NotFound):
            delete_vital(self.conn, self.other, vital["id"])
        delete_vital(self.conn, self.uid, vital["id"])
        self.assertEqual(list_vitals(self.conn, self.uid), [])
        with self.assertRaises(NotFound):
            delete_vital(self.conn, self.uid, vital["id"])


if __name__ == "__main__":
    unittest.main()
