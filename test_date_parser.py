import unittest
from datetime import datetime, timedelta, timezone

from saas_assistant.services.date_parser import (
    get_current_date_context,
    parse_relative_date,
    parse_time,
    resolve_timezone,
    split_time_phrase,
)
from saas_assistant.tools.scheduling import parse_when


# Wednesday, 10:00 UTC
BASE = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class TestParseTime(unittest.TestCase):
    def test_meridiem_and_clock_times(self):
        cases = {
            "3pm": (15, 0),
            "3:45 pm": (15, 45),
            "6 am": (6, 0),
            "12am": (0, 0),
            "12pm": (12, 0),
            "14:00": (14, 0),
            "09:30": (9, 30),
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(parse_time(text), expected)

    def test_named_periods(self):
        self.assertEqual(parse_time("morning"), (9, 0))
        self.assertEqual(parse_time("in the afternoon"), (14, 0))
        self.assertEqual(parse_time("evening"), (18, 0))
        self.assertEqual(parse_time("night"), (20, 0))
        self.assertEqual(parse_time("noon"), (12, 0))
        self.assertEqual(parse_time("midnight"), (0, 0))

    def test_bare_hour_infers_afternoon_for_small_numbers(self):
        self.assertEqual(parse_time("3"), (15, 0))
        self.assertEqual(parse_time("at 7"), (19, 0))
        self.assertEqual(parse_time("9"), (9, 0))
        self.assertEqual(parse_time("16"), (16, 0))

    def test_unparseable_time(self):
        self.assertIsNone(parse_time("whenever"))
        self.assertIsNone(parse_time("25:00"))
        self.assertIsNone(parse_time(None))


class TestParseRelativeDate(unittest.TestCase):
    def test_next_friday_at_three(self):
        parsed = parse_relative_date("next friday", "3pm", base_date=BASE)

        self.assertEqual(parsed.date.weekday(), 4)
        self.assertEqual(parsed.date.hour, 15)
        self.assertEqual(parsed.date.date().isoformat(), "2024-03-15")
        self.assertEqual(parsed.formatted_time, "3:00 PM")
        self.assertEqual(parsed.formatted_date, "March 15, 2024")

    def test_every_weekday_resolves_forward(self):
        for index, name in enumerate(WEEKDAYS):
            with self.subTest(day=name):
                parsed = parse_relative_date(f"next {name}", "3pm", base_date=BASE)
                self.assertEqual(parsed.date.weekday(), index)
                self.assertEqual(parsed.date.hour, 15)
                self.assertGreater(parsed.date, BASE)

    def test_same_weekday_means_next_week(self):
        parsed = parse_relative_date("wednesday", "9am", base_date=BASE)
        self.assertEqual(parsed.date.date().isoformat(), "2024-03-20")

    def test_weekday_of_next_week(self):
        parsed = parse_relative_date("tuesday next week", "10am", base_date=BASE)
        self.assertEqual(parsed.date.date().isoformat(), "2024-03-19")

    def test_last_weekday_stays_in_the_past(self):
        parsed = parse_relative_date("last monday", "9am", base_date=BASE)
        self.assertEqual(parsed.date.date().isoformat(), "2024-03-11")

    def test_explicit_iso_date(self):
        parsed = parse_relative_date("2024-03-19", "14:00")
        self.assertTrue(parsed.iso_string.startswith("2024-03-19T14:00"))
        self.assertEqual(parsed.iso_string, "2024-03-19T14:00:00Z")

    def test_explicit_date_formats(self):
        for text in ("03/19/2024", "March 19, 2024", "Mar 19, 2024"):
            with self.subTest(text=text):
                parsed = parse_relative_date(text, "noon", base_date=BASE)
                self.assertEqual(parsed.date.date().isoformat(), "2024-03-19")

    def test_iso_datetime_carries_its_own_time(self):
        parsed = parse_relative_date("2024-03-19T16:30:00", None, base_date=BASE)
        self.assertEqual((parsed.date.hour, parsed.date.minute), (16, 30))

    def test_tomorrow_and_relative_keywords(self):
        self.assertEqual(
            parse_relative_date("tomorrow", "9am", base_date=BASE).date.date().isoformat(), "2024-03-14"
        )
        self.assertEqual(
            parse_relative_date("next week", None, base_date=BASE).date.date().isoformat(), "2024-03-20"
        )
        self.assertEqual(
            parse_relative_date("next month", None, base_date=BASE).date.date().isoformat(), "2024-04-13"
        )

    def test_garbage_input_falls_back_to_base_date_and_noon(self):
        parsed = parse_relative_date("the day after never", "whenever", base_date=BASE)
        self.assertEqual(parsed.date.date(), BASE.date())
        self.assertEqual((parsed.date.hour, parsed.date.minute), (12, 0))

    def test_today_in_the_past_moves_to_next_hour(self):
        now = datetime(2024, 3, 13, 10, 20, 45, tzinfo=timezone.utc)
        parsed = parse_relative_date("today", "9am", base_date=now, now=now)
        self.assertEqual(parsed.date, datetime(2024, 3, 13, 11, 20, tzinfo=timezone.utc))

    def test_today_in_the_future_is_kept(self):
        parsed = parse_relative_date("today", "4pm", base_date=BASE)
        self.assertEqual(parsed.date, datetime(2024, 3, 13, 16, 0, tzinfo=timezone.utc))

    def test_timezone_offset_in_iso_string(self):
        parsed = parse_relative_date("tomorrow", "9am", base_date=BASE, timezone="America/New_York")
        self.assertEqual(parsed.iso_string, "2024-03-14T09:00:00-04:00")
        self.assertEqual(parsed.timezone, "America/New_York")

    def test_unknown_timezone_falls_back_to_utc(self):
        parsed = parse_relative_date("tomorrow", "9am", base_date=BASE, timezone="Mars/Olympus")
        self.assertEqual(parsed.timezone, "UTC")
        self.assertTrue(parsed.iso_string.endswith("Z"))


class TestSplitTimePhrase(unittest.TestCase):
    def test_time_is_split_from_the_date(self):
        cases = {
            "tomorrow 3pm": ("tomorrow", "3pm"),
            "Friday 10am": ("friday", "10am"),
            "next monday 9:30": ("next monday", "9:30"),
            "tomorrow morning": ("tomorrow", "morning"),
            "3pm tomorrow": ("tomorrow", "3pm"),
            "next week": ("next week", None),
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(split_time_phrase(text), expected)


class TestParseWhen(unittest.TestCase):
    def test_phrase_without_at_keeps_its_time(self):
        today = datetime.now(timezone.utc).date()

        start = parse_when("tomorrow 3pm", "UTC")
        self.assertEqual((start.hour, start.minute), (15, 0))
        self.assertEqual(start.date(), today + timedelta(days=1))

        start = parse_when("friday 10am", "UTC")
        self.assertEqual(start.weekday(), 4)
        self.assertEqual((start.hour, start.minute), (10, 0))
        self.assertGreater(start, datetime.now(timezone.utc))

        start = parse_when("next monday 9:30", "America/New_York")
        self.assertEqual(start.weekday(), 0)
        self.assertEqual((start.hour, start.minute), (9, 30))

    def test_phrase_with_at(self):
        start = parse_when("tomorrow at 4:15pm", "UTC")
        self.assertEqual((start.hour, start.minute), (16, 15))

    def test_iso_timestamp(self):
        start = parse_when("2024-03-15T09:00:00Z", "UTC")
        self.assertEqual(start, datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc))


class TestDateContext(unittest.TestCase):
    def test_resolve_timezone(self):
        self.assertEqual(resolve_timezone(None)[0], "UTC")
        self.assertEqual(resolve_timezone("GMT")[0], "UTC")
        self.assertEqual(resolve_timezone("Europe/Berlin")[0], "Europe/Berlin")

    def test_current_date_context(self):
        context = get_current_date_context("UTC", now=BASE)
        self.assertEqual(context["currentDate"], "2024-03-13")
        self.assertEqual(context["tomorrow"], "2024-03-14")
        self.assertEqual(context["nextWeek"], "2024-03-20")
        self.assertEqual(context["currentTime"], "10:00 AM")
        self.assertEqual(context["formattedDate"], "Wednesday, March 13, 2024")


if __name__ == "__main__":
    unittest.main()
