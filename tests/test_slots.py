from datetime import date

import pytest

from booking.slots import (
    SlotLabel,
    SlotTime,
    date_variants,
    extract_slot_time,
    match_slots,
    months_between,
    parse_picker_heading,
    parse_target_date,
    parse_target_time,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("8:00 am", SlotTime(8, 0)),
        ("8:00pm", SlotTime(20, 0)),
        ("8 am", SlotTime(8, 0)),
        ("12:15 AM", SlotTime(0, 15)),
        ("12:30 pm", SlotTime(12, 30)),
        ("8:00", SlotTime(8, 0)),
        ("20:00", SlotTime(20, 0)),
    ],
)
def test_parse_target_time(raw, expected):
    assert parse_target_time(raw) == expected


@pytest.mark.parametrize("raw", ["", "noon", "25:00", "13:00 pm", "8:75"])
def test_parse_target_time_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_target_time(raw)


def test_parse_target_date_is_strict():
    assert parse_target_date("2025-11-05") == date(2025, 11, 5)
    with pytest.raises(ValueError):
        parse_target_date("11/05/2025")
    with pytest.raises(ValueError):
        parse_target_date("2025-02-30")


def test_eight_am_matches_only_the_morning_slot():
    labels = [
        SlotLabel(0, "8:00 AM - 9:00 AM Morning Flow"),
        SlotLabel(1, "8:30 AM - 9:30 AM Spin"),
        SlotLabel(2, "8:00 PM - 9:00 PM Evening Stretch"),
    ]

    matches, available = match_slots(labels, parse_target_time("8:00 am"))

    assert [label.index for label in matches] == [0]
    assert available == ["08:00", "08:30", "20:00"]


def test_header_and_hidden_labels_are_ignored():
    labels = [
        SlotLabel(0, "Week of 8:00 AM"),
        SlotLabel(1, "8:00 AM Yoga", visible=False),
        SlotLabel(2, "8:00 AM", class_name="cal-header"),
        SlotLabel(3, "8:00 AM Pilates"),
    ]

    matches, _ = match_slots(labels, SlotTime(8, 0))

    assert [label.index for label in matches] == [3]


def test_time_deep_inside_a_label_is_not_the_slot_time():
    text = "Strength and conditioning for beginners, ends 8:00 AM"
    assert extract_slot_time(text) is None
    assert extract_slot_time("7:45 AM Strength") == SlotTime(7, 45)


def test_label_from_collected_dict():
    label = SlotLabel.from_dict({"index": "4", "text": "  8:00 AM\n Yoga ", "className": "event"})
    assert label == SlotLabel(4, "8:00 AM Yoga", True, "event")


def test_date_variants_and_picker_heading():
    assert date_variants(date(2025, 11, 5)) == ["2025-11-05", "Nov 5, 2025", "2025/11/05", "05/11/2025"]
    assert parse_picker_heading(["November", "2025"]) == (2025, 11)
    assert parse_picker_heading(["Nov 2025"]) == (2025, 11)
    assert parse_picker_heading(["Select a date"]) is None
    assert months_between((2025, 10), (2026, 1)) == 3
    assert months_between((2025, 11), (2025, 9)) == -2


def test_twelve_hour_rendering():
    assert SlotTime(0, 5).twelve_hour() == "12:05 am"
    assert SlotTime(20, 0).twelve_hour() == "8:00 pm"
    assert str(SlotTime(8, 0)) == "08:00"
