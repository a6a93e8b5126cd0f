from datetime import date, time

import pytest

from services.errors import ValidationError
from services.windows import normalize_windows


def test_windows_are_deduplicated_and_sorted():
    windows = normalize_windows([
        {"play_date": "2030-01-02", "start_time": "19:00", "end_time": "20:00"},
        {"play_date": "2030-01-02", "start_time": "18:00", "end_time": "19:00"},
        {"play_date": "2030-01-02", "start_time": "19:00:00", "end_time": "20:00:00"},
        {"play_date": "2030-01-01", "start_time": "21:00", "end_time": "22:00"},
    ])

    assert [(w.play_date, w.start_time) for w in windows] == [
        (date(2030, 1, 1), time(21, 0)),
        (date(2030, 1, 2), time(18, 0)),
        (date(2030, 1, 2), time(19, 0)),
    ]


@pytest.mark.parametrize("raw", [
    [],
    None,
    [{"play_date": "2030-01-02", "start_time": "19:00", "end_time": "18:00"}],
    [{"play_date": "2030-01-02", "start_time": "19:00", "end_time": "19:00"}],
    [{"play_date": "02/01/2030", "start_time": "18:00", "end_time": "19:00"}],
    [{"play_date": "2030-01-02", "start_time": "6pm", "end_time": "19:00"}],
    [{"play_date": "2030-01-02", "start_time": "18:00"}],
    ["2030-01-02 18:00"],
])
def test_malformed_windows_are_rejected(raw):
    with pytest.raises(ValidationError):
        normalize_windows(raw)
