from datetime import datetime, timedelta, timezone

from flexisync.shared.utils.datetime_utils import ensure_utc, isoformat_z


def test_isoformat_z_drops_microseconds():
    dt = datetime(2024, 5, 6, 7, 8, 9, 999999, tzinfo=timezone.utc)
    assert isoformat_z(dt) == "2024-05-06T07:08:09Z"


def test_isoformat_z_converts_offsets_to_utc():
    dt = datetime(2024, 5, 6, 9, 0, tzinfo=timezone(timedelta(hours=2)))
    assert isoformat_z(dt) == "2024-05-06T07:00:00Z"


def test_ensure_utc_assumes_naive_is_utc():
    assert ensure_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc
