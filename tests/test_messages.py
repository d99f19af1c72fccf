from datetime import datetime, timedelta, timezone

import pytest

from vulnscan import types
from vulnscan.rpc import messages as pb


def test_epoch_is_zero():
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert pb.Timestamp.from_datetime(epoch) == pb.Timestamp(0, 0)


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (1577840460, datetime(2020, 1, 1, 1, 1, tzinfo=timezone.utc)),
        (978310860, datetime(2001, 1, 1, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_to_datetime_known_values(seconds, expected):
    assert pb.Timestamp(seconds=seconds).to_datetime() == expected


@pytest.mark.parametrize(
    "value",
    [
        datetime(2020, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc),
        datetime(1960, 6, 30, 12, 0, 0, 999999, tzinfo=timezone.utc),
        datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
    ],
)
def test_round_trip(value):
    assert pb.Timestamp.from_datetime(value).to_datetime() == value


def test_pre_epoch_nanos_are_non_negative():
    ts = pb.Timestamp.from_datetime(datetime(1969, 12, 31, 23, 59, 59, 500000, tzinfo=timezone.utc))
    assert 0 <= ts.nanos < 1_000_000_000
    assert ts.seconds < 0


def test_naive_is_taken_as_utc():
    naive = datetime(2009, 11, 10, 23, 0, 0)
    aware = naive.replace(tzinfo=timezone.utc)
    assert pb.Timestamp.from_datetime(naive) == pb.Timestamp.from_datetime(aware)


def test_other_timezone_is_same_instant():
    utc = datetime(2009, 11, 10, 23, 0, 0, tzinfo=timezone.utc)
    shifted = utc.astimezone(timezone(timedelta(hours=9)))
    assert pb.Timestamp.from_datetime(shifted) == pb.Timestamp.from_datetime(utc)


@pytest.mark.parametrize("nanos", [-1, 1_000_000_000])
def test_invalid_nanos(nanos):
    with pytest.raises(ValueError):
        pb.Timestamp(seconds=0, nanos=nanos).to_datetime()


@pytest.mark.parametrize("seconds", [-62135596801, 253402300800])
def test_out_of_range_seconds(seconds):
    with pytest.raises(ValueError):
        pb.Timestamp(seconds=seconds).to_datetime()


@pytest.mark.parametrize("sev", list(types.Severity))
def test_severity_matches_core_severity(sev):
    assert pb.Severity(int(sev)).name == sev.name


def test_severity_str_is_name():
    assert str(pb.Severity(int(types.Severity.MEDIUM))) == "MEDIUM"


def test_defaults_are_not_shared():
    first = pb.Vulnerability()
    second = pb.Vulnerability()
    first.references.append("http://example.com")
    first.cvss["nvd"] = pb.CVSS()
    assert second.references == []
    assert second.cvss == {}