import pytest

from datacache.observability import CacheEventRecord


def test_event_record_schema_roundtrip():
    record = CacheEventRecord(event="write", key="listings_page_0", at=1000.0, ttl_sec=300)

    payload = record.to_dict()

    assert payload["event"] == "write"
    assert payload["ttl_sec"] == 300
    assert payload["error"] is None


def test_unknown_event_rejected():
    record = CacheEventRecord(event="teleport", key="k", at=1.0)

    with pytest.raises(ValueError, match="cache event validation failed"):
        record.to_dict()


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        CacheEventRecord(event="clear", key="*", at=1.0, count=-1).to_dict()
