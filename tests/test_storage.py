import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from lift_feed.models import LIFTS, WEBCAMS, LiftSnapshot, Source, WebcamRecord, WebcamSnapshot
from lift_feed.storage import SnapshotStore


def test_store_persists_and_reads_snapshots(tmp_path: Path, lift_snapshot_factory):
    store = SnapshotStore(tmp_path)
    snapshot = lift_snapshot_factory()

    store.write(LIFTS, snapshot)

    assert store.read(LIFTS) == snapshot
    on_disk = json.loads((tmp_path / "lifts.json").read_text())
    assert on_disk["liftCount"] == 2
    assert on_disk["source"] == "live-vendor-api"
    assert on_disk["lifts"][0]["liftName"] == "Peak Express"


def test_write_replaces_previous_snapshot_without_leftovers(tmp_path: Path, lift_snapshot_factory):
    store = SnapshotStore(tmp_path)
    store.write(LIFTS, lift_snapshot_factory(("Peak Express",)))
    store.write(LIFTS, lift_snapshot_factory(("Harmony Express", "Symphony Express")))

    assert [record.name for record in store.read(LIFTS).records] == ["Harmony Express", "Symphony Express"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["lifts.json"]


def test_missing_or_corrupt_file_reads_as_absent(tmp_path: Path):
    store = SnapshotStore(tmp_path)
    assert store.read(LIFTS) is None
    assert store.age_of(LIFTS) is None

    (tmp_path / "lifts.json").write_text("{not json")
    assert store.read(LIFTS) is None

    (tmp_path / "lifts.json").write_text(json.dumps({"source": "live-scrape", "lifts": []}))
    assert store.read(LIFTS) is None


def test_age_of_reads_last_updated(tmp_path: Path, lift_snapshot_factory):
    store = SnapshotStore(tmp_path)
    fetched_at = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)
    store.write(LIFTS, lift_snapshot_factory(timestamp=fetched_at))

    assert store.age_of(LIFTS, now=fetched_at + timedelta(minutes=12)) == timedelta(minutes=12)
    first = store.age_of(LIFTS)
    second = store.age_of(LIFTS)
    assert second >= first


def test_no_data_snapshot_round_trips_with_error(tmp_path: Path):
    store = SnapshotStore(tmp_path)
    store.write(LIFTS, LiftSnapshot.no_data("All upstream sources failed"))

    snapshot = store.read(LIFTS)
    assert snapshot.is_empty
    assert snapshot.lift_count == 0
    assert snapshot.error == "All upstream sources failed"


def test_webcams_are_stored_separately(tmp_path: Path):
    store = SnapshotStore(tmp_path)
    timestamp = datetime(2024, 2, 1, tzinfo=timezone.utc)
    webcam = WebcamRecord(
        name="Roundhouse Lodge",
        location="Mid-Mountain",
        url="https://example.com/roundhouse.jpg",
        is_live=False,
        last_updated=timestamp,
        elevation=1860,
    )
    store.write(WEBCAMS, WebcamSnapshot(last_updated=timestamp, source="live-scrape", records=[webcam]))

    assert store.read(WEBCAMS).records == (webcam,)
    assert store.read(LIFTS) is None
    assert json.loads((tmp_path / "webcams.json").read_text())["webcamCount"] == 1


def test_write_rejects_wrong_snapshot_type(tmp_path: Path, lift_snapshot_factory):
    store = SnapshotStore(tmp_path)
    with pytest.raises(TypeError):
        store.write(WEBCAMS, lift_snapshot_factory())
    with pytest.raises(KeyError):
        store.read("trails")


def test_no_data_snapshot_cannot_carry_records(lift_snapshot_factory):
    records = lift_snapshot_factory().records
    with pytest.raises(ValueError):
        LiftSnapshot(last_updated=datetime.now(timezone.utc), source="no-data", records=records)


def test_hand_edited_counts_are_coerced_on_read(tmp_path: Path):
    store = SnapshotStore(tmp_path)
    store.path_for(LIFTS).write_text(
        json.dumps(
            {
                "lastUpdated": "2024-02-01T09:30:00+00:00",
                "source": "live-vendor-api",
                "liftCount": 3,
                "lifts": [
                    {"liftName": "Peak Express", "status": "Open", "waitTimeMinutes": "soon",
                     "capacity": -5, "lastUpdated": "2024-02-01T09:30:00+00:00"},
                    {"liftName": "Big Red Express", "status": "Open", "waitTimeMinutes": True,
                     "capacity": 12.5, "lastUpdated": "2024-02-01T09:30:00+00:00"},
                    {"liftName": "Franz Chair", "status": "Open", "waitTimeMinutes": 4,
                     "capacity": 1200, "lastUpdated": "2024-02-01T09:30:00+00:00"},
                ],
            }
        )
    )

    peak, big_red, franz = store.read(LIFTS).records

    assert (peak.wait_time_minutes, peak.capacity) == (None, 0)
    assert (big_red.wait_time_minutes, big_red.capacity) == (None, 0)
    assert (franz.wait_time_minutes, franz.capacity) == (4, 1200)


def test_source_tags_are_the_ones_snapshots_carry():
    assert {tag.value for tag in Source} == {
        "live-vendor-api",
        "live-scrape",
        "live-scrape-fallback",
        "no-data",
    }
