# tests/test_models.py
import pytest

from wayfinder.errors import MalformedSnapshotError, PreconditionError
from wayfinder.models import House, Location, NetworkSnapshot, Road, make_id, natural_sort_key

from helpers import loc


def test_make_id_bumps_past_taken_ids():
    assert make_id([], now=1.0) == "1000"
    assert make_id(["1000", "1001"], now=1.0) == "1002"


def test_natural_sort_orders_numbers_numerically():
    labels = ["10", "2", "A3", "1", "A12", "b"]
    assert sorted(labels, key=natural_sort_key) == ["1", "2", "10", "A3", "A12", "b"]


def test_location_to_dict_omits_missing_fields():
    assert Location(1.5, 2.5).to_dict() == {"lat": 1.5, "lng": 2.5}
    assert Location(1.5, 2.5, accuracy=4.0).to_dict() == {"lat": 1.5, "lng": 2.5, "accuracy": 4.0}


def test_snapshot_survives_dict_round_trip():
    snapshot = NetworkSnapshot(
        reception=loc(-33.123456789, 151.987654321),
        houses=(House(id="1", number="12B", location=loc(-33.1, 151.9)),),
        roads=(Road(id="2", points=(loc(-33.12, 151.98), loc(-33.1, 151.9))),),
        version=7,
    )
    assert NetworkSnapshot.from_dict(snapshot.to_dict()) == snapshot


def test_from_dict_rejects_malformed_data():
    with pytest.raises(MalformedSnapshotError):
        NetworkSnapshot.from_dict({"houses": [{"id": "1"}]})
    with pytest.raises(MalformedSnapshotError):
        NetworkSnapshot.from_dict({"roads": [{"id": "1", "points": [{"lat": "north", "lng": 0}]}]})


def test_validate_rejects_short_roads_and_duplicate_ids():
    short = NetworkSnapshot(roads=(Road(id="r", points=(loc(0, 0),)),))
    with pytest.raises(PreconditionError):
        short.validate(min_road_points=2)

    house = House(id="h", number="1", location=loc(0, 0))
    duplicated = NetworkSnapshot(houses=(house, house))
    with pytest.raises(PreconditionError):
        duplicated.validate()


def test_find_and_sort_houses():
    snapshot = NetworkSnapshot(houses=(
        House(id="1", number="10", location=loc(0, 0)),
        House(id="2", number=" 2 ", location=loc(0, 1)),
        House(id="3", number="2", location=loc(0, 2)),
    ))
    assert [h.id for h in snapshot.find_houses("2")] == ["2", "3"]
    assert [h.number.strip() for h in snapshot.sorted_houses()] == ["2", "2", "10"]
    assert snapshot.get_house("1").number == "10"
    assert snapshot.get_house("missing") is None


def test_empty_snapshot():
    snapshot = NetworkSnapshot.empty(version=3)
    assert snapshot.is_empty
    assert not snapshot.is_navigable
    assert snapshot.version == 3
