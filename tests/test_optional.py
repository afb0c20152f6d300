from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel

from directus_api_py.main import encode_model
from directus_api_py.optional import Nullable, Operation, unwrap


class Event(BaseModel):
    name: str
    note: Nullable[str] = Nullable()
    starts: Nullable[datetime] = Nullable()


def test_states():
    assert Nullable().operation is Operation.UNSET
    assert Nullable(None).operation is Operation.NULL
    assert Nullable("x").operation is Operation.SET
    assert Nullable.unset() == Nullable()
    assert Nullable.null() == Nullable(None)


def test_presence_and_value():
    assert Nullable(0).is_present
    assert Nullable(0).value == 0
    assert not Nullable(None).is_present
    assert Nullable().get("fallback") == "fallback"


def test_validation_wraps_raw_values():
    event = Event.model_validate({"name": "launch", "note": "soon", "starts": None})
    assert event.note == Nullable("soon")
    assert event.starts.operation is Operation.NULL


def test_missing_key_keeps_default():
    event = Event.model_validate({"name": "launch"})
    assert event.note.operation is Operation.UNSET


def test_wrapper_instances_pass_validation():
    event = Event(name="launch", note=Nullable("x"))
    assert event.note.value == "x"


def test_inner_value_is_validated():
    event = Event.model_validate({"name": "launch", "starts": "2024-05-01T10:00:00Z"})
    assert event.starts.value == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


def test_encode_omits_unset_fields():
    event = Event(name="launch", note=Nullable(None))
    assert encode_model(event) == {"name": "launch", "note": None}


def test_encode_set_values():
    event = Event(name="launch", starts=Nullable(datetime(2024, 5, 1, 10, tzinfo=timezone.utc)))
    assert encode_model(event) == {"name": "launch", "starts": "2024-05-01T10:00:00Z"}


def test_unwrap():
    assert unwrap(Nullable(3)) == 3
    assert unwrap(Nullable(None)) is None
    assert unwrap("plain") == "plain"


class Line(BaseModel):
    sku: str
    note: Nullable[str] = Nullable()


class Order(BaseModel):
    lines: list[Line]
    by_sku: dict[str, Line] = {}
    gift: Nullable[Line] = Nullable()


def test_encode_omits_unset_fields_of_nested_models():
    order = Order(
        lines=[Line(sku="a"), Line(sku="b", note=Nullable("fragile"))],
        by_sku={"a": Line(sku="a", note=Nullable(None))},
    )
    assert encode_model(order) == {
        "lines": [{"sku": "a"}, {"sku": "b", "note": "fragile"}],
        "by_sku": {"a": {"sku": "a", "note": None}},
    }


def test_encode_omits_unset_fields_inside_set_wrapper():
    order = Order(lines=[], gift=Nullable(Line(sku="card")))
    assert encode_model(order) == {"lines": [], "by_sku": {}, "gift": {"sku": "card"}}


class Tagged(BaseModel):
    tags: Nullable[list[int]] = Nullable()


def test_wrapped_values_need_not_be_hashable():
    tagged = Tagged.model_validate({"tags": [1, 2]})
    assert tagged.tags == Nullable([1, 2])
    assert Nullable({"a": 1}) != Nullable({"a": 2})
    assert encode_model(tagged) == {"tags": [1, 2]}
