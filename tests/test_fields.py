"""通用字段遍历的测试."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import pytest

from march import Field, Remainder, Struct, field_tags
from march.exceptions import UnsupportedShapeError
from march.fields import (
    Kind,
    Ref,
    Values,
    kind_of,
    kind_of_value,
    nth_field,
    num_field,
    record_fields,
    sort_keys,
    zero_value,
)
from march.types import Int32, RawMessage


@dataclass
class Point:
    x: int = field(default=0, metadata=field_tags(march="x"))
    y: int = field(default=0, metadata=field_tags(march="y,flag", json="why"))
    _hidden: int = field(default=0, metadata=field_tags(march="hidden"))


class Model(Struct):
    name: str = Field("", tags={"march": "name"})
    size: Int32 = Field(0, tags={"march": "size"})
    locked: int = Field(0, frozen=True, tags={"march": "locked"})


class Required(Struct):
    count: int = Field(tags={"march": "count"})
    inner: Point = Field(tags={"march": "inner"})


class Color(Enum):
    RED = "red"


@pytest.mark.parametrize(
    ("annotation", "kind"),
    [
        (int, Kind.LEAF),
        (str, Kind.LEAF),
        (bytes, Kind.LEAF),
        (Int32, Kind.LEAF),
        (int | str, Kind.LEAF),
        (Color, Kind.LEAF),
        (RawMessage, Kind.LEAF),
        (Remainder, Kind.LEAF),
        (int | None, Kind.OPTIONAL),
        (Optional[Point], Kind.OPTIONAL),  # noqa: UP007
        (list[int], Kind.SEQUENCE),
        (set[str], Kind.SEQUENCE),
        (tuple[int, ...], Kind.SEQUENCE),
        (tuple[int, str], Kind.ARRAY),
        (dict[str, int], Kind.MAPPING),
        (Mapping[str, int], Kind.MAPPING),
        (Point, Kind.RECORD),
        (Model, Kind.RECORD),
        (Any, Kind.ANY),
    ],
)
def test_kind_of(annotation: Any, kind: Kind) -> None:
    assert kind_of(annotation) is kind


@pytest.mark.parametrize(
    ("value", "kind"),
    [
        ([1], Kind.SEQUENCE),
        ((1, 2), Kind.SEQUENCE),
        ({"a": 1}, Kind.MAPPING),
        (Point(), Kind.RECORD),
        ("s", Kind.LEAF),
        (b"s", Kind.LEAF),
        (5, Kind.LEAF),
        (None, Kind.LEAF),
    ],
)
def test_kind_of_value(value: Any, kind: Kind) -> None:
    assert kind_of_value(value) is kind


def test_nth_field_on_record() -> None:
    point = Point(1, 2)
    assert num_field(point) == 3

    first = nth_field(point, 0, "march")
    assert first is not None
    assert first.value == 1
    assert first.owner is point
    assert first.descriptor.tag_name == "x"
    assert first.descriptor.attr == "x"

    second = nth_field(point, 1, "march")
    assert second is not None
    assert second.descriptor.flags_contain("flag")

    hidden = nth_field(point, 2, "march")
    assert hidden is not None
    assert hidden.descriptor.exported is False
    assert hidden.descriptor.settable is False


def test_nth_field_out_of_range_is_none() -> None:
    assert nth_field(Point(), 3, "march") is None
    assert nth_field(Point(), -1, "march") is None
    assert nth_field(5, 0, "march") is None


def test_nth_field_uses_requested_tag_key() -> None:
    x = nth_field(Point(), 0, "json")
    y = nth_field(Point(), 1, "json")
    assert x is not None and y is not None
    assert x.descriptor.ok is False
    assert x.descriptor.tag_name == ""
    assert y.descriptor.tag_name == "why"


def test_nth_field_on_sequence() -> None:
    walked = nth_field(["a", "b"], 1, "march")
    assert walked is not None
    assert walked.value == "b"
    assert walked.descriptor.tag_name == "1"
    assert walked.descriptor.index == 1


def test_mapping_fields_are_byte_ordered() -> None:
    data = {"b": 1, "a": 2, "ab": 3, "B": 4}
    names = []
    for i in range(num_field(data)):
        walked = nth_field(data, i, "march")
        assert walked is not None
        names.append(walked.descriptor.tag_name)
    assert names == ["B", "a", "ab", "b"]


def test_sort_keys_mixes_str_and_bytes() -> None:
    assert sort_keys([b"b", "a", "ba"]) == ["a", b"b", "ba"]


def test_unsupported_map_key_raises() -> None:
    with pytest.raises(UnsupportedShapeError):
        num_field({(1, 2): "x"})
    with pytest.raises(UnsupportedShapeError):
        num_field({True: "x"})


def test_int_and_str_enum_keys_use_their_values() -> None:
    class Letter(str, Enum):
        A = "a"

    data = {10: "x", 2: "y", Letter.A: "z"}
    names = [nth_field(data, i, "march").descriptor.tag_name for i in range(num_field(data))]
    assert names == ["10", "2", "a"]


def test_values_growth_is_visible() -> None:
    values = Values([{"a": 1}], "march")
    assert values.total_fields() == 1

    extra = {"b": 2, "c": 3}
    values.append(extra)
    assert len(values) == 2
    assert values.total_fields() == 3

    walked = values.field_at(2)
    assert walked is not None
    assert walked.descriptor.tag_name == "c"
    assert values.value_at(2) is extra
    assert values.field_at(3) is None
    assert values.value_at(3) is None


def test_values_iteration_visits_appended_roots() -> None:
    values = Values([{"a": {"x": 1}, "b": 2}], "march")
    seen = []
    for walked in values:
        seen.append(walked.descriptor.tag_name)
        if isinstance(walked.value, dict):
            values.append(walked.value)
    assert seen == ["a", "b", "x"]


def test_record_fields_of_struct() -> None:
    fields = record_fields(Model)
    assert [rf.attr for rf in fields] == ["name", "size", "locked"]
    assert [rf.tags for rf in fields] == [
        {"march": "name"},
        {"march": "size"},
        {"march": "locked"},
    ]
    assert fields[2].settable is False
    assert fields[0].settable is True


def test_record_fields_of_plain_class_is_empty() -> None:
    assert record_fields(int) == ()


@pytest.mark.parametrize(
    ("annotation", "expected"),
    [
        (int, 0),
        (str, ""),
        (bool, False),
        (int | None, None),
        (Any, None),
        (list[int], []),
        (tuple[int, ...], ()),
        (tuple[int, str], (0, "")),
        (dict[str, int], {}),
        (Mapping[str, int], {}),
        (Point, Point()),
        (Color, None),
        (Remainder, None),
    ],
)
def test_zero_value(annotation: Any, expected: Any) -> None:
    assert zero_value(annotation) == expected


def test_zero_value_of_struct_fills_required_fields() -> None:
    value = zero_value(Required)
    assert isinstance(value, Required)
    assert value.count == 0
    assert value.inner == Point()


def test_ref_tracks_assignment() -> None:
    ref = Ref(int)
    assert ref.value == 0
    assert ref.found is False
    ref.set(5)
    assert ref.value == 5
    assert ref.found is True

    assert Ref(str, "preset").value == "preset"
