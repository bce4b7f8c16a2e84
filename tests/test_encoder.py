"""编码器测试."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pytest

from march import Config, Encoder, Option, Ref, dumps, field_tags
from march.exceptions import (
    DepthLimitError,
    EncodeError,
    MalformedConfigurationError,
    OverrideContractError,
    UnsupportedShapeError,
)
from march.jsonfields import write_fields
from march.overrides import fields_writer, marshaller
from march.types import RawMessage


@dataclass
class Inner:
    h2: int = field(default=0, metadata=field_tags(march="H2"))


@dataclass
class Flags:
    value: int = field(default=0, metadata=field_tags(march="V"))
    hoisted: Inner = field(default_factory=Inner, metadata=field_tags(march="H,hoist"))
    remains: dict[str, RawMessage] = field(
        default_factory=dict, metadata=field_tags(march="R,remains")
    )


@dataclass
class Middle:
    m: str = field(default="m", metadata=field_tags(march="M"))
    inner: Inner = field(default_factory=Inner, metadata=field_tags(march="I,hoist"))


@dataclass
class Outer:
    top: int = field(default=1, metadata=field_tags(march="top"))
    middle: Middle = field(default_factory=Middle, metadata=field_tags(march="mid,hoist"))


@dataclass
class Partial:
    a: int = field(default=1, metadata=field_tags(march="a"))
    b: int = 2
    c: int = field(default=3, metadata=field_tags(march=""))
    _d: int = field(default=4, metadata=field_tags(march="d"))
    e: int = field(default=5, metadata=field_tags(json="e"))


@dataclass
class Duplicate:
    first: int = field(default=1, metadata=field_tags(march="x"))
    second: int = field(default=2, metadata=field_tags(march="x"))


@dataclass
class Broken:
    ok: int = field(default=1, metadata=field_tags(march="ok"))
    bad: Any = field(default_factory=object, metadata=field_tags(march="bad"))


@dataclass
class Chain:
    child: "Chain | None" = field(default=None, metadata=field_tags(march="child"))


class Celsius:
    def __init__(self, degrees: float = 0.0):
        self.degrees = degrees

    @marshaller()
    def encode(self) -> bytes:
        return f'"{self.degrees}C"'.encode()


@dataclass
class Weather:
    city: str = field(default="", metadata=field_tags(march="city"))
    temp: Celsius = field(default_factory=Celsius, metadata=field_tags(march="temp"))
    backup: Celsius | None = field(default=None, metadata=field_tags(march="backup"))


@dataclass
class Upper:
    a: int = field(default=1, metadata=field_tags(march="a"))

    @fields_writer()
    def write(self, fields: dict[str, bytes]) -> bytes:
        return write_fields({name.upper(): raw for name, raw in fields.items()})


class Color(str, Enum):
    RED = "red"


def _chain(depth: int) -> Chain:
    node = Chain()
    for _ in range(depth):
        node = Chain(node)
    return node


def test_hoist_flattens_nested_fields() -> None:
    value = Flags(value=97, hoisted=Inner(10), remains={"test": RawMessage(b'"test"')})
    assert dumps(value) == b'{"V":97,"R":{"test":"test"},"H2":10}'


def test_hoist_composes() -> None:
    data = dumps(Outer(middle=Middle(inner=Inner(7))))
    assert json.loads(data) == {"top": 1, "M": "m", "H2": 7}


def test_hoisted_none_is_skipped() -> None:
    @dataclass
    class MaybeHoisted:
        a: int = field(default=1, metadata=field_tags(march="a"))
        inner: Inner | None = field(default=None, metadata=field_tags(march="i,hoist"))

    assert dumps(MaybeHoisted()) == b'{"a":1}'


def test_hoisted_mapping_entries_are_spliced() -> None:
    @dataclass
    class Extras:
        v: int = field(default=1, metadata=field_tags(march="v"))
        extra: dict[str, Any] = field(
            default_factory=dict, metadata=field_tags(march="_,hoist,remains")
        )

    assert dumps(Extras(extra={"z": [1], "a": "x"})) == b'{"v":1,"a":"x","z":[1]}'


def test_invisible_fields_are_skipped() -> None:
    assert dumps(Partial()) == b'{"a":1}'


def test_tag_key_selects_directives() -> None:
    assert dumps(Partial(), tag="json") == b'{"e":5}'


def test_first_field_claiming_a_name_wins() -> None:
    assert dumps(Duplicate()) == b'{"x":1}'


def test_mapping_keys_are_sorted() -> None:
    assert dumps({"b": 1, "a": 2, "ab": [1, 2]}) == b'{"a":2,"ab":[1,2],"b":1}'


def test_unsupported_keys_are_rejected() -> None:
    with pytest.raises(UnsupportedShapeError):
        dumps({1.5: "x"})
    with pytest.raises(UnsupportedShapeError):
        dumps({"a": 1, (1, 2): "x"}, option=Option.NONE)


def test_int_keys_are_written_as_strings() -> None:
    assert dumps({10: "a", 2: "b"}) == b'{"10":"a","2":"b"}'


def test_empty_string_keys_are_kept() -> None:
    assert dumps({"": 1, "a": 2}) == b'{"":1,"a":2}'

    @dataclass
    class Extras:
        v: int = field(default=1, metadata=field_tags(march="v"))
        extra: dict[str, Any] = field(
            default_factory=dict, metadata=field_tags(march="_,hoist,remains")
        )

    assert dumps(Extras(extra={"": 2})) == b'{"v":1,"":2}'


def test_empty_tag_name_still_skips_record_fields() -> None:
    assert b'"":' not in dumps(Partial())


def test_leaf_values() -> None:
    assert dumps(None) == b"null"
    assert dumps("é") == '"é"'.encode()
    assert dumps([1, 2.5, True, None]) == b"[1,2.5,true,null]"
    assert dumps(datetime(2020, 1, 2, 3, 4, 5)) == b'"2020-01-02T03:04:05"'
    assert dumps(Color.RED) == b'"red"'
    assert dumps(RawMessage(b' {"raw" : 1} ')) == b' {"raw" : 1} '


def test_ref_encodes_its_value() -> None:
    assert dumps(Ref(int, 5)) == b"5"


def test_relaxed_mode_skips_failing_fields() -> None:
    assert dumps(Broken()) == b'{"ok":1}'


def test_strict_mode_aborts() -> None:
    with pytest.raises(EncodeError) as exc_info:
        dumps(Broken(), option=Option.STRICT)
    assert exc_info.value.loc == ["bad"]
    assert str(exc_info.value).startswith("bad: ")


def test_verbose_mode_logs_skipped_fields(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="march"):
        assert dumps(Broken(), option=Option.VERBOSE) == b'{"ok":1}'
    assert "bad" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="march"):
        dumps(Broken())
    assert caplog.text == ""


def test_sequence_errors_carry_the_index() -> None:
    with pytest.raises(EncodeError) as exc_info:
        dumps([1, object()])
    assert exc_info.value.loc == ["1"]


def test_custom_marshaller_takes_precedence() -> None:
    data = dumps(Weather(city="Oslo", temp=Celsius(21.5), backup=Celsius(3.0)))
    assert data == b'{"city":"Oslo","temp":"21.5C","backup":"3.0C"}'
    assert dumps(Weather()) == b'{"city":"","temp":"0.0C","backup":null}'


def test_custom_marshaller_suffix() -> None:
    # 后缀不匹配时自定义方法不生效, Celsius 会被当作无法编码的叶子跳过
    assert dumps(Weather(city="x"), suffix="other") == b'{"city":"x","backup":null}'


def test_default_marshaller_replaces_default_behavior() -> None:
    assert dumps({"a": 1}, default=lambda value: b"0") == b"0"
    assert dumps(Celsius(1.0), default=lambda value: b"0") == b'"1.0C"'


def test_default_marshaller_must_return_bytes() -> None:
    with pytest.raises(OverrideContractError):
        dumps(1, default=lambda value: "0")


def test_fields_writer_override() -> None:
    assert dumps(Upper()) == b'{"A":1}'


def test_input_is_not_mutated() -> None:
    value = Flags(value=1, hoisted=Inner(2), remains={"r": RawMessage(b"3")})
    before = repr(value)
    dumps(value)
    assert repr(value) == before


def test_depth_limit() -> None:
    config = Config(max_depth=10)
    assert json.loads(dumps(_chain(5), config=config))
    with pytest.raises(DepthLimitError):
        dumps(_chain(20), config=config)


def test_empty_tag_key_is_malformed() -> None:
    with pytest.raises(MalformedConfigurationError):
        dumps(1, tag="")


def test_encoder_can_be_reused() -> None:
    encoder = Encoder(Config(flags=Option.STRICT))
    assert encoder.encode(Inner(1)) == b'{"H2":1}'
    assert encoder.encode(Inner(2)) == b'{"H2":2}'
