"""
Tests for the value materializer.
"""

import base64
import datetime

import pytest
from bson import ObjectId
from bson.binary import Binary, OLD_UUID_SUBTYPE, UUID_SUBTYPE
from bson.code import Code
from bson.datetime_ms import DatetimeMS
from bson.dbref import DBRef
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.regex import Regex
from bson.timestamp import Timestamp

from docbridge.codec.materializer import (
    MaterializeMode,
    Materializer,
    find_sentinels,
    materialize,
    materialize_query,
    materialize_text,
    parse_date_argument,
    parse_timestamp_argument,
)
from docbridge.codec.normalizer import parse_loose
from docbridge.codec.values import OVERFLOW_DATE_MILLIS
from docbridge.exceptions import ValueFormatError

OID = "507f191e810c19729de860ea"
UUID_HEX = "0123456789abcdef0123456789abcdef"
UUID_DASHED = "01234567-89ab-cdef-0123-456789abcdef"


class TestEditMode:
    """Sentinel resolution for text typed by a user."""

    def test_object_id_scenario(self):
        """Normalized shell text materializes into an ObjectId."""
        document = materialize(parse_loose(
            "{name: 'Ann', id: ObjectId(\"507f191e810c19729de860ea\")}"
        ))

        assert document == {"name": "Ann", "id": ObjectId(OID)}
        assert document["id"].binary == bytes.fromhex(OID)

    def test_uuid_and_luuid(self):
        document = materialize({
            "u": f"##UUID({UUID_DASHED})",
            "l": f"##LUUID({UUID_HEX})",
        })

        assert document["u"] == Binary(bytes.fromhex(UUID_HEX), UUID_SUBTYPE)
        assert document["l"] == Binary(bytes.fromhex(UUID_HEX), OLD_UUID_SUBTYPE)

    def test_timestamp(self):
        assert materialize({"ts": "##Timestamp(1, 2)"}) == {"ts": Timestamp(1, 2)}

    def test_timestamp_out_of_range(self):
        """A negative high half is outside the timestamp range."""
        with pytest.raises(ValueFormatError) as exc_info:
            materialize({"ts": "##Timestamp(-1,100000000000000)"})

        error = exc_info.value
        assert error.key == "ts"
        assert error.value == "-1,100000000000000"
        assert "ts" in error.message

    def test_timestamp_not_numeric(self):
        with pytest.raises(ValueFormatError):
            materialize({"ts": "##Timestamp(a, b)"})

    def test_regex_sentinel(self):
        document = materialize({"r": r"##/a\/b/i"})
        assert document["r"] == Regex(r"a\/b", "i")

    def test_regex_with_unknown_flag(self):
        with pytest.raises(ValueFormatError):
            materialize({"r": "##/abc/q"})

    def test_invalid_object_id_reports_key_and_value(self):
        with pytest.raises(ValueFormatError) as exc_info:
            materialize({"_id": "##ObjectId(xyz)"})

        assert exc_info.value.key == "_id"
        assert exc_info.value.value == "xyz"
        assert exc_info.value.expected == "ObjectId"

    def test_first_error_reported_and_siblings_walked(self):
        materializer = Materializer()
        with pytest.raises(ValueFormatError) as exc_info:
            materializer.materialize({
                "a": "##ObjectId(bad)",
                "ok": "##Timestamp(1, 1)",
                "b": "##UUID(bad)",
            })

        assert exc_info.value.key == "a"
        assert [error.key for error in materializer.errors] == ["a", "b"]

    def test_error_path_is_dotted(self):
        with pytest.raises(ValueFormatError) as exc_info:
            materialize({"outer": {"list": [1, "##ObjectId(bad)"]}})

        assert exc_info.value.path == "outer.list.1"

    def test_structural_objects(self):
        document = materialize({
            "code": {"$code": "f()", "$scope": {"x": 1}},
            "plain": {"$code": "g()"},
            "low": {"$minKey": 1},
            "high": {"$maxKey": 1},
            "ref": {"$ref": "users", "$id": f"##ObjectId({OID})", "$db": "shop"},
        })

        assert document["code"] == Code("f()", {"x": 1})
        assert document["plain"] == Code("g()")
        assert document["low"] == MinKey()
        assert document["high"] == MaxKey()
        assert document["ref"] == DBRef("users", ObjectId(OID), "shop")

    def test_export_wire_objects_untouched(self):
        """$oid belongs to export files, a user typing it keeps an object."""
        document = materialize({"a": {"$oid": OID}, "q": {"$gt": 5}})
        assert document == {"a": {"$oid": OID}, "q": {"$gt": 5}}

    def test_type_tag_disambiguation(self):
        tree = {"_id": OID, "other": OID, "u": UUID_DASHED}
        metadata = {"_id": "ObjectID", "other": "string", "u": "UUID"}

        document = materialize(tree, metadata)

        assert document["_id"] == ObjectId(OID)
        assert document["other"] == OID
        assert document["u"] == Binary(bytes.fromhex(UUID_HEX), UUID_SUBTYPE)

    def test_type_tags_follow_arrays(self):
        document = materialize({"ids": [OID, "x"]}, {"ids": ["ObjectID", "string"]})
        assert document == {"ids": [ObjectId(OID), "x"]}

    def test_input_tree_not_mutated(self):
        tree = {"a": [f"##ObjectId({OID})"]}
        materialize(tree)
        assert tree == {"a": [f"##ObjectId({OID})"]}

    def test_unknown_sentinel_name_is_kept(self):
        assert materialize({"a": "##Other(1)"}) == {"a": "##Other(1)"}

    def test_materialize_text(self):
        document = materialize_text("{when: ISODate('2014-01-01T00:00:00Z')}")
        assert document == {"when": datetime.datetime(2014, 1, 1)}

    @pytest.mark.parametrize(
        "text, key, expected",
        [
            ("{a: {$code: 1}}", "a", "Code"),
            ("{a: {$ref: 5, $id: 1}}", "a", "DBRef"),
            ("{a: {$ref: 'users', $id: 1, $db: 7}}", "a", "DBRef"),
            ("{d: ISODate(99999999999999999999)}", "d", "date"),
            ("{d: ISODate(99999999999999999999, 1, 1)}", "d", "date"),
        ],
    )
    def test_malformed_values_raise_format_errors(self, text, key, expected):
        with pytest.raises(ValueFormatError) as exc_info:
            materialize_text(text)

        assert exc_info.value.key == key
        assert exc_info.value.expected == expected


class TestFileImportMode:
    """Tagged-wire objects written by the export serializer."""

    def _import(self, tree):
        return materialize(tree, None, MaterializeMode.FILE_IMPORT)

    def test_object_id(self):
        assert self._import({"_id": {"$oid": OID}}) == {"_id": ObjectId(OID)}

    def test_invalid_object_id(self):
        with pytest.raises(ValueFormatError):
            self._import({"_id": {"$oid": "nope"}})

    def test_date_millis(self):
        assert self._import({"d": {"$date": 1388534400000}}) == {
            "d": datetime.datetime(2014, 1, 1)
        }

    def test_negative_date_millis(self):
        assert self._import({"d": {"$date": -86400000}}) == {
            "d": datetime.datetime(1969, 12, 31)
        }

    def test_overflow_date_is_invalid_date(self):
        document = self._import({"d": {"$date": OVERFLOW_DATE_MILLIS}})
        assert document["d"] == DatetimeMS(OVERFLOW_DATE_MILLIS)

    def test_out_of_calendar_date_kept_as_millis(self):
        millis = 300_000_000_000_000
        assert self._import({"d": {"$date": millis}})["d"] == DatetimeMS(millis)

    def test_date_extended_json_v2(self):
        document = self._import({
            "a": {"$date": {"$numberLong": "1388534400000"}},
            "b": {"$date": "2014-01-01T00:00:00.000Z"},
        })
        assert document == {
            "a": datetime.datetime(2014, 1, 1),
            "b": datetime.datetime(2014, 1, 1),
        }

    def test_unparseable_date(self):
        with pytest.raises(ValueFormatError):
            self._import({"d": {"$date": "not a date"}})

    @pytest.mark.parametrize("millis", [2**63, -(2**63) - 1, 10**20])
    def test_date_millis_beyond_64_bits(self, millis):
        with pytest.raises(ValueFormatError) as exc_info:
            self._import({"d": {"$date": millis}})
        assert exc_info.value.value == millis
        assert exc_info.value.expected == "date"

    def test_binary_uuid(self):
        payload = base64.b64encode(bytes.fromhex(UUID_HEX)).decode()
        document = self._import({
            "u": {"$binary": payload, "$type": "04"},
            "l": {"$binary": {"base64": payload, "subType": "03"}},
        })
        assert document["u"] == Binary(bytes.fromhex(UUID_HEX), UUID_SUBTYPE)
        assert document["l"] == Binary(bytes.fromhex(UUID_HEX), OLD_UUID_SUBTYPE)

    def test_binary_uuid_with_wrong_length(self):
        payload = base64.b64encode(b"short").decode()
        with pytest.raises(ValueFormatError):
            self._import({"u": {"$binary": payload, "$type": "04"}})

    def test_regex(self):
        document = self._import({
            "a": {"$regex": "a/b", "$options": "im"},
            "b": {"$regularExpression": {"pattern": "^x", "options": ""}},
        })
        assert document == {"a": Regex("a/b", "im"), "b": Regex("^x", "")}

    def test_timestamp(self):
        assert self._import({"ts": {"$timestamp": {"t": 5, "i": 6}}}) == {
            "ts": Timestamp(5, 6)
        }

    def test_timestamp_out_of_range(self):
        with pytest.raises(ValueFormatError):
            self._import({"ts": {"$timestamp": {"t": 2**32, "i": 0}}})

    def test_structural_objects_still_resolved(self):
        document = self._import({
            "ref": {"$ref": "users", "$id": {"$oid": OID}},
            "low": {"$minKey": 1},
        })
        assert document == {"ref": DBRef("users", ObjectId(OID)), "low": MinKey()}

    def test_sentinels_resolved_in_file_mode(self):
        assert self._import({"_id": f"##ObjectId({OID})"}) == {"_id": ObjectId(OID)}


class TestValidateOnlyMode:
    """Sentinel markers stripped back to raw argument text."""

    def _validate(self, tree):
        return materialize(tree, None, MaterializeMode.VALIDATE_ONLY)

    def test_sentinels_become_raw_text(self):
        assert self._validate({
            "_id": f"##ObjectId({OID})",
            "d": "##ISODate(2014-01-01)",
            "ts": "##Timestamp( 1, 2 )",
            "r": "##/a+/i",
        }) == {"_id": OID, "d": "2014-01-01", "ts": "1, 2", "r": "/a+/i"}

    def test_no_format_check(self):
        assert self._validate({"_id": "##ObjectId(bad)"}) == {"_id": "bad"}

    def test_wire_objects_untouched(self):
        tree = {"low": {"$minKey": 1}, "code": {"$code": "f()"}}
        assert self._validate(tree) == tree


class TestDateArgument:
    """Accepted forms of the ISODate(...) argument."""

    def test_empty_means_now(self):
        now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        before = now - datetime.timedelta(seconds=1)
        value = parse_date_argument("  ")
        assert isinstance(value, datetime.datetime)
        assert value >= before
        assert value.microsecond % 1000 == 0

    def test_tuple_with_one_based_month(self):
        assert parse_date_argument("2014, 1, 2") == datetime.datetime(2014, 1, 2)
        assert parse_date_argument("2014,12,31,23,59,58,250") == datetime.datetime(
            2014, 12, 31, 23, 59, 58, 250000
        )

    def test_epoch_millis(self):
        assert parse_date_argument("1388534400000") == datetime.datetime(2014, 1, 1)
        assert parse_date_argument("0") == datetime.datetime(1970, 1, 1)

    def test_date_only(self):
        assert parse_date_argument("2014-01-01") == datetime.date(2014, 1, 1)

    def test_iso_with_zone(self):
        assert parse_date_argument("2014-01-01T10:00:00.000Z") == datetime.datetime(
            2014, 1, 1, 10
        )
        assert parse_date_argument("2014-01-01T10:00:00+02:00") == datetime.datetime(
            2014, 1, 1, 8
        )

    def test_calendar_strings(self):
        assert parse_date_argument("January 5, 2014") == datetime.datetime(2014, 1, 5)
        assert parse_date_argument("2014/01/05") == datetime.datetime(2014, 1, 5)

    def test_rfc_2822(self):
        assert parse_date_argument("Wed, 01 Jan 2014 10:00:00 +0000") == datetime.datetime(
            2014, 1, 1, 10
        )

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_date_argument("not a date")

    def test_invalid_date_reported_for_key(self):
        with pytest.raises(ValueFormatError) as exc_info:
            materialize({"when": "##ISODate(2014, 13, 40)"})
        assert exc_info.value.expected == "date"


class TestTimestampArgument:

    def test_whitespace_ignored(self):
        assert parse_timestamp_argument(" 7 ,\t8 ") == Timestamp(7, 8)

    def test_missing_comma(self):
        with pytest.raises(ValueError):
            parse_timestamp_argument("7")


class TestQueries:
    """Query coercion for find and export."""

    def test_hex_strings_become_object_ids(self):
        query = materialize_query(f"{{_id: '{OID}', tags: ['{OID}', 'x']}}")
        assert query == {"_id": ObjectId(OID), "tags": [ObjectId(OID), "x"]}

    def test_operators_preserved(self):
        query = materialize_query("{age: {$gt: 5}, name: /^A/}")
        assert query == {"age": {"$gt": 5}, "name": Regex("^A", "")}

    def test_empty_query(self):
        assert materialize_query(None) == {}
        assert materialize_query("") == {}

    def test_tree_query(self):
        assert materialize_query({"a": f"##ObjectId({OID})"}) == {"a": ObjectId(OID)}


class TestFindSentinels:

    def test_reports_paths_of_leftover_sentinels(self):
        tree = {"a": "##ObjectId(x)", "b": ["ok", "##/x/"], "c": "##Other(1)"}
        assert find_sentinels(tree) == ["a", "b.1"]

    def test_clean_tree(self):
        assert find_sentinels({"a": ObjectId(OID), "b": "text"}) == []
