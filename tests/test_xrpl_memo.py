"""
Tests for the XRPL memo convention.

Test plan:
- Encoding: UTF-8 text → upper-case hex, memo entry shape
- build_memos: mapping order kept, None values skipped, size limit enforced
- parse_memos: hex decoded, missing MemoData → b"", missing MemoType skipped
- serialize_body: sorted keys, compact separators, NaN rejected
"""

import math

import pytest

from escrow_plugin.xrpl.memo import (
    ID_REL,
    ILP_REL,
    MAX_MEMO_BYTES,
    MESSAGE_KIND_REL,
    build_memo,
    build_memos,
    encode_text_hex,
    memo_text,
    parse_memos,
    serialize_body,
)


class TestEncoding:
    def test_hex_is_upper_case(self) -> None:
        assert encode_text_hex("abc") == "616263"
        assert encode_text_hex("é") == "C3A9"

    def test_memo_shape(self) -> None:
        assert build_memo("a", "b") == {"Memo": {"MemoType": "61", "MemoData": "62"}}

    def test_id_rel_type_hex(self) -> None:
        memo = build_memo(ID_REL, "t1")
        assert bytes.fromhex(memo["Memo"]["MemoType"]).decode() == ID_REL


class TestBuildMemos:
    def test_order_kept(self) -> None:
        memos = build_memos({ID_REL: "t1", ILP_REL: "payload"})
        types = [bytes.fromhex(m["Memo"]["MemoType"]).decode() for m in memos]
        assert types == [ID_REL, ILP_REL]

    def test_none_skipped(self) -> None:
        memos = build_memos({ID_REL: "t1", MESSAGE_KIND_REL: None})
        assert len(memos) == 1

    def test_empty_string_kept(self) -> None:
        memos = build_memos({ILP_REL: ""})
        assert memos == [{"Memo": {"MemoType": encode_text_hex(ILP_REL), "MemoData": ""}}]

    def test_size_limit(self) -> None:
        build_memo(ID_REL, "x" * MAX_MEMO_BYTES)
        with pytest.raises(ValueError, match="exceeds"):
            build_memo(ID_REL, "x" * (MAX_MEMO_BYTES + 1))


class TestParseMemos:
    def test_parses_built_memos(self) -> None:
        memos = parse_memos(build_memos({ID_REL: "t1", ILP_REL: "payload"}))
        assert memos == {ID_REL: b"t1", ILP_REL: b"payload"}

    def test_lower_case_hex(self) -> None:
        raw = [{"Memo": {"MemoType": encode_text_hex(ID_REL).lower(), "MemoData": "7431"}}]
        assert memo_text(parse_memos(raw), ID_REL) == "t1"

    def test_missing_data_is_empty(self) -> None:
        raw = [{"Memo": {"MemoType": encode_text_hex(ILP_REL)}}]
        assert parse_memos(raw) == {ILP_REL: b""}

    def test_missing_type_skipped(self) -> None:
        assert parse_memos([{"Memo": {"MemoData": "00"}}]) == {}

    def test_none_is_empty(self) -> None:
        assert parse_memos(None) == {}

    def test_memo_text_absent(self) -> None:
        assert memo_text({}, ID_REL) is None


class TestSerializeBody:
    def test_sorted_and_compact(self) -> None:
        assert serialize_body({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_non_ascii_kept(self) -> None:
        assert serialize_body({"k": "é"}) == '{"k":"é"}'

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValueError):
            serialize_body({"k": math.nan})
