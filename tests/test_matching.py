import pytest

from advdecoder.matching import (
    bf_value_from_hex_string,
    check_device_match,
    check_prop_condition,
    data_index_is_valid,
    evaluate_data_length,
    nibble_value,
    reverse_hex_data,
    sanitize_key,
    value_from_hex_string,
)

MAC = "AA:BB:CC:DD:EE:FF"
SVC_WITH_MAC = "5020aabbccddeeff0d1004"
SVC_WITH_REVMAC = "5020ffeeddccbbaa0d1004"


# --- hex helpers -----------------------------------------------------------

def test_reverse_hex_data_swaps_byte_order():
    assert reverse_hex_data("aabbccddeeff") == "ffeeddccbbaa"


@pytest.mark.parametrize("data", ["", "0a", "660a0315", "4208d756"])
def test_reverse_hex_data_round_trip(data):
    assert reverse_hex_data(reverse_hex_data(data)) == data


def test_reverse_hex_data_rejects_odd_length():
    with pytest.raises(ValueError):
        reverse_hex_data("abc")


def test_value_reads_little_endian_sensor_values():
    data = "5020aa0137dfaa33342d580d100404016602"
    assert value_from_hex_string(data, 28, 4, True) / 10 == pytest.approx(26)
    assert value_from_hex_string(data, 32, 4, True) / 10 == pytest.approx(61.4)


@pytest.mark.parametrize(
    "data, expected",
    [("2101070e5bffc01f95", -0.25), ("2101070e5b00401f95", 0.25)],
)
def test_value_signed_sixteen_bit(data, expected):
    assert value_from_hex_string(data, 10, 4, False) / 256 == pytest.approx(expected)


def test_value_reads_float_data():
    data = "ae0156d708420000c84252006907"
    assert value_from_hex_string(data, 4, 8, True, False, True) == pytest.approx(34.210289, rel=1e-6)
    assert value_from_hex_string(data, 12, 8, True, False, True) == pytest.approx(100)


def test_value_sign_only_applies_above_half_range():
    signed = value_from_hex_string("ff", 0, 2, False, True)
    unsigned = value_from_hex_string("ff", 0, 2, False, False)
    assert signed == unsigned - 256
    assert value_from_hex_string("7f", 0, 2, False, True) == value_from_hex_string("7f", 0, 2, False, False)


def test_value_reversed_equals_value_of_reversed_text():
    data = "56d70842"
    assert value_from_hex_string(data, 0, 8, True, False) == value_from_hex_string(
        reverse_hex_data(data), 0, 8, False, False
    )


def test_value_accepts_upper_case_hex():
    assert value_from_hex_string("1A1E", 0, 4, False, False) == value_from_hex_string("1a1e", 0, 4, False, False)


def test_bf_value_whole_degrees():
    assert bf_value_from_hex_string("21010b0c1318000021fffdfc12", 10, 4, False) == pytest.approx(24)


def test_bf_value_matches_high_byte_when_low_byte_is_zero():
    assert bf_value_from_hex_string("1800", 0, 4, False) == value_from_hex_string("18", 0, 2, False, False)


# --- small helpers ---------------------------------------------------------

@pytest.mark.parametrize("key, expected", [("__tempc", "tempc"), ("tempc", "tempc"), ("_a_b", "a_b")])
def test_sanitize_key(key, expected):
    assert sanitize_key(key) == expected


def test_data_index_is_valid():
    assert data_index_is_valid("abcd", 0, 4) is True
    assert data_index_is_valid("abcd", 1, 4) is False
    assert data_index_is_valid(None, 0, 0) is False


@pytest.mark.parametrize("ch", list("0123456789abcdef"))
def test_nibble_value_lower_hex(ch):
    assert nibble_value(ch) == int(ch, 16)


@pytest.mark.parametrize("ch", ["A", "F", "g", "", ":"])
def test_nibble_value_other_characters_are_zero(ch):
    assert nibble_value(ch) == 0


@pytest.mark.parametrize(
    "op, data_len, req_len, expected",
    [
        ("=", 5, 5, True),
        ("=", 5, 6, False),
        (">=", 6, 5, True),
        (">", 5, 5, False),
        ("<=", 5, 5, True),
        ("<", 4, 5, True),
        ("<", 5, 5, False),
        ("?", 5, 5, False),
    ],
)
def test_evaluate_data_length(op, data_len, req_len, expected):
    assert evaluate_data_length(op, data_len, req_len) is expected


# --- device conditions -----------------------------------------------------

def test_device_match_index_on_service_data():
    cond = ["servicedata", "index", 0, "5020"]
    assert check_device_match(cond, SVC_WITH_MAC, None, None, None, None) is True
    assert check_device_match(cond, "6020aabbccddeeff0d1004", None, None, None, None) is False


def test_device_match_short_data_uses_minimum_length():
    cond = ["servicedata", "index", 0, "5020"]
    assert check_device_match(cond, "5020aa", None, None, None, None) is False
    assert check_device_match(cond, "5020aa", None, None, None, None, min_svc_len=4) is True


def test_device_match_explicit_length():
    cond = ["servicedata", "=", 6, "index", 0, "5020"]
    assert check_device_match(cond, "5020aa", None, None, None, None) is True
    assert check_device_match(cond, "5020aabb", None, None, None, None) is False


def test_device_match_bad_length_clause():
    cond = ["servicedata", "=", "six", "index", 0, "5020"]
    assert check_device_match(cond, "5020aa", None, None, None, None) is False


def test_device_match_index_past_end_of_data():
    cond = ["servicedata", "index", 30, "aa"]
    assert check_device_match(cond, SVC_WITH_MAC, None, None, None, None) is False


def test_device_match_inverse_index():
    cond = ["servicedata", "index", 0, "!", "6"]
    assert check_device_match(cond, SVC_WITH_MAC, None, None, None, None) is True
    assert check_device_match(cond, "6020aabbccddeeff0d1004", None, None, None, None) is False


def test_device_match_or_alternatives():
    cond = ["name", "index", 0, "GVH5075", "|", "name", "index", 0, "GVH5072"]
    assert check_device_match(cond, None, None, "GVH5072_1234", None, None) is True
    assert check_device_match(cond, None, None, "GVH5075_1234", None, None) is True
    assert check_device_match(cond, None, None, "GVH5055", None, None) is False


def test_device_match_and_clauses():
    cond = ["name", "contain", "GVH", "&", "manufacturerdata", "index", 0, "88ec"]
    assert check_device_match(cond, None, "88ec000418ee6400", "GVH5075_1234", None, None) is True
    assert check_device_match(cond, None, "0100010103590e64", "GVH5075_1234", None, None) is False
    assert check_device_match(cond, None, "88ec000418ee6400", "sps", None, None) is False


def test_device_match_nested_condition():
    cond = [["name", "contain", "GVH5075"], "|", "name", "contain", "GVH5072"]
    assert check_device_match(cond, None, None, "GVH5072_1234", None, None) is True
    assert check_device_match(cond, None, None, "sps", None, None) is False


def test_device_match_uuid_strips_prefix():
    cond = ["uuid", "index", 0, "181a"]
    assert check_device_match(cond, None, None, None, "0x181a", None) is True
    assert check_device_match(cond, None, None, None, "0xfe95", None) is False


def test_device_match_mac_at_index():
    cond = ["servicedata", "mac@index", 4]
    assert check_device_match(cond, SVC_WITH_MAC, None, None, None, MAC) is True
    assert check_device_match(cond, SVC_WITH_REVMAC, None, None, None, MAC) is False


def test_device_match_reversed_mac_at_index():
    cond = ["servicedata", "revmac@index", 4]
    assert check_device_match(cond, SVC_WITH_REVMAC, None, None, None, MAC) is True
    assert check_device_match(cond, SVC_WITH_MAC, None, None, None, MAC) is False


def test_device_match_unknown_source_or_empty_condition():
    assert check_device_match(["unknown", "index", 0, "aa"], SVC_WITH_MAC, None, None, None, None) is False
    assert check_device_match([], SVC_WITH_MAC, None, None, None, None) is False


# --- property conditions ---------------------------------------------------

def test_prop_condition_missing_and_empty():
    assert check_prop_condition(None, SVC_WITH_MAC, None) is True
    assert check_prop_condition([], SVC_WITH_MAC, None) is False


def test_prop_condition_pattern():
    assert check_prop_condition(["servicedata", 0, "50"], SVC_WITH_MAC, None) is True
    assert check_prop_condition(["servicedata", 0, "60"], SVC_WITH_MAC, None) is False


def test_prop_condition_inverse_pattern():
    assert check_prop_condition(["servicedata", 0, "!", "50"], SVC_WITH_MAC, None) is False
    assert check_prop_condition(["servicedata", 0, "!", "60"], SVC_WITH_MAC, None) is True


def test_prop_condition_length():
    assert check_prop_condition(["manufacturerdata", ">=", 16], None, "88ec000418ee6400") is True
    assert check_prop_condition(["manufacturerdata", ">", 16], None, "88ec000418ee6400") is False


def test_prop_condition_bit():
    assert check_prop_condition(["servicedata", 1, "bit", 0, 1], "51", None) is True
    assert check_prop_condition(["servicedata", 1, "bit", 0, 0], "51", None) is False
    assert check_prop_condition(["servicedata", 1, "bit", 1, 0], "51", None) is True


def test_prop_condition_or_and_chains():
    either = ["servicedata", 0, "60", "|", "servicedata", 0, "50"]
    assert check_prop_condition(either, SVC_WITH_MAC, None) is True
    both = ["servicedata", 0, "50", "&", "manufacturerdata", 0, "4c"]
    assert check_prop_condition(both, SVC_WITH_MAC, "4c000215") is True
    assert check_prop_condition(both, SVC_WITH_MAC, "ff000215") is False


def test_prop_condition_missing_source_fails():
    assert check_prop_condition(["manufacturerdata", 0, "4c"], SVC_WITH_MAC, None) is False


def test_prop_condition_nested():
    cond = [["servicedata", 0, "60"], "|", "servicedata", 0, "50"]
    assert check_prop_condition(cond, SVC_WITH_MAC, None) is True