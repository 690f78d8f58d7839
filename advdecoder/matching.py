"""Low-level helpers that read hex advertisement data and evaluate device conditions.

Conditions are JSON-style lists: data source names, operators, indexes and
patterns, optionally nested and chained with ``"|"`` (or) and ``"&"`` (and).
"""

from __future__ import annotations

import math
import re
import struct
from collections.abc import Sequence
from typing import Any

SERVICE_DATA = "servicedata"
MANUFACTURER_DATA = "manufacturerdata"
DEFAULT_MIN_SERVICE_DATA_LEN = 20
DEFAULT_MIN_MANUFACTURER_DATA_LEN = 16

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_HEX_NUMBER = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)")
_MAC_LEN = 12


def reverse_hex_data(data: str) -> str:
    """Reverse the byte order of a hex string, two characters at a time."""
    if len(data) % 2:
        raise ValueError("hex data must have an even length")
    pairs = [data[pos:pos + 2] for pos in range(0, len(data), 2)]
    return "".join(reversed(pairs))


def _parse_hex(text: str) -> int:
    """Parse leading hex digits the lenient way, clamped to a signed 64-bit range."""
    sign, digits = _HEX_NUMBER.match(text).groups()
    if not digits:
        return 0
    value = int(digits, 16)
    if sign == "-":
        value = -value
    return max(_INT64_MIN, min(_INT64_MAX, value))


def value_from_hex_string(
    data: str,
    offset: int,
    length: int,
    reverse: bool,
    can_be_negative: bool = True,
    is_float: bool = False,
) -> float:
    """Extract a numeric value from ``length`` hex characters at ``offset``."""
    chunk = data[offset:offset + length]
    if reverse:
        chunk = reverse_hex_data(chunk)

    raw = _parse_hex(chunk)
    if is_float:
        value = struct.unpack("<f", struct.pack("<I", raw & 0xFFFFFFFF))[0]
    else:
        value = float(raw)

    if can_be_negative:
        if length <= 2 and value > 127:
            value -= 256
        elif length == 4 and value > 32767:
            value -= 65536
    return value


def bf_value_from_hex_string(
    data: str,
    offset: int,
    length: int,
    reverse: bool,
    can_be_negative: bool = True,
    is_float: bool = False,
) -> float:
    """Extract a value whose high byte is the integer part and low byte hundredths."""
    raw = int(value_from_hex_string(data, offset, length, reverse, False, False))
    value = ((raw >> 8) * 100 + (raw & 0xFF)) / 100.0
    if can_be_negative and length == 4 and raw > 32767:
        value = -value + 128
    return value


def sanitize_key(key: str) -> str:
    """Strip the leading underscores used to tell duplicate properties apart."""
    return key.lstrip("_")


def data_index_is_valid(data: str | None, index: int, length: int) -> bool:
    """Tell whether ``data`` holds ``length`` characters starting at ``index``."""
    if data is None:
        return False
    return len(data) >= index + length


def nibble_value(ch: str) -> int:
    """Value of one lower-case hex digit; anything else counts as zero."""
    if ch and "0" <= ch <= "9":
        return ord(ch) - ord("0")
    if ch and "a" <= ch <= "f":
        return 10 + ord(ch) - ord("a")
    return 0


def evaluate_data_length(op: str, data_len: int, req_len: int) -> bool:
    """Compare a data length with a required length using a comparison operator."""
    if op == "=":
        return data_len == req_len
    if op == ">=":
        return data_len >= req_len
    if op == ">":
        return data_len > req_len
    if op == "<=":
        return data_len <= req_len
    if op == "<":
        return data_len < req_len
    return False


def _item(seq: Sequence[Any], index: int) -> Any:
    if 0 <= index < len(seq):
        return seq[index]
    return None


def _text(seq: Sequence[Any], index: int) -> str | None:
    value = _item(seq, index)
    return value if isinstance(value, str) else None


def _lead(text: str | None) -> str:
    return text[0] if text else ""


def _contains(text: str | None, needle: str) -> bool:
    return text is not None and needle in text


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_nested(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _to_unsigned(value: Any, limit: int | None = None) -> int:
    if isinstance(value, bool):
        number = int(value)
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float) and math.isfinite(value):
        number = int(value)
    else:
        return 0
    if number < 0 or (limit is not None and number > limit):
        return 0
    return number


def _prefix_equal(left: str, right: str, count: int) -> bool:
    return left[:count] == right[:count]


def _data_length_is_valid(
    data_len: int, default_min: int, condition: Sequence[Any], idx: int
) -> tuple[bool, int]:
    """Check a data length clause; returns the verdict and the new index (-1 on a bad clause)."""
    op = _text(condition, idx + 1) or ""
    if len(op) > 2:
        return data_len >= default_min, idx

    required = _item(condition, idx + 2)
    if not _is_int(required) or required < 0:
        return False, -1
    return evaluate_data_length(op, data_len, required), idx + 2


def check_device_match(
    condition: Sequence[Any],
    svc_data: str | None,
    mfg_data: str | None,
    dev_name: str | None,
    svc_uuid: str | None,
    mac_id: str | None,
    min_svc_len: int = DEFAULT_MIN_SERVICE_DATA_LEN,
    min_mfg_len: int = DEFAULT_MIN_MANUFACTURER_DATA_LEN,
) -> bool:
    """Tell whether advertisement fields satisfy a device's identifying condition."""
    match = False
    size = len(condition)
    i = 0

    while i < size:
        if _is_nested(condition[i]):
            match = check_device_match(
                condition[i], svc_data, mfg_data, dev_name, svc_uuid, mac_id,
                min_svc_len, min_mfg_len,
            )
            i += 1
            if i >= size:
                break
            joiner = _lead(_text(condition, i))
            if not match and joiner == "|":
                pass
            elif match and joiner == "&":
                match = False
            else:
                break
            i += 1

        cmp_str: str | None = None
        from_uuid = False
        cond_str = _text(condition, i)

        if svc_data is not None and _contains(cond_str, SERVICE_DATA):
            valid, i = _data_length_is_valid(len(svc_data), min_svc_len, condition, i)
            if valid:
                cmp_str = svc_data
                match = True
            else:
                match = False
                if i < 0:
                    break
        elif mfg_data is not None and _contains(cond_str, MANUFACTURER_DATA):
            valid, i = _data_length_is_valid(len(mfg_data), min_mfg_len, condition, i)
            if valid:
                cmp_str = mfg_data
                match = True
            else:
                match = False
                if i < 0:
                    break
        elif dev_name is not None and _contains(cond_str, "name"):
            cmp_str = dev_name
        elif svc_uuid is not None and _contains(cond_str, "uuid"):
            cmp_str = svc_uuid
            from_uuid = True
        else:
            break

        if not match and cmp_str is None:
            # Skip ahead to the next alternative, if there is one.
            while i < size and _lead(cond_str) != "|":
                i += 1
                candidate = _item(condition, i)
                if isinstance(candidate, str):
                    cond_str = candidate
            if i < size and cond_str is not None:
                i += 1
                continue

        i += 1
        cond_str = _text(condition, i)
        if cmp_str is not None and cond_str is not None and _lead(cond_str) not in ("&", "|"):
            if from_uuid and cmp_str.startswith("0x"):
                cmp_str = cmp_str[2:]

            if "contain" in cond_str:
                i += 1
                needle = _text(condition, i)
                match = needle is not None and needle in cmp_str
                i += 1
            elif "mac@index" in cond_str:
                i += 1
                cond_index = _to_unsigned(_item(condition, i))
                mac = (mac_id or "").replace(":", "").lower()
                if "revmac@index" in cond_str:
                    mac = reverse_hex_data(mac[:_MAC_LEN]) if len(mac) >= _MAC_LEN else ""
                if not data_index_is_valid(cmp_str, cond_index, _MAC_LEN):
                    match = False
                    break
                match = _prefix_equal(cmp_str[cond_index:], mac, _MAC_LEN)
                i += 1
            elif "index" in cond_str:
                i += 1
                cond_index = _to_unsigned(_item(condition, i))
                i += 1
                pattern = _text(condition, i) or ""
                cond_len = len(pattern)
                if not data_index_is_valid(cmp_str, cond_index, cond_len):
                    match = False
                    break
                inverse = False
                if _lead(pattern) == "!":
                    inverse = True
                    i += 1
                target = _text(condition, i) or ""
                equal = _prefix_equal(cmp_str[cond_index:], target, cond_len)
                match = equal != inverse
                i += 1

            cond_str = _text(condition, i)

        if i < size and cond_str is not None:
            joiner = _lead(cond_str)
            if not match and joiner == "|":
                i += 1
                continue
            if match and joiner == "&":
                i += 1
                match = False
                continue
            if match:
                # Satisfied so far: look for a later clause that must also hold.
                while i < size and _lead(cond_str) != "&":
                    i += 1
                    candidate = _item(condition, i)
                    if isinstance(candidate, str):
                        cond_str = candidate
                if i < size and cond_str is not None:
                    i += 1
                    match = False
                    continue
        break

    return match


def check_prop_condition(
    condition: Sequence[Any] | None,
    svc_data: str | None,
    mfg_data: str | None,
) -> bool:
    """Tell whether a property's condition holds; a missing condition always holds."""
    if condition is None:
        return True

    cond_met = False
    size = len(condition)
    i = 0

    while i < size:
        if _is_nested(condition[i]):
            cond_met = check_prop_condition(condition[i], svc_data, mfg_data)
            i += 1
            if i >= size:
                break
            joiner = _lead(_text(condition, i))
            if not cond_met and joiner == "|":
                pass
            elif cond_met and joiner == "&":
                cond_met = False
            else:
                break
            i += 1

        inverse = 0
        source_name = _text(condition, i)
        data_src: str | None = None
        if svc_data is not None and _contains(source_name, SERVICE_DATA):
            data_src = svc_data
        elif mfg_data is not None and _contains(source_name, MANUFACTURER_DATA):
            data_src = mfg_data

        if data_src is None:
            return False

        position = _item(condition, i + 1)
        if _is_int(position):
            marker = _text(condition, i + 2)
            inverse = 1 if _lead(marker) == "!" else 0
            pattern = _text(condition, i + 2 + inverse) or ""
            if _contains(marker, "bit"):
                ch = data_src[position] if 0 <= position < len(data_src) else ""
                shift = _to_unsigned(_item(condition, i + 3), 255)
                expected = _to_unsigned(_item(condition, i + 4), 255)
                if (nibble_value(ch) >> shift) & 0x01 == expected:
                    cond_met = True
                i += 2
            else:
                window = data_src[position:] if position >= 0 else ""
                equal = _prefix_equal(window, pattern, len(pattern))
                cond_met = equal != bool(inverse)
        else:
            op = _text(condition, i + 1) or ""
            required = _to_unsigned(_item(condition, i + 2))
            cond_met = evaluate_data_length(op, len(data_src), required)

        i += inverse

        if size <= i + 3:
            break
        joiner = _lead(_text(condition, i + 3))
        if not cond_met and joiner == "|":
            i += 4
            continue
        if cond_met and joiner == "&":
            cond_met = False
            i += 4
            continue
        break

    return cond_met