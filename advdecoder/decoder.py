"""Match advertisement data against device definitions and decode their properties.

A device definition is a JSON object holding ``brand``, ``model``, ``model_id``,
an optional ``tag``, an identifying ``condition`` (and optionally a
``conditionnomac`` variant) and a ``properties`` object describing how each
value is extracted from the advertised hex data.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from itertools import zip_longest
from typing import Any, Union

from .matching import (
    DEFAULT_MIN_MANUFACTURER_DATA_LEN,
    DEFAULT_MIN_SERVICE_DATA_LEN,
    MANUFACTURER_DATA,
    SERVICE_DATA,
    bf_value_from_hex_string,
    check_device_match,
    check_prop_condition,
    data_index_is_valid,
    nibble_value,
    reverse_hex_data,
    sanitize_key,
    value_from_hex_string,
)

DEVICE_TYPES = {
    1: "THB",
    2: "THBX",
    3: "BBQ",
    4: "CTMO",
    5: "SCALE",
    6: "BCON",
    7: "ACEL",
    8: "BATT",
    9: "PLANT",
    10: "TIRE",
    11: "BODY",
    12: "ENRG",
    13: "WCVR",
    14: "ACTR",
    15: "AIR",
    16: "TRACK",
    17: "BTN",
    254: "RMAC",
    255: "UNIQ",
}

_MAC_LEN = 12
_CAL_KEY = ".cal"


def device_type_from_tag(tag: str) -> str | None:
    """Device type named by the first byte of a model tag, or None if unknown."""
    try:
        code = int(tag[:2], 16)
    except ValueError:
        return None
    return DEVICE_TYPES.get(code)


@dataclass
class DeviceDefinition:
    """One known device: its parsed descriptor and its raw properties document."""

    descriptor: dict[str, Any]
    properties: str = ""

    @classmethod
    def from_json(cls, descriptor: str, properties: str = "") -> DeviceDefinition:
        """Build a definition from the descriptor's JSON text."""
        parsed = json.loads(descriptor)
        if not isinstance(parsed, dict):
            raise ValueError("device descriptor must be a JSON object")
        return cls(parsed, properties)

    @property
    def model_id(self) -> str | None:
        value = self.descriptor.get("model_id")
        return value if isinstance(value, str) else None


DeviceSource = Union[DeviceDefinition, Mapping[str, Any], str, Sequence[Any]]


def _as_definition(source: DeviceSource) -> DeviceDefinition:
    if isinstance(source, DeviceDefinition):
        return source
    if isinstance(source, Mapping):
        return DeviceDefinition(dict(source))
    if isinstance(source, str):
        return DeviceDefinition.from_json(source)
    descriptor, properties = source
    if isinstance(descriptor, str):
        return DeviceDefinition.from_json(descriptor, properties)
    return DeviceDefinition(dict(descriptor), properties)


def _item(seq: Sequence[Any], index: int) -> Any:
    return seq[index] if 0 <= index < len(seq) else None


def _text_field(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _as_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def _as_int(value: Any) -> int:
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(value)
    return 0


def _as_unsigned(value: Any, limit: int | None = None) -> int:
    number = _as_int(value)
    if number < 0 or (limit is not None and number > limit):
        return 0
    return number


def _trunc(value: float) -> int:
    return int(value) if math.isfinite(value) else 0


def _divide(numerator: float, denominator: float) -> float:
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


def _arith(op: str, value: float, operand: float) -> float:
    if op == "/":
        return _divide(value, operand)
    if op == "*":
        return value * operand
    if op == "-":
        return value - operand
    if op == "+":
        return value + operand
    return value


def _c_modulo(dividend: int, divisor: int) -> int:
    if divisor == 0:
        raise ZeroDivisionError("post-processing modulo by zero")
    remainder = abs(dividend) % abs(divisor)
    return -remainder if dividend < 0 else remainder


def _post_process(value: float, steps: Sequence[Any], cal_value: float) -> float:
    for op, arg in zip_longest(steps[0::2], steps[1::2]):
        if not isinstance(op, str):
            continue
        if cal_value and isinstance(arg, str) and arg.startswith(_CAL_KEY):
            value = _arith(op[:1], value, cal_value)
        elif len(op) == 1:
            if op in "/*-+":
                value = _arith(op, value, _as_float(arg))
            elif op == "%":
                value = float(_c_modulo(_trunc(value), _as_int(arg)))
            elif op == "<":
                value = float(_trunc(value) << _as_unsigned(arg))
            elif op == ">":
                value = float(_trunc(value) >> _as_unsigned(arg))
            elif op == "!":
                value = 0.0 if value else 1.0
            elif op == "&":
                value = float(_trunc(value) & _as_unsigned(arg))
        elif op.startswith("max"):
            limit = _as_float(arg)
            if value > limit:
                value = limit
        elif op.startswith("min"):
            limit = _as_float(arg)
            if value < limit:
                value = limit
    return value


class Decoder:
    """Identifies devices from advertisement fields and decodes their values."""

    def __init__(
        self,
        devices: Iterable[DeviceSource],
        min_service_data_len: int = DEFAULT_MIN_SERVICE_DATA_LEN,
        min_manufacturer_data_len: int = DEFAULT_MIN_MANUFACTURER_DATA_LEN,
        use_nomac_condition: bool = False,
    ) -> None:
        self.devices: tuple[DeviceDefinition, ...] = tuple(_as_definition(d) for d in devices)
        self.min_service_data_len = min_service_data_len
        self.min_manufacturer_data_len = min_manufacturer_data_len
        self.use_nomac_condition = use_nomac_condition
        self._cal_value = 0.0

    def decode(self, data: dict[str, Any]) -> int:
        """Decode ``data`` in place; return the matched device index, or -1."""
        svc_data = _text_field(data, SERVICE_DATA)
        mfg_data = _text_field(data, MANUFACTURER_DATA)
        dev_name = _text_field(data, "name")
        svc_uuid = _text_field(data, "servicedatauuid")
        mac_id = _text_field(data, "id")

        if svc_data is None and mfg_data is None and dev_name is None:
            return -1

        for index, device in enumerate(self.devices):
            descriptor = device.descriptor
            if self.use_nomac_condition and "conditionnomac" in descriptor:
                condition = descriptor.get("conditionnomac")
            else:
                condition = descriptor.get("condition")
            if not isinstance(condition, list):
                condition = []
            if check_device_match(
                condition, svc_data, mfg_data, dev_name, svc_uuid, mac_id,
                self.min_service_data_len, self.min_manufacturer_data_len,
            ):
                self._add_identity(descriptor, data)
                return self._decode_properties(index, descriptor, data, svc_data, mfg_data)
        return -1

    @staticmethod
    def _add_identity(descriptor: Mapping[str, Any], data: dict[str, Any]) -> None:
        for key in ("brand", "model", "model_id"):
            data[key] = descriptor.get(key)
        if "tag" not in descriptor:
            return
        tag = descriptor["tag"] if isinstance(descriptor["tag"], str) else ""
        device_type = device_type_from_tag(tag)
        if device_type is not None:
            data["type"] = device_type
        if len(tag) >= 4:
            low = nibble_value(tag[3])
            if low & 0x01:
                data["cidc"] = False
            if (low >> 1) & 0x01:
                data["acts"] = True
            if (low >> 2) & 0x01:
                data["cont"] = True
            if (low >> 3) & 0x01:
                data["track"] = True
            if nibble_value(tag[2]) & 0x01:
                data["encr"] = True

    def _decode_properties(
        self,
        index: int,
        descriptor: Mapping[str, Any],
        data: dict[str, Any],
        svc_data: str | None,
        mfg_data: str | None,
    ) -> int:
        success = -1
        properties = descriptor.get("properties")
        if not isinstance(properties, Mapping):
            return success

        for name, prop in properties.items():
            if not isinstance(prop, Mapping):
                continue
            condition = prop.get("condition")
            if not check_prop_condition(
                condition if isinstance(condition, list) else None, svc_data, mfg_data
            ):
                continue
            spec = prop.get("decoder")
            if not isinstance(spec, list) or not spec:
                continue
            kind = spec[0] if isinstance(spec[0], str) else ""
            source_name = _item(spec, 1)
            source_name = source_name if isinstance(source_name, str) else ""
            src = mfg_data if MANUFACTURER_DATA in source_name else svc_data
            key = sanitize_key(name)

            if "value_from_hex_data" in kind:
                offset = _as_int(_item(spec, 2))
                length = _as_int(_item(spec, 3))
                if offset < 0 or length < 0 or not data_index_is_valid(src, offset, length):
                    break
                extract = bf_value_from_hex_string if "bf" in kind else value_from_hex_string
                negative = _item(spec, 5)
                is_float = _item(spec, 6)
                value = extract(
                    src, offset, length, _as_bool(_item(spec, 4)),
                    True if negative is None else _as_bool(negative),
                    False if is_float is None else _as_bool(is_float),
                )
                steps = prop.get("post_proc")
                if isinstance(steps, list):
                    value = _post_process(value, steps, self._cal_value)

                if key == _CAL_KEY:
                    self._cal_value = value
                    continue

                data[key] = bool(value) if "is_bool" in prop else value
                if "tempc" in key:
                    data[key[:4] + "f" + key[5:]] = _as_float(data[key]) * 1.8 + 32
                if key.endswith("_cm"):
                    data[key[:-3] + "_in"] = _as_float(data[key]) / 2.54
                success = index
            elif "static_value" in kind:
                if "bit" in kind:
                    bit_src = None
                    if svc_data is not None and SERVICE_DATA in source_name:
                        bit_src = svc_data
                    elif mfg_data is not None and MANUFACTURER_DATA in source_name:
                        bit_src = mfg_data
                    position = _as_int(_item(spec, 2))
                    ch = bit_src[position] if bit_src and 0 <= position < len(bit_src) else ""
                    shift = _as_unsigned(_item(spec, 3), 255)
                    data[key] = _item(spec, 4 + ((nibble_value(ch) >> shift) & 0x01))
                else:
                    data[key] = _item(spec, 1)
                success = index
            elif "string_from_hex_data" in kind:
                offset = max(_as_int(_item(spec, 2)), 0)
                length = max(_as_int(_item(spec, 3)), 0)
                data[key] = (src or "")[offset:offset + length]
                success = index
            elif "mac_from_hex_data" in kind:
                offset = max(_as_int(_item(spec, 2)), 0)
                mac = (src or "")[offset:offset + _MAC_LEN]
                if "revmac_from_hex_data" in kind and len(mac) % 2 == 0:
                    mac = reverse_hex_data(mac)
                mac = mac.upper()
                data[key] = ":".join(mac[pos:pos + 2] for pos in range(0, len(mac), 2))
                success = index
        return success

    def find_model(self, model_id: str) -> int:
        """Index of the device whose ``model_id`` equals ``model_id``, or -1."""
        for index, device in enumerate(self.devices):
            if device.model_id == model_id:
                return index
        return -1

    def _resolve(self, model: int | str) -> int | None:
        if isinstance(model, str):
            index = self.find_model(model)
            return index if index >= 0 else None
        if isinstance(model, int) and not isinstance(model, bool):
            return model if 0 <= model < len(self.devices) else None
        raise TypeError("model must be a device index or a model id")

    def get_properties(self, model: int | str) -> str:
        """Properties document of a device given by index or model id, or ''."""
        index = self._resolve(model)
        return "" if index is None else self.devices[index].properties

    def get_attribute(self, model: int | str, attribute: str) -> str:
        """One descriptor attribute as text, or '' if the device or value is missing."""
        index = self._resolve(model)
        if index is None:
            return ""
        value = self.devices[index].descriptor.get(attribute)
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)