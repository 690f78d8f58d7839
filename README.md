# advdecoder

advdecoder turns raw Bluetooth Low Energy advertisement data into readable
values. You give it an advertisement as a dictionary that may hold
`servicedata`, `manufacturerdata`, `name`, `servicedatauuid` and `id` (the
MAC address). It finds the first device definition whose condition matches
and adds fields such as `brand`, `model`, `model_id`, `type`, `tempc`,
`tempf`, `hum` and `batt` to that dictionary.

Device definitions are JSON objects. Each holds a `condition` that picks out
the device and a `properties` object. Each property has a `decoder` and may
have a `condition`, `post_proc` steps and an `is_bool` flag. You supply the
definitions to the `Decoder` yourself.

## What the package does not include

The package has no built-in list of devices. It ships no definitions for any
real sensor, so `Decoder` recognises only the definitions you pass to it.
There is no command-line tool, and the package does not scan for Bluetooth
devices. It only decodes data that you have already received.

## Installation

```
pip install advdecoder
```

The package has no runtime dependencies.

## Usage

```python
import json

from advdecoder.decoder import Decoder, DeviceDefinition

descriptor = json.dumps({
    "brand": "Example",
    "model": "TH Sensor",
    "model_id": "EXAMPLE_TH",
    "tag": "01",
    "condition": ["servicedata", "=", 8, "index", 0, "aa"],
    "properties": {
        "tempc": {"decoder": ["value_from_hex_data", "servicedata", 2, 4, True], "post_proc": ["/", 10]},
        "batt": {"decoder": ["value_from_hex_data", "servicedata", 6, 2, False, False]},
    },
})
properties = json.dumps({"properties": {"tempc": {"unit": "°C", "name": "temperature"}}})

decoder = Decoder([DeviceDefinition.from_json(descriptor, properties)])

advert = {"servicedata": "aafa0064"}
index = decoder.decode(advert)
# index == 0; advert now also holds brand, model, model_id,
# type ("THB"), tempc (25.0), tempf (77.0) and batt (100.0)
```

`Decoder.decode` changes the dictionary you pass in. It returns the index of
the matching definition if at least one property was decoded, and `-1`
otherwise. It also returns `-1` when the advertisement has none of service
data, manufacturer data or a name.

The `Decoder` accepts each definition in any of these forms:

- a `DeviceDefinition`
- a mapping, which is used as the descriptor
- a JSON string holding the descriptor
- a `(descriptor, properties)` pair, where the descriptor is a JSON string or a mapping

The parsed definitions are kept in `Decoder.devices`.
`DeviceDefinition.from_json` raises `ValueError` if the descriptor is not a
JSON object.

### Decoders and post-processing

- `value_from_hex_data` reads a number. The spec gives the offset, the
  length, and whether to reverse the byte order. It can also say whether
  the value may be negative (default yes) and whether it is a 32-bit float
  (default no). A decoder name that contains `bf` reads the high byte as
  the integer part and the low byte as hundredths.
- `static_value` stores a fixed value. `static_value` with `bit` in its
  name picks one of two values by testing a bit of a hex digit.
- `string_from_hex_data` copies part of the hex string as it is.
- `mac_from_hex_data` and `revmac_from_hex_data` format 12 hex characters
  as an upper-case, colon-separated MAC address.

`post_proc` is a flat list of operator and operand pairs, applied in order.
The operators are `/ * - + % < > ! &`, and also `max` and `min`, which clamp
the value. If a property is named `.cal`, its value is not added to the
output. It is kept instead, and later steps whose operand starts with
`.cal` use it. This kept value lasts for the life of the `Decoder`.

Each `tempc…` key also gets a matching `tempf…` key in Fahrenheit. Each key
ending in `_cm` also gets an `_in` key in inches. Leading underscores are
removed from property names, so several properties can write the same key.

### Looking up definitions

```python
decoder.find_model("EXAMPLE_TH")                 # -> 0, or -1 if unknown
decoder.get_attribute("EXAMPLE_TH", "brand")     # -> "Example"
decoder.get_attribute(0, "model")                # -> "TH Sensor"
decoder.get_properties("EXAMPLE_TH")             # -> the properties JSON text
```

`get_attribute` and `get_properties` take either a model id or an index.
They return an empty string when nothing matches, and raise `TypeError` for
any other kind of argument. A value of `get_attribute` that is not a string
comes back as compact JSON text.

### Options

- `min_service_data_len` (default 20) and `min_manufacturer_data_len`
  (default 16) set the shortest data that a condition accepts when it has
  no explicit length check.
- `use_nomac_condition` makes the decoder use a definition's
  `conditionnomac` in place of its `condition` when it has one.

### Device types

`device_type_from_tag` maps the first byte of a definition's `tag` to a type
code, for example `"THB"`, `"BBQ"`, `"AIR"` or `"RMAC"`. It returns `None`
for an unknown code. The second byte of the tag sets the flags `cidc`,
`acts`, `cont`, `track` and `encr` in the decoded output.

### Lower-level helpers

`advdecoder.matching` holds the functions that `Decoder` uses:

- hex value extraction: `value_from_hex_string`, `bf_value_from_hex_string`
  and `reverse_hex_data` (which raises `ValueError` for an odd length)
- condition evaluation: `check_device_match` and `check_prop_condition`
- small helpers: `sanitize_key`, `nibble_value`, `data_index_is_valid` and
  `evaluate_data_length`

## Running the tests

```
pip install -e ".[test]"
pytest
```