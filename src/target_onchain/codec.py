"""
target_onchain.codec — Decoder for ABI-encoded attestation payloads.

EAS stores attestation data as the ABI encoding of a tuple whose layout is
given by the schema string, e.g. ``"string verifiedCountry"`` or
``"uint8 score, string label"``. Decoding is done by ``eth_abi``; this module
only maps the schema onto names and normalizes values for JSON output.

Usage:
    decoder = SchemaDecoder("string verifiedCountry")
    decoder.decode(attestation.data)    # {"verifiedCountry": "AR"}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import eth_abi
from eth_abi.exceptions import DecodingError

from target_onchain.core import MalformedPayload

__all__ = ["SchemaField", "DecodedField", "SchemaDecoder", "parse_schema", "COUNTRY_SCHEMA"]

COUNTRY_SCHEMA = "string verifiedCountry"

_FIELD_RE = re.compile(r"^\s*([a-z][a-z0-9\[\]]*)\s+([A-Za-z_][A-Za-z0-9_]*)\s*$")


@dataclass(frozen=True)
class SchemaField:
    type: str
    name: str


@dataclass(frozen=True)
class DecodedField:
    name: str
    type: str
    value: Any


def parse_schema(schema: str) -> list[SchemaField]:
    """Parse ``"type name, type name"`` into fields. Raises ValueError."""
    fields = []
    for part in schema.split(","):
        m = _FIELD_RE.match(part)
        if not m:
            raise ValueError(f"Invalid schema field: {part!r}")
        if not eth_abi.is_encodable_type(m.group(1)):
            raise ValueError(f"Unsupported schema type: {m.group(1)}")
        fields.append(SchemaField(type=m.group(1), name=m.group(2)))
    return fields


def _to_bytes(payload: str | bytes) -> bytes:
    if isinstance(payload, bytes):
        return payload
    text = (payload or "").strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise MalformedPayload(f"Payload is not valid hex: {e}") from e


def _normalize(type_: str, value: Any) -> Any:
    # bytes and bytesN as 0x-hex, addresses lowercased like the EAS index
    if type_.endswith("]"):
        return [_normalize(type_[:type_.rindex("[")], v) for v in value]
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if type_ == "address":
        return value.lower()
    return value


class SchemaDecoder:
    """Decode attestation payloads against a declared field list."""

    def __init__(self, schema: str):
        self.schema = schema
        self.fields = parse_schema(schema)

    def decode_fields(self, payload: str | bytes) -> list[DecodedField]:
        """Decode ``payload`` into one DecodedField per declared field.

        Raises MalformedPayload when the bytes do not fit the schema.
        """
        raw = _to_bytes(payload)
        try:
            values = eth_abi.decode([f.type for f in self.fields], raw)
        except (DecodingError, UnicodeDecodeError) as e:
            raise MalformedPayload(f"Payload does not match {self.schema!r}: {e}") from e
        return [DecodedField(name=f.name, type=f.type, value=_normalize(f.type, v))
                for f, v in zip(self.fields, values)]

    def decode(self, payload: str | bytes) -> dict[str, Any]:
        """Decode ``payload`` into a ``{name: value}`` mapping."""
        return {f.name: f.value for f in self.decode_fields(payload)}
