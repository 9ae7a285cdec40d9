from __future__ import annotations

import json
from typing import Any, Dict

from dvsim.core.types import Packet

WIRE_VERSION = 1


class PacketDecodeError(ValueError):
    """Inbound bytes do not form a valid distance-vector packet."""


def packet_to_dict(packet: Packet) -> Dict[str, Any]:
    return {
        "v": WIRE_VERSION,
        "src": int(packet.src),
        "dst": int(packet.dst),
        "costs": [int(c) for c in packet.costs],
        "ts": float(packet.timestamp),
    }


def encode_packet(packet: Packet) -> bytes:
    return json.dumps(packet_to_dict(packet), sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_packet(data: bytes) -> Packet:
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PacketDecodeError(f"undecodable payload: {exc}") from exc
    if not isinstance(raw, dict):
        raise PacketDecodeError("payload is not an object")
    if raw.get("v") != WIRE_VERSION:
        raise PacketDecodeError(f"unsupported wire version {raw.get('v')!r}")

    src = _int_field(raw, "src")
    dst = _int_field(raw, "dst")
    costs = raw.get("costs")
    if not isinstance(costs, list) or not costs:
        raise PacketDecodeError("costs must be a non-empty list")
    for c in costs:
        if isinstance(c, bool) or not isinstance(c, int) or c < 0:
            raise PacketDecodeError(f"invalid cost entry {c!r}")
    ts = raw.get("ts", 0.0)
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        raise PacketDecodeError(f"invalid timestamp {ts!r}")
    return Packet(src=src, dst=dst, costs=tuple(costs), timestamp=float(ts))


def _int_field(raw: Dict[str, Any], name: str) -> int:
    value = raw.get(name)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PacketDecodeError(f"invalid {name} {value!r}")
    return value
