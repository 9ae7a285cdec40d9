"""Wire-level models."""

from dvsim.model.messages import WIRE_VERSION, PacketDecodeError, decode_packet, encode_packet

__all__ = [
    "WIRE_VERSION",
    "PacketDecodeError",
    "decode_packet",
    "encode_packet",
]
