"""
Sensor packet decoding and simulation.
"""

from biostream.acquisition.packet_decoder import (
    PacketDecoder,
    RawSample,
    encode_records,
)
from biostream.acquisition.simulator import PacketSimulator

__all__ = [
    "PacketDecoder",
    "RawSample",
    "encode_records",
    "PacketSimulator",
]
