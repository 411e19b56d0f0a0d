"""
Protocol decoders - one per node trace layout.

Adding a new version:
    class TraceDecoderV3(BaseTraceDecoder):
        name = "v3", supported_versions, revision = 3
        def read_frame(self, trace, tx_cid): ...

    registry.register(TraceDecoderV3())
"""

from filecoin_parser.decoders.base import BaseTraceDecoder, CallFrame, normalize_version
from filecoin_parser.decoders.registry import DecoderRegistry
from filecoin_parser.decoders.v1 import TraceDecoderV1
from filecoin_parser.decoders.v2 import TraceDecoderV2


__all__ = [
    "BaseTraceDecoder",
    "CallFrame",
    "DecoderRegistry",
    "TraceDecoderV1",
    "TraceDecoderV2",
    "normalize_version",
]
