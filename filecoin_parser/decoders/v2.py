"""
Decoder for traces produced by Lotus v1.23 onwards.

From v1.23 the ExecutionTrace carries a ``MessageTrace`` / ``ReturnTrace``
pair with explicit IPLD codecs, plus the ``InvokedActor`` state. Exit
codes are the only failure signal.
"""

from typing import Any

from filecoin_parser.decoders.base import BaseTraceDecoder, CallFrame
from filecoin_parser.exceptions import DecodeError


NODE_VERSIONS_SUPPORTED = ("v1.23", "v1.24", "v1.25", "v1.26", "v1.27", "v1.28")

CODEC_NONE = 0x00
CODEC_DAG_CBOR = 0x71
CODEC_CBOR = 0x51
CODEC_RAW = 0x55

KNOWN_CODECS = frozenset({CODEC_NONE, CODEC_DAG_CBOR, CODEC_CBOR, CODEC_RAW})


class TraceDecoderV2(BaseTraceDecoder):

    @property
    def name(self) -> str:
        return "v2"

    @property
    def supported_versions(self) -> tuple[str, ...]:
        return NODE_VERSIONS_SUPPORTED

    @property
    def revision(self) -> int:
        return 2

    def read_frame(self, trace: dict[str, Any], tx_cid: str) -> CallFrame:
        msg = self._require(trace, "Msg", tx_cid)
        receipt = self._optional_dict(trace, "MsgRct", tx_cid)

        self._check_codec(msg.get("ParamsCodec"), "ParamsCodec", tx_cid)
        self._check_codec(receipt.get("ReturnCodec"), "ReturnCodec", tx_cid)

        invoked = trace.get("InvokedActor")
        if invoked is not None and not isinstance(invoked, dict):
            raise DecodeError(
                "InvokedActor is not an object",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name="InvokedActor",
            )

        return CallFrame(
            tx_from=self._require(msg, "From", tx_cid),
            tx_to=self._require(msg, "To", tx_cid),
            value=self._to_int(msg.get("Value"), "Value", tx_cid),
            method_num=self._to_int(msg.get("Method"), "Method", tx_cid),
            exit_code=self._to_int(receipt.get("ExitCode"), "ExitCode", tx_cid),
            params=msg.get("Params") or None,
            return_value=receipt.get("Return") or None,
            error=trace.get("Error") or "",
            subcalls=trace.get("Subcalls") or [],
        )

    def _check_codec(self, codec: Any, field_name: str, tx_cid: str) -> None:
        if codec is None:
            return
        if self._to_int(codec, field_name, tx_cid) not in KNOWN_CODECS:
            raise DecodeError(
                f"Unknown IPLD codec {codec}",
                decoder=self.name,
                tx_cid=tx_cid,
                field_name=field_name,
            )
