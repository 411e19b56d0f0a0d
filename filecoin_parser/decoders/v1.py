"""
Decoder for traces produced by Lotus v1.20 - v1.23.

Legacy ExecutionTrace layout: ``Msg`` is the full chain message and
``MsgRct`` the full receipt; failures are also reported in ``Error``.
"""

from typing import Any

from filecoin_parser.decoders.base import BaseTraceDecoder, CallFrame


NODE_VERSIONS_SUPPORTED = ("v1.20", "v1.21", "v1.22", "v1.23")


class TraceDecoderV1(BaseTraceDecoder):

    @property
    def name(self) -> str:
        return "v1"

    @property
    def supported_versions(self) -> tuple[str, ...]:
        return NODE_VERSIONS_SUPPORTED

    @property
    def revision(self) -> int:
        return 1

    def read_frame(self, trace: dict[str, Any], tx_cid: str) -> CallFrame:
        msg = self._require(trace, "Msg", tx_cid)
        receipt = self._optional_dict(trace, "MsgRct", tx_cid)

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
