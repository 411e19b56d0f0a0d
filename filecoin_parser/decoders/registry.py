"""
Decoder Registry - Selects the decoder for a reported node version.

Version sets may overlap during a migration window; the decoder with the
highest revision wins.
"""

import logging
from typing import Optional

from filecoin_parser.decoders.base import BaseTraceDecoder, normalize_version
from filecoin_parser.decoders.v1 import TraceDecoderV1
from filecoin_parser.decoders.v2 import TraceDecoderV2
from filecoin_parser.exceptions import UnsupportedVersionError


logger = logging.getLogger(__name__)


class DecoderRegistry:
    """
    Usage:
        registry = DecoderRegistry.default()
        decoder = registry.select("v1.25")
    """

    def __init__(self, decoders: Optional[list[BaseTraceDecoder]] = None) -> None:
        self._decoders: dict[str, BaseTraceDecoder] = {}
        for decoder in decoders or []:
            self.register(decoder)

    @classmethod
    def default(cls) -> "DecoderRegistry":
        return cls([TraceDecoderV1(), TraceDecoderV2()])

    def register(self, decoder: BaseTraceDecoder) -> None:
        if decoder.name in self._decoders:
            logger.warning(f"Decoder '{decoder.name}' already registered, replacing")
        self._decoders[decoder.name] = decoder
        logger.debug(
            f"Registered decoder '{decoder.name}' (revision {decoder.revision}) "
            f"for {', '.join(decoder.supported_versions)}"
        )

    def get(self, name: str) -> Optional[BaseTraceDecoder]:
        return self._decoders.get(name)

    def list_decoders(self) -> list[str]:
        """Names ordered from newest to oldest revision."""
        return [d.name for d in self._by_revision()]

    def supported_versions(self) -> list[str]:
        versions: set[str] = set()
        for decoder in self._decoders.values():
            versions.update(decoder.supported_versions)
        return sorted(versions, key=lambda v: tuple(int(p) for p in v[1:].split(".")))

    def select(self, version: str) -> BaseTraceDecoder:
        """
        Newest decoder declaring the version.

        Raises:
            UnsupportedVersionError: If no decoder declares it
        """
        for decoder in self._by_revision():
            if decoder.supports(version):
                return decoder

        raise UnsupportedVersionError(
            f"Node version '{version}' is not supported",
            version=version,
            supported_versions=self.supported_versions(),
            context={"normalized": normalize_version(version)},
        )

    def latest(self) -> BaseTraceDecoder:
        decoders = self._by_revision()
        if not decoders:
            raise UnsupportedVersionError("No decoders registered")
        return decoders[0]

    def _by_revision(self) -> list[BaseTraceDecoder]:
        return sorted(self._decoders.values(), key=lambda d: d.revision, reverse=True)

    def __len__(self) -> int:
        return len(self._decoders)
