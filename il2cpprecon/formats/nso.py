# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/nso.py - Nintendo Switch NSO images

Segments may be LZ4-block compressed; uncompress() lays them out at their
memory offsets so virtual addresses equal raw offsets.
"""

from dataclasses import dataclass, replace
from typing import List, Optional

import lz4.block

from ..core.exceptions import FormatContractError, ImageAccessError
from ..core.logging import get_logger
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .structures import ContainerKind

logger = get_logger("formats.nso")

NSO_MAGIC = 0x304F534E
NSO_HEADER_SIZE = 0x100

FLAG_TEXT_COMPRESSED = 1 << 0
FLAG_RO_COMPRESSED = 1 << 1
FLAG_DATA_COMPRESSED = 1 << 2


@dataclass
class NsoSegment:
    name: str
    file_offset: int
    memory_offset: int
    decompressed_size: int
    compressed_size: int
    compressed: bool

    @property
    def memory_end(self) -> int:
        return self.memory_offset + self.decompressed_size


class NSO(BinaryImage):
    """NSO image; compressed until uncompress() is called"""

    kind = ContainerKind.NSO

    def __init__(self, data, segments: Optional[List[NsoSegment]] = None, bss_size: int = 0) -> None:
        super().__init__(data)
        if segments is not None:
            self.text, self.ro, self.data_segment = segments
            self.bss_size = bss_size
            self.flat = True
            return

        self.flat = False
        try:
            magic = self.read_u32(0)
            if magic != NSO_MAGIC:
                raise FormatContractError(f"Unexpected NSO magic 0x{magic:08X}", container=self.kind.value)
            flags = self.read_u32(0x0C)
            compressed_sizes = [self.read_u32(0x60), self.read_u32(0x64), self.read_u32(0x68)]
            self.text = self._segment("text", 0x10, compressed_sizes[0], bool(flags & FLAG_TEXT_COMPRESSED))
            self.ro = self._segment("ro", 0x20, compressed_sizes[1], bool(flags & FLAG_RO_COMPRESSED))
            self.data_segment = self._segment("data", 0x30, compressed_sizes[2], bool(flags & FLAG_DATA_COMPRESSED))
            self.bss_size = self.read_u32(0x3C)
        except ImageAccessError as e:
            raise FormatContractError(f"Truncated NSO header: {e.message}", container=self.kind.value)

    def _segment(self, name: str, header_offset: int, compressed_size: int, compressed: bool) -> NsoSegment:
        return NsoSegment(
            name=name,
            file_offset=self.read_u32(header_offset),
            memory_offset=self.read_u32(header_offset + 4),
            decompressed_size=self.read_u32(header_offset + 8),
            compressed_size=compressed_size,
            compressed=compressed,
        )

    @property
    def segments(self) -> List[NsoSegment]:
        return [self.text, self.ro, self.data_segment]

    def uncompress(self) -> 'NSO':
        """Return a flat image with every segment at its memory offset"""
        if self.flat:
            return self
        size = max(segment.memory_end for segment in self.segments)
        memory = bytearray(size)
        for segment in self.segments:
            stored = segment.compressed_size if segment.compressed else segment.decompressed_size
            raw = bytes(self._data[segment.file_offset:segment.file_offset + stored])
            if len(raw) != stored:
                raise FormatContractError(f"NSO {segment.name} segment is truncated", container=self.kind.value)
            if segment.compressed:
                try:
                    raw = lz4.block.decompress(raw, uncompressed_size=segment.decompressed_size)
                except lz4.block.LZ4BlockError as e:
                    raise FormatContractError(f"Failed to decompress NSO {segment.name} segment: {e}",
                                              container=self.kind.value)
            memory[segment.memory_offset:segment.memory_offset + len(raw)] = raw
        flat_segments = [
            replace(segment, file_offset=segment.memory_offset, compressed=False,
                    compressed_size=segment.decompressed_size)
            for segment in self.segments
        ]
        logger.debug(f"NSO uncompressed to {size:#x} bytes")
        return NSO(memory, segments=flat_segments, bss_size=self.bss_size)

    # ------------------------------------------------------------------
    # Address translation
    # ------------------------------------------------------------------

    def _require_flat(self) -> None:
        if not self.flat:
            raise ImageAccessError("NSO image must be uncompressed before address translation")

    def map_vatr(self, addr: int) -> int:
        self._require_flat()
        if 0 <= addr < self.length:
            return addr
        raise ImageAccessError(f"Address 0x{addr:x} is outside the NSO image", address=addr)

    def map_rtva(self, addr: int) -> int:
        return addr

    def check_dump(self) -> bool:
        return False

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def _search_section(segment: NsoSegment) -> SearchSection:
        return SearchSection(
            offset=segment.memory_offset,
            offset_end=segment.memory_end,
            address=segment.memory_offset,
            address_end=segment.memory_end,
        )

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        self._require_flat()
        bss_start = self.data_segment.memory_end
        bss = SearchSection(offset=bss_start, offset_end=bss_start,
                            address=bss_start, address_end=bss_start + self.bss_size)
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections(
            [self._search_section(self.text)],
            [self._search_section(self.ro), self._search_section(self.data_segment)],
            [bss],
        )

    def search(self) -> bool:
        self._require_properties("search")
        return False

    def symbol_search(self) -> bool:
        self._require_properties("symbol_search")
        return False
