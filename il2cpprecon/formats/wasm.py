# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/wasm.py - WebAssembly modules (Unity WebGL builds)

Only the data section matters: active data segments are copied into a
linear memory image whose addresses equal raw offsets. Function pointers
in WebAssembly are table indices, so the "executable" range is
[0, method count].
"""

from dataclasses import dataclass
from typing import List, Tuple

from ..core.exceptions import FormatContractError, ImageAccessError
from ..core.logging import get_logger
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .structures import ContainerKind

logger = get_logger("formats.wasm")

WASM_MAGIC = 0x6D736100
DATA_SECTION_ID = 11
OP_I32_CONST = 0x41
OP_END = 0x0B

# Static data of Emscripten builds starts at 1024
STATIC_BASE = 1024


@dataclass
class DataSegment:
    offset: int
    data: bytes


def _read_uleb(buf: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(buf):
            raise FormatContractError("Truncated LEB128 value", container=ContainerKind.WEBASSEMBLY.value)
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return result, pos


def _read_sleb(buf: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(buf):
            raise FormatContractError("Truncated LEB128 value", container=ContainerKind.WEBASSEMBLY.value)
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            if byte & 0x40:
                result -= 1 << shift
            return result, pos


class WebAssembly:
    """WebAssembly module, parsed for its data section"""

    kind = ContainerKind.WEBASSEMBLY

    def __init__(self, data) -> None:
        self.data = bytes(data)
        if len(self.data) < 8:
            raise FormatContractError("Truncated WebAssembly header", container=self.kind.value)
        self.segments: List[DataSegment] = []
        pos = 8
        while pos < len(self.data):
            section_id = self.data[pos]
            size, pos = _read_uleb(self.data, pos + 1)
            if section_id == DATA_SECTION_ID:
                self._read_data_section(pos, pos + size)
            pos += size

    def _read_data_section(self, pos: int, end: int) -> None:
        count, pos = _read_uleb(self.data, pos)
        for _ in range(count):
            flags, pos = _read_uleb(self.data, pos)
            if flags == 1:
                # Passive segment, not placed in memory
                size, pos = _read_uleb(self.data, pos)
                pos += size
                continue
            if flags == 2:
                _memory_index, pos = _read_uleb(self.data, pos)
            if self.data[pos] != OP_I32_CONST:
                raise FormatContractError(f"Unsupported data segment offset opcode 0x{self.data[pos]:02X}",
                                          container=self.kind.value)
            offset, pos = _read_sleb(self.data, pos + 1)
            if self.data[pos] != OP_END:
                raise FormatContractError("Data segment offset expression is not terminated",
                                          container=self.kind.value)
            size, pos = _read_uleb(self.data, pos + 1)
            if pos + size > end:
                raise FormatContractError("Data segment overruns the data section", container=self.kind.value)
            self.segments.append(DataSegment(offset, self.data[pos:pos + size]))
            pos += size

    def create_memory(self) -> 'WebAssemblyMemory':
        """Linear memory holding every active data segment"""
        size = max((segment.offset + len(segment.data) for segment in self.segments), default=0)
        memory = bytearray(size)
        for segment in self.segments:
            memory[segment.offset:segment.offset + len(segment.data)] = segment.data
        logger.debug(f"WebAssembly memory: {len(self.segments)} data segments, {size:#x} bytes")
        return WebAssemblyMemory(memory, bss_start=size)


class WebAssemblyMemory(BinaryImage):
    """Linear memory of a WebAssembly module"""

    kind = ContainerKind.WEBASSEMBLY

    def __init__(self, data, bss_start: int = 0) -> None:
        super().__init__(data)
        self.is_32bit = True
        self.bss_start = bss_start or self.length

    def map_vatr(self, addr: int) -> int:
        if 0 <= addr < self.length:
            return addr
        raise ImageAccessError(f"Address 0x{addr:x} is outside linear memory", address=addr)

    def map_rtva(self, addr: int) -> int:
        return addr

    def check_dump(self) -> bool:
        return False

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        exec_section = SearchSection(offset=0, offset_end=method_count, address=0, address_end=method_count)
        data_section = SearchSection(offset=STATIC_BASE, offset_end=self.length,
                                     address=STATIC_BASE, address_end=self.length)
        bss_section = SearchSection(offset=self.bss_start, offset_end=0xFFFFFFFF,
                                    address=self.bss_start, address_end=0xFFFFFFFF)
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections([exec_section], [data_section], [bss_section])

    def search(self) -> bool:
        self._require_properties("search")
        return False

    def symbol_search(self) -> bool:
        self._require_properties("symbol_search")
        return False
