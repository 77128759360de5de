# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/macho.py - Mach-O images (iOS / macOS UnityFramework)

Thin images are parsed with LIEF. The fat header is read directly: the
detector hands each slice's raw bytes back to the dispatch table.
"""

import struct
from dataclasses import dataclass
from typing import Dict, List

import lief

from ..core.exceptions import FormatContractError, ImageAccessError
from ..core.logging import get_logger
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .structures import ContainerKind

logger = get_logger("formats.macho")

MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF
FAT_MAGIC = 0xCAFEBABE
FAT_CIGAM = 0xBEBAFECA

S_ZEROFILL = 0x1
S_CODE = 0x80000400     # S_ATTR_PURE_INSTRUCTIONS | S_ATTR_SOME_INSTRUCTIONS

_DATA_SECTION_NAMES = ("__const", "__cstring", "__data")


@dataclass
class MachoSection:
    sectname: str
    segname: str
    addr: int
    size: int
    offset: int
    flags: int


@dataclass
class FatArch:
    index: int
    offset: int
    size: int
    magic: int

    @property
    def is_64bit(self) -> bool:
        return self.magic == MH_MAGIC_64


class MachoBase(BinaryImage):
    """Thin Mach-O image"""

    magic = MH_MAGIC_64

    def __init__(self, data) -> None:
        super().__init__(data)
        self.is_32bit = self.magic == MH_MAGIC
        self.sections: List[MachoSection] = []
        self.symbols: Dict[str, int] = {}

        magic = self.read_u32(0) if self.length >= 4 else 0
        if magic != self.magic:
            raise FormatContractError(f"Unexpected Mach-O magic 0x{magic:08X}", container=self.kind.value)
        binaries = lief.MachO.parse(list(self._data))
        if binaries is None or binaries.size == 0:
            raise FormatContractError("Malformed Mach-O load commands", container=self.kind.value)
        self._load(binaries.at(0))

    def _load(self, binary) -> None:
        for section in binary.sections:
            # Raw section flags: type in the low byte, attributes above it
            flags = int(section.type) | int(section.flags)
            self.sections.append(MachoSection(section.name, section.segment_name, section.virtual_address,
                                              section.size, section.offset, flags))
        for symbol in binary.symbols:
            if symbol.name:
                self.symbols.setdefault(symbol.name, symbol.value)
        if binary.has_encryption_info and binary.encryption_info.crypt_id != 0:
            logger.error("ERROR: This Mach-O executable is encrypted and cannot be processed.")

    # ------------------------------------------------------------------
    # Address translation
    # ------------------------------------------------------------------

    def map_vatr(self, addr: int) -> int:
        for section in self.sections:
            if section.addr <= addr <= section.addr + section.size:
                if section.sectname == "__bss":
                    raise ImageAccessError(f"Address 0x{addr:x} is in __bss", address=addr)
                return addr - section.addr + section.offset
        raise ImageAccessError(f"Address 0x{addr:x} is not mapped by any section", address=addr)

    def map_rtva(self, addr: int) -> int:
        for section in self.sections:
            if section.offset <= addr <= section.offset + section.size and section.flags != S_ZEROFILL:
                return addr - section.offset + section.addr
        return 0

    def check_dump(self) -> bool:
        return False

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def _search_section(section: MachoSection) -> SearchSection:
        return SearchSection(
            offset=section.offset,
            offset_end=section.offset + section.size,
            address=section.addr,
            address_end=section.addr + section.size,
        )

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        data = [self._search_section(s) for s in self.sections if s.sectname in _DATA_SECTION_NAMES]
        code = [self._search_section(s) for s in self.sections if s.flags == S_CODE]
        bss = [self._search_section(s) for s in self.sections if s.flags == S_ZEROFILL]
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections(code, data, bss)

    def search(self) -> bool:
        """No signature is known for Mach-O images"""
        self._require_properties("search")
        return False

    def symbol_search(self) -> bool:
        self._require_properties("symbol_search")
        code_registration = self.symbols.get("_g_CodeRegistration", 0)
        metadata_registration = self.symbols.get("_g_MetadataRegistration", 0)
        if code_registration and metadata_registration:
            logger.info("Detected Symbol!")
            logger.info(f"CodeRegistration : 0x{code_registration:x}")
            logger.info(f"MetadataRegistration : 0x{metadata_registration:x}")
            self.init(code_registration, metadata_registration)
            return True
        logger.error("ERROR: No symbol is detected")
        return False


class Macho64(MachoBase):
    kind = ContainerKind.MACHO64
    magic = MH_MAGIC_64


class Macho32(MachoBase):
    kind = ContainerKind.MACHO32
    magic = MH_MAGIC


class MachoFat:
    """Universal binary: a list of thin slices"""

    def __init__(self, data) -> None:
        self.data = bytes(data)
        if len(self.data) < 8:
            raise FormatContractError("Truncated fat header", container=ContainerKind.FAT_MACHO.value)
        magic = struct.unpack_from('<I', self.data, 0)[0]
        # The fat header is big-endian on disk
        endian = '>' if magic == FAT_CIGAM else '<'
        nfat_arch = struct.unpack_from(endian + 'I', self.data, 4)[0]

        self.fats: List[FatArch] = []
        for i in range(nfat_arch):
            base = 8 + i * 20
            if base + 20 > len(self.data):
                raise FormatContractError("Truncated fat_arch table", container=ContainerKind.FAT_MACHO.value)
            _cputype, _cpusubtype, offset, size, _align = struct.unpack_from(endian + 'iiIII', self.data, base)
            if offset + 4 > len(self.data):
                raise FormatContractError(f"Fat slice {i} lies outside the file",
                                          container=ContainerKind.FAT_MACHO.value)
            slice_magic = struct.unpack_from('<I', self.data, offset)[0]
            self.fats.append(FatArch(i, offset, size, slice_magic))

    def get_macho(self, index: int) -> bytes:
        fat = self.fats[index]
        return self.data[fat.offset:fat.offset + fat.size]
