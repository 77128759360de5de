# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/pe.py - PE images (Windows GameAssembly.dll)
"""

from typing import Dict, List

import pefile

from ..core.exceptions import FormatContractError, ImageAccessError
from ..core.logging import get_logger
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .structures import ContainerKind

logger = get_logger("formats.pe")

# Section characteristics
CODE_SECTION = 0x60000020           # CNT_CODE | MEM_EXECUTE | MEM_READ
RDATA_SECTION = 0x40000040          # CNT_INITIALIZED_DATA | MEM_READ
DATA_SECTION = 0xC0000040           # CNT_INITIALIZED_DATA | MEM_READ | MEM_WRITE


class PE(BinaryImage):
    """Portable Executable image parsed with pefile"""

    kind = ContainerKind.PE

    def __init__(self, data) -> None:
        super().__init__(data)
        try:
            self.pe = pefile.PE(data=bytes(self._data), fast_load=True)
        except pefile.PEFormatError as e:
            raise FormatContractError(f"Malformed PE file: {e}", container=self.kind.value)

        self.is_32bit = self.pe.OPTIONAL_HEADER.Magic == pefile.OPTIONAL_HEADER_MAGIC_PE
        self.image_base = self.pe.OPTIONAL_HEADER.ImageBase
        self.sections = list(self.pe.sections)

    # ------------------------------------------------------------------
    # Dumps
    # ------------------------------------------------------------------

    def check_dump(self) -> bool:
        """A dump is laid out in memory order: every raw offset equals its RVA"""
        sections = [s for s in self.sections if s.SizeOfRawData or s.Misc_VirtualSize]
        if not sections:
            return False
        return all(s.PointerToRawData == s.VirtualAddress for s in sections)

    # ------------------------------------------------------------------
    # Address translation
    # ------------------------------------------------------------------

    def map_vatr(self, addr: int) -> int:
        rva = addr - self.image_base
        if self.is_dumped:
            if 0 <= rva < self.length:
                return rva
            raise ImageAccessError(f"Address 0x{addr:x} is outside the dumped image", address=addr)
        for section in self.sections:
            start = section.VirtualAddress
            if start <= rva <= start + max(section.Misc_VirtualSize, section.SizeOfRawData):
                return rva - start + section.PointerToRawData
        raise ImageAccessError(f"Address 0x{addr:x} is not mapped by any section", address=addr)

    def map_rtva(self, addr: int) -> int:
        if self.is_dumped:
            return addr + self.image_base
        for section in self.sections:
            start = section.PointerToRawData
            if start <= addr <= start + section.SizeOfRawData:
                return addr - start + section.VirtualAddress + self.image_base
        return 0

    def get_rva(self, pointer: int) -> int:
        return pointer - self.image_base

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _search_section(self, section) -> SearchSection:
        if self.is_dumped:
            offset, size = section.VirtualAddress, section.Misc_VirtualSize
        else:
            offset, size = section.PointerToRawData, section.SizeOfRawData
        return SearchSection(
            offset=offset,
            offset_end=offset + size,
            address=section.VirtualAddress + self.image_base,
            address_end=section.VirtualAddress + section.Misc_VirtualSize + self.image_base,
        )

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        exec_sections: List[SearchSection] = []
        data_sections: List[SearchSection] = []
        for section in self.sections:
            if section.Characteristics == CODE_SECTION:
                exec_sections.append(self._search_section(section))
            elif section.Characteristics in (RDATA_SECTION, DATA_SECTION):
                data_sections.append(self._search_section(section))
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections(exec_sections, data_sections, data_sections)

    def search(self) -> bool:
        """No signature is known for PE images"""
        self._require_properties("search")
        return False

    def exports(self) -> Dict[str, int]:
        """Exported symbol name -> virtual address"""
        self.pe.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY['IMAGE_DIRECTORY_ENTRY_EXPORT']])
        result = {}
        if hasattr(self.pe, 'DIRECTORY_ENTRY_EXPORT'):
            for symbol in self.pe.DIRECTORY_ENTRY_EXPORT.symbols:
                if symbol.name:
                    name = symbol.name.decode('utf-8', errors='ignore')
                    result[name] = self.image_base + symbol.address
        return result

    def symbol_search(self) -> bool:
        self._require_properties("symbol_search")
        exports = self.exports()
        code_registration = exports.get("g_CodeRegistration", 0)
        metadata_registration = exports.get("g_MetadataRegistration", 0)
        if code_registration and metadata_registration:
            logger.info("Detected Symbol!")
            logger.info(f"CodeRegistration : 0x{code_registration:x}")
            logger.info(f"MetadataRegistration : 0x{metadata_registration:x}")
            self.init(code_registration, metadata_registration)
            return True
        logger.error("ERROR: No symbol is detected")
        return False
