# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/elf.py - ELF images (Android / Linux libil2cpp.so)

Headers, segments, sections, dynamic tags, dynamic symbols and dynamic
relocations are read with pyelftools. Memory dumps are repaired in place
(program headers and dynamic pointers rewritten for the dump base) and
then re-parsed.
"""

import io
import struct
from dataclasses import dataclass
from typing import Dict, List, Optional

from capstone import Cs, CS_ARCH_ARM, CS_MODE_ARM, CsError
from elftools.common.exceptions import ELFError
from elftools.construct.core import ConstructError
from elftools.elf.elffile import ELFFile

from ..core.exceptions import FormatContractError, ImageAccessError
from ..core.logging import get_logger
from ..core.utils import search_pattern
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .structures import ContainerKind

logger = get_logger("formats.elf")

PF_X = 1

# Dynamic tags holding addresses, rebased when a dump is repaired
_DT_POINTER_TAGS = {
    3,   # DT_PLTGOT
    4,   # DT_HASH
    5,   # DT_STRTAB
    6,   # DT_SYMTAB
    7,   # DT_RELA
    12,  # DT_INIT
    13,  # DT_FINI
    17,  # DT_REL
    23,  # DT_JMPREL
    25,  # DT_INIT_ARRAY
    26,  # DT_FINI_ARRAY
}

R_386_32 = 1
R_ARM_ABS32 = 2
R_X86_64_64 = 1
R_X86_64_RELATIVE = 8
R_AARCH64_ABS64 = 257
R_AARCH64_RELATIVE = 1027

EM_386 = 'EM_386'
EM_ARM = 'EM_ARM'
EM_AARCH64 = 'EM_AARCH64'
EM_X86_64 = 'EM_X86_64'

_ELF_ERRORS = (ELFError, ConstructError, ValueError, struct.error)


@dataclass
class ElfSegment:
    p_type: str
    p_flags: int
    p_offset: int
    p_vaddr: int
    p_filesz: int
    p_memsz: int


class ElfBase(BinaryImage):
    """Shared ELF32/ELF64 behaviour"""

    supports_reload = True
    prefer_exec_code_search = True

    # ARM32 signature around the registration call
    ARM_FEATURE_BYTES = "? 10 ? E7 ? 00 ? E0 ? 20 ? E0"

    elf_class = 64

    def __init__(self, data) -> None:
        super().__init__(data)
        self.is_32bit = self.elf_class == 32
        self.program_segments: List[ElfSegment] = []
        self.dynamic: Dict[str, int] = {}
        self.symbols: Dict[str, int] = {}
        self._load()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _open(self) -> ELFFile:
        try:
            return ELFFile(io.BytesIO(bytes(self._data)))
        except _ELF_ERRORS as e:
            raise FormatContractError(f"Malformed ELF header: {e}", container=self.kind.value)

    def _load(self) -> None:
        self._elf = self._open()
        self.machine = self._elf['e_machine']
        self.program_segments = [
            ElfSegment(
                p_type=seg['p_type'],
                p_flags=seg['p_flags'],
                p_offset=seg['p_offset'],
                p_vaddr=seg['p_vaddr'],
                p_filesz=seg['p_filesz'],
                p_memsz=seg['p_memsz'],
            )
            for seg in self._elf.iter_segments()
        ]
        self._dynamic_segment = next(
            (seg for seg in self._elf.iter_segments() if seg['p_type'] == 'PT_DYNAMIC'), None)

        self.dynamic = {}
        self.symbols = {}
        self._symbol_list = []
        if self._dynamic_segment is None:
            logger.warning("No PT_DYNAMIC segment, symbol search unavailable")
            return

        try:
            for tag in self._dynamic_segment.iter_tags():
                self.dynamic.setdefault(tag.entry.d_tag, tag.entry.d_val)
            self._symbol_list = list(self._dynamic_segment.iter_symbols())
        except _ELF_ERRORS as e:
            logger.warning(f"Failed to read dynamic symbols: {e}")
        for symbol in self._symbol_list:
            if symbol.name:
                self.symbols.setdefault(symbol.name, symbol['st_value'])

        if not self.is_dumped:
            self._apply_relocations()
            if self._check_protection():
                logger.error("ERROR: This file may be protected.")

    def _apply_relocations(self) -> None:
        try:
            tables = self._dynamic_segment.get_relocation_tables()
        except _ELF_ERRORS as e:
            logger.warning(f"Failed to read relocation tables: {e}")
            return
        if not tables:
            return

        logger.info("Applying relocations...")
        applied = 0
        for table in tables.values():
            try:
                relocations = list(table.iter_relocations())
            except _ELF_ERRORS as e:
                logger.warning(f"Failed to read relocations: {e}")
                continue
            for rel in relocations:
                value = self._relocation_value(rel)
                if value is None:
                    continue
                try:
                    self.write_uint_ptr(value, self.map_vatr(rel['r_offset']))
                    applied += 1
                except ImageAccessError:
                    continue
        logger.debug(f"{applied} relocations applied")

    def _relocation_value(self, rel) -> Optional[int]:
        rel_type = rel['r_info_type']
        sym_index = rel['r_info_sym']
        addend = rel['r_addend'] if rel.is_RELA() else 0

        def symbol_value() -> Optional[int]:
            if sym_index < len(self._symbol_list):
                return self._symbol_list[sym_index]['st_value'] + addend
            return None

        if self.is_32bit:
            if (self.machine == EM_386 and rel_type == R_386_32) or \
                    (self.machine == EM_ARM and rel_type == R_ARM_ABS32):
                return symbol_value()
            return None
        if self.machine == EM_AARCH64:
            if rel_type == R_AARCH64_ABS64:
                return symbol_value()
            if rel_type == R_AARCH64_RELATIVE:
                return addend
        elif self.machine == EM_X86_64:
            if rel_type == R_X86_64_64:
                return symbol_value()
            if rel_type == R_X86_64_RELATIVE:
                return addend
        return None

    def _check_protection(self) -> bool:
        if 'DT_INIT' in self.dynamic:
            logger.warning("WARNING: find .init_proc")
            return True
        if 'JNI_OnLoad' in self.symbols:
            logger.warning("WARNING: find JNI_OnLoad")
            return True
        try:
            for section in self._elf.iter_sections():
                if section['sh_type'] == 'SHT_LOUSER':
                    logger.warning("WARNING: find SHT_LOUSER section")
                    return True
        except _ELF_ERRORS:
            return False
        return False

    # ------------------------------------------------------------------
    # Dumps
    # ------------------------------------------------------------------

    def check_dump(self) -> bool:
        """A dump has no usable section headers, so no .text section"""
        try:
            names = [section.name for section in self._elf.iter_sections()]
        except _ELF_ERRORS:
            return True
        return ".text" not in names

    def reload(self) -> None:
        """Repair program headers and dynamic pointers for image_base, then re-parse"""
        self._fix_program_segments()
        self._fix_dynamic_section()
        self._load()

    def _fix_program_segments(self) -> None:
        phoff = self._elf['e_phoff']
        phentsize = self._elf['e_phentsize']
        for i, segment in enumerate(self.program_segments):
            segment.p_offset = segment.p_vaddr
            segment.p_vaddr += self.image_base
            segment.p_filesz = segment.p_memsz
            base = phoff + i * phentsize
            if self.is_32bit:
                self.write_u32(segment.p_offset, base + 4)
                self.write_u32(segment.p_vaddr, base + 8)
                self.write_u32(segment.p_filesz, base + 16)
            else:
                self.write_u64(segment.p_offset, base + 8)
                self.write_u64(segment.p_vaddr, base + 16)
                self.write_u64(segment.p_filesz, base + 32)

    def _fix_dynamic_section(self) -> None:
        dynamic = next((s for s in self.program_segments if s.p_type == 'PT_DYNAMIC'), None)
        if dynamic is None:
            return
        entry_size = 8 if self.is_32bit else 16
        for position in range(dynamic.p_offset, dynamic.p_offset + dynamic.p_filesz, entry_size):
            if position + entry_size > self.length:
                break
            d_tag = self.read_int_ptr(position)
            if d_tag == 0:
                break
            if d_tag in _DT_POINTER_TAGS:
                value = self.read_uint_ptr(position + entry_size // 2)
                self.write_uint_ptr(value + self.image_base, position + entry_size // 2)

    # ------------------------------------------------------------------
    # Address translation
    # ------------------------------------------------------------------

    def map_vatr(self, addr: int) -> int:
        for segment in self.program_segments:
            if segment.p_vaddr <= addr <= segment.p_vaddr + segment.p_memsz:
                return addr - segment.p_vaddr + segment.p_offset
        raise ImageAccessError(f"Address 0x{addr:x} is not mapped by any segment", address=addr)

    def map_rtva(self, addr: int) -> int:
        for segment in self.program_segments:
            if segment.p_offset <= addr <= segment.p_offset + segment.p_filesz:
                return addr - segment.p_offset + segment.p_vaddr
        return 0

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        exec_sections = []
        data_sections = []
        for segment in self.program_segments:
            if segment.p_memsz == 0:
                continue
            section = SearchSection(
                offset=segment.p_offset,
                offset_end=segment.p_offset + segment.p_filesz,
                address=segment.p_vaddr,
                address_end=segment.p_vaddr + segment.p_memsz,
            )
            if segment.p_flags in (1, 3, 5, 7):
                exec_sections.append(section)
            elif segment.p_flags in (2, 4, 6):
                data_sections.append(section)
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections(exec_sections, data_sections, data_sections)

    def symbol_search(self) -> bool:
        self._require_properties("symbol_search")
        code_registration = self.symbols.get("g_CodeRegistration", 0)
        metadata_registration = self.symbols.get("g_MetadataRegistration", 0)
        if code_registration > 0 and metadata_registration > 0:
            logger.info("Detected Symbol!")
            logger.info(f"CodeRegistration : 0x{code_registration:x}")
            logger.info(f"MetadataRegistration : 0x{metadata_registration:x}")
            self.init(code_registration, metadata_registration)
            return True
        logger.error("ERROR: No symbol is detected")
        return False


class Elf32(ElfBase):
    kind = ContainerKind.ELF32
    elf_class = 32

    @staticmethod
    def is_load_instruction(code: bytes) -> bool:
        """True when the first ARM instruction in `code` is a register load"""
        md = Cs(CS_ARCH_ARM, CS_MODE_ARM)
        try:
            insn = next(md.disasm(bytes(code[:4]), 0), None)
        except CsError:
            return False
        return insn is not None and insn.mnemonic.startswith("ldr")

    def search(self) -> bool:
        """ARM32 signature around the il2cpp_codegen_register call"""
        self._require_properties("search")
        got = self.dynamic.get('DT_PLTGOT')
        if got is None or self.machine != EM_ARM:
            return False

        results = []
        for segment in self.program_segments:
            if segment.p_type != 'PT_LOAD' or not segment.p_flags & PF_X:
                continue
            end = min(segment.p_offset + segment.p_filesz, self.length)
            for offset in search_pattern(self._data, self.ARM_FEATURE_BYTES, segment.p_offset, end):
                if self.is_load_instruction(self._data[offset:offset + 4]):
                    results.append(offset)

        if len(results) != 1:
            return False

        result = results[0]
        if self.version < 24:
            code_registration = (self.read_u32(result + 0x14) + got) & 0xFFFFFFFF
            pointer = (self.read_u32(result + 0x18) + got) & 0xFFFFFFFF
            metadata_registration = self.read_u32(self.map_vatr(pointer))
        else:
            code_registration = (self.read_u32(result + 0x14) + result + 0xC + self.image_base) & 0xFFFFFFFF
            pointer = (self.read_u32(result + 0x10) + result + 0x8) & 0xFFFFFFFF
            metadata_registration = self.read_u32(self.map_vatr(pointer + self.image_base))

        if code_registration == 0 or metadata_registration == 0:
            return False
        logger.info(f"CodeRegistration : 0x{code_registration:x}")
        logger.info(f"MetadataRegistration : 0x{metadata_registration:x}")
        self.init(code_registration, metadata_registration)
        return True


class Elf64(ElfBase):
    kind = ContainerKind.ELF64
    elf_class = 64

    def search(self) -> bool:
        """No signature is known for 64-bit code"""
        self._require_properties("search")
        return False
