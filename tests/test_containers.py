import struct

import pytest

from il2cpprecon.core.exceptions import FormatContractError, ImageAccessError
from il2cpprecon.formats.elf import Elf32, Elf64
from il2cpprecon.formats.macho import MH_MAGIC_64, S_CODE, Macho64, MachoFat
from il2cpprecon.formats.pe import PE
from il2cpprecon.pipeline import LocatorState, RecoverySession, ScriptedResponder

from support import build_metadata, make_config


# =============================================================================
# ELF
# =============================================================================

def build_elf64(symbols=(), load_filesz=0x800, with_text=False):
    """
    AArch64 shared object: one RX PT_LOAD over the whole file, a PT_DYNAMIC
    at 0x200 (DT_SYMTAB 0x300, DT_STRTAB 0x360), no hash table
    """
    image = bytearray(0x800)
    image[:7] = b"\x7fELF\x02\x01\x01"
    shoff, shnum, shstrndx = (0x700, 3, 2) if with_text else (0, 0, 0)
    struct.pack_into('<HHIQQQIHHHHHH', image, 16,
                     3, 183, 1, 0, 0x40, shoff, 0, 64, 56, 2, 64, shnum, shstrndx)
    struct.pack_into('<IIQQQQQQ', image, 0x40, 1, 5, 0, 0, 0, load_filesz, 0x800, 0x1000)
    struct.pack_into('<IIQQQQQQ', image, 0x78, 2, 6, 0x200, 0x200, 0x200, 0x50, 0x50, 8)

    names = b"\x00" + b"".join(name.encode() + b"\x00" for name, _ in symbols)
    tags = [(6, 0x300), (5, 0x360), (11, 24), (10, len(names)), (0, 0)]
    for i, (tag, value) in enumerate(tags):
        struct.pack_into('<qQ', image, 0x200 + i * 16, tag, value)
    image[0x360:0x360 + len(names)] = names
    name_offset = 1
    for i, (name, value) in enumerate(symbols, start=1):
        struct.pack_into('<IBBHQQ', image, 0x300 + i * 24, name_offset, 0x11, 0, 1, value, 8)
        name_offset += len(name) + 1

    if with_text:
        shstrtab = b"\x00.text\x00.shstrtab\x00"
        image[0x6C0:0x6C0 + len(shstrtab)] = shstrtab
        struct.pack_into('<IIQQQQIIQQ', image, 0x740, 1, 1, 6, 0x100, 0x100, 0x10, 0, 0, 4, 0)
        struct.pack_into('<IIQQQQIIQQ', image, 0x780, 7, 3, 0, 0, 0x6C0, len(shstrtab), 0, 0, 1, 0)
    return bytes(image)


def build_elf32_arm():
    """
    ARM shared object carrying the registration call sequence at 0x100:
    CodeRegistration resolves to 0x500, the MetadataRegistration slot
    at 0x480 holds 0x600
    """
    image = bytearray(0x800)
    image[:7] = b"\x7fELF\x01\x01\x01"
    struct.pack_into('<HHIIIIIHHHHHH', image, 16, 3, 40, 1, 0, 0x34, 0, 0x05000000, 52, 32, 2, 40, 0, 0)
    struct.pack_into('<8I', image, 0x34, 1, 0, 0, 0, 0x800, 0x800, 5, 0x1000)
    struct.pack_into('<8I', image, 0x54, 2, 0x200, 0x200, 0x200, 0x18, 0x18, 6, 4)
    struct.pack_into('<iIiIiI', image, 0x200, 3, 0x700, 5, 0x380, 0, 0)

    image[0x100:0x10C] = bytes.fromhex("001091E7 00008FE0 002081E0")
    struct.pack_into('<I', image, 0x110, 0x480 - 0x108)
    struct.pack_into('<I', image, 0x114, 0x500 - 0x100 - 0xC)
    struct.pack_into('<I', image, 0x480, 0x600)
    return bytes(image)


def test_elf64_without_sections_is_a_dump():
    image = Elf64(build_elf64())
    assert image.check_dump()
    assert image.dynamic['DT_STRTAB'] == 0x360


def test_elf64_with_text_section_is_not_a_dump():
    assert not Elf64(build_elf64(with_text=True)).check_dump()


def test_elf64_maps_through_program_segments():
    image = Elf64(build_elf64())
    assert image.map_vatr(0x123) == 0x123
    assert image.map_rtva(0x123) == 0x123
    with pytest.raises(ImageAccessError):
        image.map_vatr(0x900)


def test_elf64_dump_is_reloaded_and_mapped_from_its_base():
    base = 0x7A00000000
    data = build_elf64(symbols=[("il2cpp_init", 0x100)], load_filesz=0x400)
    responder = ScriptedResponder(["7A00000000", "7A00000500", "7A00000600"])

    result = RecoverySession(data, build_metadata(24.0), make_config()).run(responder)

    assert result.success
    assert result.manual
    assert result.history[-1] is LocatorState.RESOLVED
    image = result.image
    assert isinstance(image, Elf64)
    assert image.is_dumped
    assert image.image_base == base
    assert image.map_vatr(0x7A00000100) == 0x100
    assert image.program_segments[0].p_offset == 0
    assert image.program_segments[0].p_filesz == image.program_segments[0].p_memsz == 0x800
    assert image.dynamic['DT_SYMTAB'] == base + 0x300
    assert image.dynamic['DT_STRTAB'] == base + 0x360
    assert image.dynamic['DT_SYMENT'] == 24
    assert image.symbols == {'il2cpp_init': 0x100}
    assert image.code_registration_address == base + 0x500
    assert image.metadata_registration_address == base + 0x600


def test_elf64_symbol_search_uses_dynamic_symbols():
    data = build_elf64(symbols=[("g_CodeRegistration", 0x500), ("g_MetadataRegistration", 0x600)])
    image = Elf64(data)
    image.set_properties(24.0, 0)

    assert not image.search()
    assert image.symbol_search()
    assert image.code_registration_address == 0x500
    assert image.metadata_registration_address == 0x600
    assert image.types == []


def test_elf64_symbol_search_without_symbols():
    image = Elf64(build_elf64(symbols=[("il2cpp_init", 0x100)]))
    image.set_properties(24.0, 0)
    assert not image.symbol_search()


def test_elf32_arm_signature_search():
    image = Elf32(build_elf32_arm())
    assert image.machine == 'EM_ARM'
    assert image.dynamic['DT_PLTGOT'] == 0x700
    image.set_properties(24.0, 0)

    assert image.search()
    assert image.code_registration_address == 0x500
    assert image.metadata_registration_address == 0x600


def test_elf32_signature_needs_pltgot():
    data = bytearray(build_elf32_arm())
    struct.pack_into('<iI', data, 0x200, 1, 0)     # DT_PLTGOT -> DT_NEEDED
    image = Elf32(bytes(data))
    image.set_properties(24.0, 0)
    assert not image.search()


def test_malformed_elf_is_a_contract_error():
    with pytest.raises(FormatContractError):
        Elf64(b"\x7fELF\x03" + bytes(60))


# =============================================================================
# PE
# =============================================================================

PE_IMAGE_BASE = 0x180000000
CODE_CHARACTERISTICS = 0x60000020
DATA_CHARACTERISTICS = 0xC0000040


def build_pe(dumped=False):
    """
    PE32+ with .text at RVA 0x1000 and .data at RVA 0x2000. .data starts
    with an export directory for g_CodeRegistration (0x2100) and
    g_MetadataRegistration (0x2180)
    """
    text_raw, data_raw = (0x1000, 0x2000) if dumped else (0x400, 0x600)
    image = bytearray(data_raw + 0x400)
    image[:2] = b"MZ"
    struct.pack_into('<I', image, 0x3C, 0x80)
    image[0x80:0x84] = b"PE\x00\x00"
    struct.pack_into('<HHIIIHH', image, 0x84, 0x8664, 2, 0, 0, 0, 0xF0, 0x2022)
    struct.pack_into('<HBBIIIIIQIIHHHHHHIIIIHHQQQQII', image, 0x98,
                     0x20B, 14, 0, 0x200, 0x400, 0, 0x1000, 0x1000, PE_IMAGE_BASE,
                     0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0, 0x3000, 0x400, 0, 2, 0x160,
                     0x100000, 0x1000, 0x100000, 0x1000, 0, 16)
    struct.pack_into('<II', image, 0x98 + 112, 0x2000, 0xA0)

    sections = [
        (b".text", 0x200, 0x1000, 0x200, text_raw, CODE_CHARACTERISTICS),
        (b".data", 0x400, 0x2000, 0x400, data_raw, DATA_CHARACTERISTICS),
    ]
    for i, (name, vsize, rva, raw_size, raw, characteristics) in enumerate(sections):
        struct.pack_into('<8sIIIIIIHHI', image, 0x188 + i * 40,
                         name, vsize, rva, raw_size, raw, 0, 0, 0, 0, characteristics)

    def put(rva, blob):
        image[data_raw + rva - 0x2000:data_raw + rva - 0x2000 + len(blob)] = blob

    put(0x2000, struct.pack('<IIHHIIIIIII', 0, 0, 0, 0, 0x2080, 1, 2, 2, 0x2030, 0x2040, 0x2048))
    put(0x2030, struct.pack('<II', 0x2100, 0x2180))
    put(0x2040, struct.pack('<II', 0x2050, 0x2064))
    put(0x2048, struct.pack('<HH', 0, 1))
    put(0x2050, b"g_CodeRegistration\x00")
    put(0x2064, b"g_MetadataRegistration\x00")
    put(0x2080, b"GameAssembly.dll\x00")
    return bytes(image)


def test_pe_file_layout_is_not_a_dump():
    image = PE(build_pe())
    assert not image.is_32bit
    assert image.image_base == PE_IMAGE_BASE
    assert [s.Name.rstrip(b"\x00") for s in image.sections] == [b".text", b".data"]
    assert not image.check_dump()


def test_pe_maps_through_sections():
    image = PE(build_pe())
    assert image.map_vatr(PE_IMAGE_BASE + 0x1010) == 0x410
    assert image.map_vatr(PE_IMAGE_BASE + 0x2010) == 0x610
    assert image.map_rtva(0x610) == PE_IMAGE_BASE + 0x2010
    with pytest.raises(ImageAccessError):
        image.map_vatr(PE_IMAGE_BASE + 0x9000)


def test_pe_memory_layout_is_a_dump():
    image = PE(build_pe(dumped=True))
    assert image.check_dump()

    image.is_dumped = True
    assert image.map_vatr(PE_IMAGE_BASE + 0x1010) == 0x1010
    assert image.map_rtva(0x1010) == PE_IMAGE_BASE + 0x1010
    with pytest.raises(ImageAccessError):
        image.map_vatr(PE_IMAGE_BASE + 0x9000)


def test_pe_exports():
    assert PE(build_pe()).exports() == {
        'g_CodeRegistration': PE_IMAGE_BASE + 0x2100,
        'g_MetadataRegistration': PE_IMAGE_BASE + 0x2180,
    }


def test_pe_symbol_search_uses_exports():
    image = PE(build_pe())
    image.set_properties(24.0, 0)

    assert not image.search()
    assert image.symbol_search()
    assert image.code_registration_address == PE_IMAGE_BASE + 0x2100
    assert image.metadata_registration_address == PE_IMAGE_BASE + 0x2180


def test_pe_section_helper_classifies_by_characteristics():
    image = PE(build_pe())
    image.set_properties(24.0, 0)
    helper = image.get_section_helper(2, 2, 1)
    assert [(s.offset, s.address) for s in helper.exec] == [(0x400, PE_IMAGE_BASE + 0x1000)]
    assert [(s.offset, s.address) for s in helper.data] == [(0x600, PE_IMAGE_BASE + 0x2000)]


# =============================================================================
# Mach-O
# =============================================================================

def _segment(name, vmaddr, size, sections=()):
    command = struct.pack('<II16sQQQQiiII', 0x19, 72 + 80 * len(sections), name,
                          vmaddr, size, vmaddr, size, 7, 7, len(sections), 0)
    for sectname, addr, sect_size, flags in sections:
        command += struct.pack('<16s16sQQIIIIIIII', sectname, name, addr, sect_size, addr, 4, 0, 0, flags, 0, 0, 0)
    return command


def build_macho64():
    """
    arm64 dylib: __TEXT,__text at 0x400, __DATA,__data at 0x1000 and a
    symbol table in __LINKEDIT naming both registration structures
    """
    image = bytearray(0x2000)
    commands = [
        _segment(b"__TEXT", 0, 0x1000, [(b"__text", 0x400, 0x100, S_CODE)]),
        _segment(b"__DATA", 0x1000, 0x800, [(b"__data", 0x1000, 0x200, 0)]),
        _segment(b"__LINKEDIT", 0x1800, 0x800),
    ]
    names = b"\x00_g_CodeRegistration\x00_g_MetadataRegistration\x00"
    commands.append(struct.pack('<6I', 0x2, 24, 0x1800, 2, 0x1900, len(names)))
    blob = b"".join(commands)
    struct.pack_into('<IiiIIIII', image, 0, MH_MAGIC_64, 0x0100000C, 0, 6, len(commands), len(blob), 0, 0)
    image[32:32 + len(blob)] = blob

    struct.pack_into('<IBBHQ', image, 0x1800, 1, 0x0F, 2, 0, 0x1000)
    struct.pack_into('<IBBHQ', image, 0x1810, 21, 0x0F, 2, 0, 0x1100)
    image[0x1900:0x1900 + len(names)] = names
    return bytes(image)


def test_macho64_sections_and_symbols():
    image = Macho64(build_macho64())

    assert not image.is_32bit
    assert [(s.segname, s.sectname) for s in image.sections] == [("__TEXT", "__text"), ("__DATA", "__data")]
    text = image.sections[0]
    assert (text.addr, text.size, text.offset, text.flags) == (0x400, 0x100, 0x400, S_CODE)
    assert image.symbols['_g_CodeRegistration'] == 0x1000
    assert image.symbols['_g_MetadataRegistration'] == 0x1100
    assert not image.check_dump()


def test_macho64_maps_through_sections():
    image = Macho64(build_macho64())
    assert image.map_vatr(0x1010) == 0x1010
    assert image.map_rtva(0x410) == 0x410
    with pytest.raises(ImageAccessError):
        image.map_vatr(0x1F00)


def test_macho64_symbol_search():
    image = Macho64(build_macho64())
    image.set_properties(24.0, 0)

    helper = image.get_section_helper(2, 2, 1)
    assert [s.address for s in helper.exec] == [0x400]
    assert [s.address for s in helper.data] == [0x1000]
    assert image.symbol_search()
    assert image.code_registration_address == 0x1000
    assert image.metadata_registration_address == 0x1100


def test_macho64_rejects_other_magic():
    with pytest.raises(FormatContractError):
        Macho64(struct.pack('<I', 0xFEEDFACE) + bytes(60))


def test_fat_slices_are_cut_from_the_header():
    thin = build_macho64()
    header = struct.pack('>II', 0xCAFEBABE, 2)
    header += struct.pack('>iiIII', 12, 0, 0x1000, 0x40, 12)
    header += struct.pack('>iiIII', 0x0100000C, 0, 0x2000, len(thin), 12)
    data = header + bytes(0x1000 - len(header))
    data += struct.pack('<I', 0xFEEDFACE) + bytes(0x1000 - 4)
    data += thin

    fat = MachoFat(data)

    assert [(f.offset, f.size, f.is_64bit) for f in fat.fats] == [(0x1000, 0x40, False), (0x2000, len(thin), True)]
    assert fat.get_macho(1) == thin
    assert Macho64(fat.get_macho(1)).symbols['_g_CodeRegistration'] == 0x1000


def test_fat_slice_outside_the_file():
    header = struct.pack('>II', 0xCAFEBABE, 1) + struct.pack('>iiIII', 12, 0, 0x4000, 0x40, 12)
    with pytest.raises(FormatContractError):
        MachoFat(header + bytes(0x40))
