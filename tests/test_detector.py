import struct

import pytest

from il2cpprecon.core.exceptions import FormatContractError, UnsupportedFormatError
from il2cpprecon.core.requests import SLICE, SliceSelectionRequest
from il2cpprecon.formats import ContainerKind, FormatDetector, WebAssemblyMemory, classify

from support import ELF32_BYTES, ELF64_BYTES, PE_BYTES, ScriptedImage

MH_MAGIC_LE = struct.pack('<I', 0xFEEDFACE)
MH_MAGIC_64_LE = struct.pack('<I', 0xFEEDFACF)


def build_fat(*slices):
    """Big-endian fat header followed by each slice at a 0x100 boundary"""
    header = struct.pack('>II', 0xCAFEBABE, len(slices))
    offset = 0x100
    body = bytearray()
    arches = b""
    for data in slices:
        arches += struct.pack('>iiIII', 12, 0, offset, len(data), 8)
        body += bytes(offset - 0x100 - len(body)) + data
        offset += 0x100
    blob = bytearray(header + arches)
    blob += bytes(0x100 - len(blob))
    return bytes(blob + body)


def build_wasm():
    segment = bytes([1, 0, 0x41, 0x80, 0x08, 0x0B, 4]) + b"abcd"
    return b"\x00asm\x01\x00\x00\x00" + bytes([11, len(segment)]) + segment


def drive(generator, *answers):
    """Run a detector generator to completion, returning (requests, image)"""
    requests = []
    answers = list(answers)
    try:
        request = next(generator)
        while True:
            requests.append(request)
            request = generator.send(answers.pop(0))
    except StopIteration as stop:
        return requests, stop.value


def recording_detector():
    seen = []

    def factory(kind):
        def create(data):
            seen.append((kind, bytes(data)))
            return ScriptedImage(data, kind=kind)
        return create

    factories = {kind: factory(kind) for kind in ContainerKind if kind is not ContainerKind.FAT_MACHO}
    return FormatDetector(factories), seen


@pytest.mark.parametrize("data, kind", [
    (b"\x00asm\x01\x00\x00\x00", ContainerKind.WEBASSEMBLY),
    (b"NSO0" + bytes(12), ContainerKind.NSO),
    (PE_BYTES, ContainerKind.PE),
    (ELF32_BYTES, ContainerKind.ELF32),
    (ELF64_BYTES, ContainerKind.ELF64),
    (b"\xca\xfe\xba\xbe" + bytes(4), ContainerKind.FAT_MACHO),
    (MH_MAGIC_64_LE + bytes(4), ContainerKind.MACHO64),
    (MH_MAGIC_LE + bytes(4), ContainerKind.MACHO32),
])
def test_magic_table(data, kind):
    assert classify(data) is kind


def test_unknown_magic_is_unsupported():
    with pytest.raises(UnsupportedFormatError) as info:
        classify(b"\x12\x34\x56\x78" + bytes(16))
    assert info.value.magic == 0x78563412


def test_short_input_is_unsupported():
    with pytest.raises(UnsupportedFormatError):
        classify(b"MZ")


def test_detect_uses_factory_for_kind():
    detector, seen = recording_detector()
    requests, image = drive(detector.detect(ELF32_BYTES))
    assert requests == []
    assert image.kind is ContainerKind.ELF32
    assert seen == [(ContainerKind.ELF32, ELF32_BYTES)]


def test_fat_selection_wraps_modulo_slice_count():
    first = MH_MAGIC_LE + b"\x01" * 28
    second = MH_MAGIC_64_LE + b"\x02" * 28
    detector, seen = recording_detector()

    requests, image = drive(detector.detect(build_fat(first, second)), 3)

    assert len(requests) == 1
    assert isinstance(requests[0], SliceSelectionRequest)
    assert requests[0].key == SLICE
    assert requests[0].options == ["1.32bit", "2.64bit"]
    assert image.kind is ContainerKind.MACHO64
    assert seen == [(ContainerKind.MACHO64, second)]


def test_fat_selection_first_slice():
    first = MH_MAGIC_LE + b"\x01" * 28
    second = MH_MAGIC_64_LE + b"\x02" * 28
    detector, seen = recording_detector()

    _, image = drive(detector.detect(build_fat(first, second)), 0)

    assert image.kind is ContainerKind.MACHO32
    assert seen == [(ContainerKind.MACHO32, first)]


def test_fat_slice_must_be_macho():
    detector, seen = recording_detector()
    generator = detector.detect(build_fat(MH_MAGIC_LE + bytes(28), ELF64_BYTES))
    next(generator)
    with pytest.raises(FormatContractError):
        generator.send(1)
    assert seen == []


def test_webassembly_is_loaded_as_linear_memory():
    _, image = drive(FormatDetector().detect(build_wasm()))
    assert isinstance(image, WebAssemblyMemory)
    assert image.is_32bit
    assert image.length == 1028
    assert image.read_bytes(4, 1024) == b"abcd"
    assert image.map_vatr(1024) == 1024
