# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/detector.py - Container dispatch

Maps the leading magic number of an il2cpp binary to the image class that
handles it. Fat Mach-O files are unwrapped into one thin slice chosen by
the operator; the fat container itself never leaves this module.
"""

import struct
from typing import Callable, Dict, Generator, Optional

from ..core.exceptions import FormatContractError, UnsupportedFormatError
from ..core.logging import get_logger
from ..core.requests import InputRequest, SliceSelectionRequest
from .base import BinaryImage
from .elf import Elf32, Elf64
from .macho import MachoFat, Macho32, Macho64, MH_MAGIC, MH_MAGIC_64, FAT_MAGIC, FAT_CIGAM
from .nso import NSO, NSO_MAGIC
from .pe import PE
from .structures import ContainerKind
from .wasm import WebAssembly, WASM_MAGIC

logger = get_logger("formats.detector")

PE_MAGIC = 0x905A4D
ELF_MAGIC = 0x464C457F
ELFCLASS64 = 2

ImageFactory = Callable[[bytes], BinaryImage]

MAGIC_TABLE: Dict[int, ContainerKind] = {
    WASM_MAGIC: ContainerKind.WEBASSEMBLY,
    NSO_MAGIC: ContainerKind.NSO,
    PE_MAGIC: ContainerKind.PE,
    FAT_MAGIC: ContainerKind.FAT_MACHO,
    FAT_CIGAM: ContainerKind.FAT_MACHO,
    MH_MAGIC_64: ContainerKind.MACHO64,
    MH_MAGIC: ContainerKind.MACHO32,
}

DEFAULT_FACTORIES: Dict[ContainerKind, ImageFactory] = {
    ContainerKind.WEBASSEMBLY: lambda data: WebAssembly(data).create_memory(),
    ContainerKind.NSO: lambda data: NSO(data).uncompress(),
    ContainerKind.PE: PE,
    ContainerKind.ELF32: Elf32,
    ContainerKind.ELF64: Elf64,
    ContainerKind.MACHO64: Macho64,
    ContainerKind.MACHO32: Macho32,
}


def classify(data: bytes) -> ContainerKind:
    """
    Identify the container from its leading 32-bit little-endian magic

    Raises:
        UnsupportedFormatError: unknown magic or fewer than 4 bytes
    """
    if len(data) < 4:
        raise UnsupportedFormatError("ERROR: il2cpp file not supported. (file too small)")
    magic = struct.unpack_from('<I', data, 0)[0]
    if magic == ELF_MAGIC:
        if len(data) > 4 and data[4] == ELFCLASS64:
            return ContainerKind.ELF64
        return ContainerKind.ELF32
    kind = MAGIC_TABLE.get(magic)
    if kind is None:
        raise UnsupportedFormatError(f"ERROR: il2cpp file not supported. (magic 0x{magic:08X})", magic=magic)
    return kind


class FormatDetector:
    """
    Builds the binary image for an il2cpp file

    Factories are looked up per container kind and can be replaced, e.g.
    to plug in a custom loader or a test double.
    """

    def __init__(self, factories: Optional[Dict[ContainerKind, ImageFactory]] = None) -> None:
        self.factories = dict(DEFAULT_FACTORIES)
        if factories:
            self.factories.update(factories)

    def detect(self, data: bytes, allow_fat: bool = True) -> Generator[InputRequest, object, BinaryImage]:
        """
        Generator returning the image; yields a SliceSelectionRequest for fat Mach-O

        The answer sent back is a zero-based slice index, taken modulo the
        number of slices.
        """
        kind = classify(data)
        logger.debug(f"Container: {kind.value}")

        if kind is ContainerKind.FAT_MACHO:
            if not allow_fat:
                raise FormatContractError("Fat Mach-O nested inside a fat Mach-O", container=kind.value)
            fat = MachoFat(data)
            if not fat.fats:
                raise FormatContractError("Fat Mach-O without slices", container=kind.value)
            options = []
            for fat_arch in fat.fats:
                option = f"{fat_arch.index + 1}.{'64bit' if fat_arch.is_64bit else '32bit'}"
                logger.info(option)
                options.append(option)
            answer = yield SliceSelectionRequest(options=options)
            index = int(answer) % len(fat.fats)
            selected = fat.fats[index]
            if selected.magic not in (MH_MAGIC, MH_MAGIC_64):
                raise FormatContractError(
                    f"Fat slice {index + 1} is not a Mach-O image (magic 0x{selected.magic:08X})",
                    container=kind.value
                )
            image = yield from self.detect(fat.get_macho(index), allow_fat=False)
            return image

        factory = self.factories.get(kind)
        if factory is None:
            raise UnsupportedFormatError(f"ERROR: no loader registered for {kind.value}")
        return factory(data)
