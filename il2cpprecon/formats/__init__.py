# -*- coding: utf-8 -*-
"""
il2cpprecon/formats - Executable containers

    - Container dispatch (magic number -> image)
    - Binary image abstraction and counts-based search
    - ELF, PE, Mach-O, NSO and WebAssembly variants
"""

from .structures import (
    ContainerKind,
    Il2CppCodeRegistration,
    Il2CppMetadataRegistration,
    Il2CppCodeGenModule,
    Il2CppTypeRecord,
)
from .base import BinaryImage
from .section_helper import SectionHelper, SearchSection
from .elf import ElfBase, Elf32, Elf64
from .pe import PE
from .macho import MachoBase, Macho32, Macho64, MachoFat
from .nso import NSO
from .wasm import WebAssembly, WebAssemblyMemory
from .detector import FormatDetector, classify, DEFAULT_FACTORIES

__all__ = [
    'ContainerKind',
    'Il2CppCodeRegistration',
    'Il2CppMetadataRegistration',
    'Il2CppCodeGenModule',
    'Il2CppTypeRecord',
    'BinaryImage',
    'SectionHelper',
    'SearchSection',
    'ElfBase',
    'Elf32',
    'Elf64',
    'PE',
    'MachoBase',
    'Macho32',
    'Macho64',
    'MachoFat',
    'NSO',
    'WebAssembly',
    'WebAssemblyMemory',
    'FormatDetector',
    'classify',
    'DEFAULT_FACTORIES',
]
