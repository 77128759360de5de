# -*- coding: utf-8 -*-
"""
il2cpprecon - IL2CPP registration recovery

Correlates a compiled il2cpp binary with its global-metadata.dat:

1. Metadata (metadata) - global-metadata.dat header, tables and sub-versions
2. Containers (formats) - PE, ELF, Mach-O (thin and fat), NSO, WebAssembly
3. Recovery (pipeline) - dump resolution, registration search, metadata
   linking and assembly synthesis, driven by a resumable session
4. Infrastructure (core) - configuration, logging, exceptions
"""

__version__ = "1.0.0"
__author__ = "il2cpprecon Team"

from . import core
from .core import Il2CppReconConfig, Il2CppReconError, load_config, setup_logging
from .metadata import MetadataTable
from .formats import BinaryImage, ContainerKind, FormatDetector
from .pipeline import (
    RecoverySession,
    SessionResult,
    ConsoleResponder,
    ScriptedResponder,
    PresetResponder,
    initialize,
    generate_assemblies,
)

__all__ = [
    '__version__',
    'core',
    'Il2CppReconConfig',
    'Il2CppReconError',
    'load_config',
    'setup_logging',
    'MetadataTable',
    'BinaryImage',
    'ContainerKind',
    'FormatDetector',
    'RecoverySession',
    'SessionResult',
    'ConsoleResponder',
    'ScriptedResponder',
    'PresetResponder',
    'initialize',
    'generate_assemblies',
]
