# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline - Registration recovery pipeline

    - Operator input responders
    - Dump address resolution
    - Registration locator (search strategy chain)
    - Metadata linker
    - Assembly synthesis boundary
    - Recovery session (fault boundary)
"""

from .prompts import (
    Responder,
    ConsoleResponder,
    ScriptedResponder,
    PresetResponder,
)
from .dump import DumpAddressResolver
from .locator import LocatorState, RegistrationAddresses, RegistrationLocator
from .linker import MetadataLinker
from .synthesizer import (
    Il2CppExecutor,
    AssemblyModel,
    ModuleModel,
    TypeModel,
    FieldModel,
    MethodModel,
    AssemblyWriter,
    DummyAssemblyWriter,
    AssemblySynthesizer,
    fix_module_name,
)
from .session import (
    SessionResult,
    RecoverySession,
    initialize,
    generate_assemblies,
)

__all__ = [
    'Responder',
    'ConsoleResponder',
    'ScriptedResponder',
    'PresetResponder',
    'DumpAddressResolver',
    'LocatorState',
    'RegistrationAddresses',
    'RegistrationLocator',
    'MetadataLinker',
    'Il2CppExecutor',
    'AssemblyModel',
    'ModuleModel',
    'TypeModel',
    'FieldModel',
    'MethodModel',
    'AssemblyWriter',
    'DummyAssemblyWriter',
    'AssemblySynthesizer',
    'fix_module_name',
    'SessionResult',
    'RecoverySession',
    'initialize',
    'generate_assemblies',
]
