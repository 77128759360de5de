# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/synthesizer.py - Assembly synthesis boundary

Builds an in-memory model of the managed assemblies from the recovered
metadata and registration data. Writing the model out as real managed
assemblies is left to other AssemblyWriter implementations; the only
change applied to a writer's output here is the module-name fix-up.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.exceptions import ImageAccessError
from ..core.logging import get_logger
from ..formats.base import BinaryImage
from ..formats.structures import IL2CPP_TYPE_CLASS, IL2CPP_TYPE_VALUETYPE, Il2CppTypeRecord
from ..metadata.reader import MetadataTable
from ..metadata.structures import Il2CppImageDefinition, Il2CppMethodDefinition, Il2CppTypeDefinition

logger = get_logger("pipeline.synthesizer")


# =============================================================================
# Assembly model
# =============================================================================

@dataclass
class FieldModel:
    name: str
    type_index: int
    token: int = 0


@dataclass
class MethodModel:
    name: str
    token: int
    rva: int = 0
    parameter_count: int = 0


@dataclass
class TypeModel:
    namespace: str
    name: str
    parent: Optional[str] = None
    is_value_type: bool = False
    is_enum: bool = False
    fields: List[FieldModel] = field(default_factory=list)
    methods: List[MethodModel] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


@dataclass
class ModuleModel:
    name: str


@dataclass
class AssemblyModel:
    name: str
    main_module: ModuleModel
    types: List[TypeModel] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'module': self.main_module.name,
            'types': len(self.types),
            'methods': sum(len(t.methods) for t in self.types),
            'fields': sum(len(t.fields) for t in self.types),
        }


# =============================================================================
# Execution context
# =============================================================================

class Il2CppExecutor:
    """Resolves cross references between metadata and the binary image"""

    def __init__(self, metadata: MetadataTable, image: BinaryImage) -> None:
        self.metadata = metadata
        self.image = image
        self._type_def_size = metadata.size_of(Il2CppTypeDefinition)
        self._method_pointers: Dict[str, List[int]] = {}

    def get_type_definition_index(self, il2cpp_type: Il2CppTypeRecord) -> int:
        """Type definition index of a CLASS / VALUETYPE type"""
        if self.image.version >= 27 and il2cpp_type.type in (IL2CPP_TYPE_CLASS, IL2CPP_TYPE_VALUETYPE):
            offset = il2cpp_type.type_handle - self.metadata.image_base - self.metadata.header.type_definitions_offset
            return offset // self._type_def_size
        return il2cpp_type.klass_index

    def get_type_name(self, type_def: Il2CppTypeDefinition) -> str:
        namespace = self.metadata.type_namespace(type_def)
        name = self.metadata.type_name(type_def)
        return f"{namespace}.{name}" if namespace else name

    def get_parent_name(self, type_def: Il2CppTypeDefinition) -> Optional[str]:
        if type_def.parent_index < 0 or type_def.parent_index >= len(self.image.types):
            return None
        index = self.get_type_definition_index(self.image.types[type_def.parent_index])
        if not 0 <= index < len(self.metadata.type_defs):
            return None
        return self.get_type_name(self.metadata.type_defs[index])

    def get_image_name(self, image_def: Il2CppImageDefinition) -> str:
        return self.metadata.image_name(image_def)

    def get_method_pointer(self, image_name: str, method_def: Il2CppMethodDefinition) -> int:
        """Code address of a method, 0 when it has none"""
        image = self.image
        if image.version >= 24.2:
            pointers = self._module_method_pointers(image_name)
            index = method_def.token & 0x00FFFFFF
            if 0 < index <= len(pointers):
                return pointers[index - 1]
            return 0
        pointers = self._module_method_pointers("")
        if 0 <= method_def.method_index < len(pointers):
            return pointers[method_def.method_index]
        return 0

    def _module_method_pointers(self, image_name: str) -> List[int]:
        if image_name in self._method_pointers:
            return self._method_pointers[image_name]
        pointers: List[int] = []
        try:
            if image_name:
                module = self.image.code_gen_modules.get(image_name)
                if module is not None:
                    pointers = self.image.map_vatr_array(module.method_pointers, module.method_pointer_count)
            elif self.image.code_registration is not None:
                cr = self.image.code_registration
                pointers = self.image.map_vatr_array(cr.method_pointers, cr.method_pointers_count)
        except ImageAccessError as e:
            logger.warning(f"Method pointers of '{image_name or 'CodeRegistration'}' are unreadable: {e}")
        self._method_pointers[image_name] = pointers
        return pointers


# =============================================================================
# Writers
# =============================================================================

class AssemblyWriter(ABC):
    """Turns the execution context into assembly models"""

    @abstractmethod
    def generate(self, executor: Il2CppExecutor) -> List[AssemblyModel]:
        pass


class DummyAssemblyWriter(AssemblyWriter):
    """One assembly per image definition, with types, fields and methods"""

    def generate(self, executor: Il2CppExecutor) -> List[AssemblyModel]:
        metadata = executor.metadata
        assemblies = []
        for image_def in metadata.image_defs:
            image_name = executor.get_image_name(image_def)
            assembly_name = image_name[:-4] if image_name.endswith(".dll") else image_name
            assembly = AssemblyModel(assembly_name, ModuleModel(image_name))
            for type_def in metadata.type_defs[image_def.type_start:image_def.type_start + image_def.type_count]:
                assembly.types.append(self._type_model(executor, image_name, type_def))
            assemblies.append(assembly)
        return assemblies

    @staticmethod
    def _type_model(executor: Il2CppExecutor, image_name: str, type_def: Il2CppTypeDefinition) -> TypeModel:
        metadata = executor.metadata
        model = TypeModel(
            namespace=metadata.type_namespace(type_def),
            name=metadata.type_name(type_def),
            parent=executor.get_parent_name(type_def),
            is_value_type=type_def.is_value_type,
            is_enum=type_def.is_enum,
        )
        for field_def in metadata.field_defs[type_def.field_start:type_def.field_start + type_def.field_count]:
            model.fields.append(FieldModel(metadata.get_string(field_def.name_index),
                                           field_def.type_index, field_def.token))
        for method_def in metadata.method_defs[type_def.method_start:type_def.method_start + type_def.method_count]:
            pointer = executor.get_method_pointer(image_name, method_def)
            model.methods.append(MethodModel(
                name=metadata.get_string(method_def.name_index),
                token=method_def.token,
                rva=executor.image.get_rva(pointer) if pointer else 0,
                parameter_count=method_def.parameter_count,
            ))
        return model


# =============================================================================
# Synthesizer
# =============================================================================

def fix_module_name(name: str, extension: str = ".dll") -> str:
    """Append the managed-library extension when missing"""
    if name.endswith(extension):
        return name
    logger.warning(f"Fixing {name}'s Module Name.")
    return name + extension


class AssemblySynthesizer:

    def __init__(self, writer: Optional[AssemblyWriter] = None, extension: str = ".dll") -> None:
        self.writer = writer or DummyAssemblyWriter()
        self.extension = extension

    def synthesize(self, metadata: MetadataTable, image: BinaryImage) -> List[AssemblyModel]:
        executor = Il2CppExecutor(metadata, image)
        assemblies = self.writer.generate(executor)
        for assembly in assemblies:
            module = assembly.main_module
            module.name = fix_module_name(module.name, self.extension)
        logger.info(f"Synthesized {len(assemblies)} assemblies")
        return assemblies
