# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/structures.py - Runtime registration structures

Layouts of the structures the IL2CPP runtime registers at startup. All
fields are pointer-sized.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..core.stream import ptr, vfield


class ContainerKind(Enum):
    """Executable container families recognised by the format detector"""
    WEBASSEMBLY = "WebAssembly"
    NSO = "NSO"
    PE = "PE"
    ELF32 = "ELF32"
    ELF64 = "ELF64"
    FAT_MACHO = "Mach-O Fat"
    MACHO64 = "Mach-O 64"
    MACHO32 = "Mach-O 32"


# Il2CppTypeEnum values used when resolving type definitions
IL2CPP_TYPE_VALUETYPE = 0x11
IL2CPP_TYPE_CLASS = 0x12


@dataclass
class Il2CppCodeRegistration:
    method_pointers_count: int = vfield('iptr', max_version=24.1)
    method_pointers: int = ptr(max_version=24.1)
    delegate_wrappers_from_native_to_managed_count: int = vfield('iptr', max_version=21)
    delegate_wrappers_from_native_to_managed: int = ptr(max_version=21)
    reverse_pinvoke_wrapper_count: int = vfield('iptr', 22)
    reverse_pinvoke_wrappers: int = ptr(22)
    delegate_wrappers_from_managed_to_native_count: int = vfield('iptr', max_version=22)
    delegate_wrappers_from_managed_to_native: int = ptr(max_version=22)
    marshaling_functions_count: int = vfield('iptr', max_version=22)
    marshaling_functions: int = ptr(max_version=22)
    ccw_marshaling_functions_count: int = vfield('iptr', 21, 22)
    ccw_marshaling_functions: int = ptr(21, 22)
    generic_method_pointers_count: int = vfield('iptr')
    generic_method_pointers: int = ptr()
    generic_adjustor_thunks: int = ptr(ranges=((24.5, 24.5), (27.1, 99.0)))
    invoker_pointers_count: int = vfield('iptr')
    invoker_pointers: int = ptr()
    custom_attribute_count: int = vfield('iptr', max_version=24.5)
    custom_attribute_generators: int = ptr(max_version=24.5)
    guid_count: int = vfield('iptr', 21, 22)
    guids: int = ptr(21, 22)
    unresolved_virtual_call_count: int = vfield('iptr', 22)
    unresolved_virtual_call_pointers: int = ptr(22)
    unresolved_instance_call_pointers: int = ptr(29.1)
    unresolved_static_call_pointers: int = ptr(29.1)
    interop_data_count: int = vfield('iptr', 23)
    interop_data: int = ptr(23)
    windows_runtime_factory_count: int = vfield('iptr', 24.3)
    windows_runtime_factory_table: int = ptr(24.3)
    code_gen_modules_count: int = vfield('iptr', 24.2)
    code_gen_modules: int = ptr(24.2)


@dataclass
class Il2CppMetadataRegistration:
    generic_classes_count: int = vfield('iptr')
    generic_classes: int = ptr()
    generic_insts_count: int = vfield('iptr')
    generic_insts: int = ptr()
    generic_method_table_count: int = vfield('iptr')
    generic_method_table: int = ptr()
    types_count: int = vfield('iptr')
    types: int = ptr()
    method_specs_count: int = vfield('iptr')
    method_specs: int = ptr()
    method_references_count: int = vfield('iptr', max_version=16)
    method_references: int = ptr(max_version=16)
    field_offsets_count: int = vfield('iptr')
    field_offsets: int = ptr()
    type_definitions_sizes_count: int = vfield('iptr')
    type_definitions_sizes: int = ptr()
    metadata_usages_count: int = vfield('iptr', 19)
    metadata_usages: int = ptr(19)


@dataclass
class Il2CppCodeGenModule:
    module_name: int = ptr()
    method_pointer_count: int = vfield('iptr')
    method_pointers: int = ptr()


@dataclass
class Il2CppTypeRecord:
    """One entry of MetadataRegistration.types"""
    datapoint: int = ptr()
    bits: int = vfield('u32')
    address: int = field(default=0, compare=False)

    @property
    def attrs(self) -> int:
        return self.bits & 0xFFFF

    @property
    def type(self) -> int:
        return (self.bits >> 16) & 0xFF

    def byref(self, version: float) -> int:
        if version >= 27.2:
            return (self.bits >> 29) & 1
        return (self.bits >> 30) & 1

    @property
    def klass_index(self) -> int:
        return self.datapoint

    @property
    def type_handle(self) -> int:
        return self.datapoint
