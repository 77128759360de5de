# -*- coding: utf-8 -*-
"""
il2cpprecon/metadata/structures.py - global-metadata.dat records

Every field carries the version range in which it exists; the layout of a
record for a given metadata version is derived from these annotations.
"""

from dataclasses import dataclass

from ..core.stream import vfield


@dataclass
class Il2CppGlobalMetadataHeader:
    """File header: a version-gated sequence of (offset, size) pairs"""
    sanity: int = vfield('u32')
    version: int = vfield('i32')
    string_literal_offset: int = vfield('u32')
    string_literal_size: int = vfield('i32')
    string_literal_data_offset: int = vfield('u32')
    string_literal_data_size: int = vfield('i32')
    string_offset: int = vfield('u32')
    string_size: int = vfield('i32')
    events_offset: int = vfield('u32')
    events_size: int = vfield('i32')
    properties_offset: int = vfield('u32')
    properties_size: int = vfield('i32')
    methods_offset: int = vfield('u32')
    methods_size: int = vfield('i32')
    parameter_default_values_offset: int = vfield('u32')
    parameter_default_values_size: int = vfield('i32')
    field_default_values_offset: int = vfield('u32')
    field_default_values_size: int = vfield('i32')
    field_and_parameter_default_value_data_offset: int = vfield('u32')
    field_and_parameter_default_value_data_size: int = vfield('i32')
    field_marshaled_sizes_offset: int = vfield('i32')
    field_marshaled_sizes_size: int = vfield('i32')
    parameters_offset: int = vfield('u32')
    parameters_size: int = vfield('i32')
    fields_offset: int = vfield('u32')
    fields_size: int = vfield('i32')
    generic_parameters_offset: int = vfield('u32')
    generic_parameters_size: int = vfield('i32')
    generic_parameter_constraints_offset: int = vfield('u32')
    generic_parameter_constraints_size: int = vfield('i32')
    generic_containers_offset: int = vfield('u32')
    generic_containers_size: int = vfield('i32')
    nested_types_offset: int = vfield('u32')
    nested_types_size: int = vfield('i32')
    interfaces_offset: int = vfield('u32')
    interfaces_size: int = vfield('i32')
    vtable_methods_offset: int = vfield('u32')
    vtable_methods_size: int = vfield('i32')
    interface_offsets_offset: int = vfield('i32')
    interface_offsets_size: int = vfield('i32')
    type_definitions_offset: int = vfield('u32')
    type_definitions_size: int = vfield('i32')
    rgctx_entries_offset: int = vfield('u32', max_version=24.1)
    rgctx_entries_count: int = vfield('i32', max_version=24.1)
    images_offset: int = vfield('u32')
    images_size: int = vfield('i32')
    assemblies_offset: int = vfield('u32')
    assemblies_size: int = vfield('i32')
    metadata_usage_lists_offset: int = vfield('u32', 19, 24.5)
    metadata_usage_lists_count: int = vfield('i32', 19, 24.5)
    metadata_usage_pairs_offset: int = vfield('u32', 19, 24.5)
    metadata_usage_pairs_count: int = vfield('i32', 19, 24.5)
    field_refs_offset: int = vfield('u32', 19)
    field_refs_size: int = vfield('i32', 19)
    referenced_assemblies_offset: int = vfield('u32', 20)
    referenced_assemblies_size: int = vfield('i32', 20)
    attributes_info_offset: int = vfield('u32', 21, 27.2)
    attributes_info_count: int = vfield('i32', 21, 27.2)
    attribute_types_offset: int = vfield('u32', 21, 27.2)
    attribute_types_count: int = vfield('i32', 21, 27.2)
    attribute_data_offset: int = vfield('u32', 29)
    attribute_data_size: int = vfield('i32', 29)
    attribute_data_range_offset: int = vfield('u32', 29)
    attribute_data_range_size: int = vfield('i32', 29)
    unresolved_virtual_call_parameter_types_offset: int = vfield('i32', 22)
    unresolved_virtual_call_parameter_types_size: int = vfield('i32', 22)
    unresolved_virtual_call_parameter_ranges_offset: int = vfield('i32', 22)
    unresolved_virtual_call_parameter_ranges_size: int = vfield('i32', 22)
    windows_runtime_type_names_offset: int = vfield('i32', 23)
    windows_runtime_type_names_size: int = vfield('i32', 23)
    windows_runtime_strings_offset: int = vfield('i32', 27)
    windows_runtime_strings_size: int = vfield('i32', 27)
    exported_type_definitions_offset: int = vfield('i32', 24)
    exported_type_definitions_size: int = vfield('i32', 24)


@dataclass
class Il2CppImageDefinition:
    name_index: int = vfield('u32')
    assembly_index: int = vfield('i32')
    type_start: int = vfield('i32')
    type_count: int = vfield('u32')
    exported_type_start: int = vfield('i32', 24)
    exported_type_count: int = vfield('u32', 24)
    entry_point_index: int = vfield('i32')
    token: int = vfield('u32', 19)
    custom_attribute_start: int = vfield('i32', 24.1)
    custom_attribute_count: int = vfield('u32', 24.1)


@dataclass
class Il2CppTypeDefinition:
    name_index: int = vfield('u32')
    namespace_index: int = vfield('u32')
    custom_attribute_index: int = vfield('i32', max_version=24)
    byval_type_index: int = vfield('i32')
    byref_type_index: int = vfield('i32', max_version=24.5)
    declaring_type_index: int = vfield('i32')
    parent_index: int = vfield('i32')
    element_type_index: int = vfield('i32')
    rgctx_start_index: int = vfield('i32', max_version=24.1)
    rgctx_count: int = vfield('i32', max_version=24.1)
    generic_container_index: int = vfield('i32')
    delegate_wrapper_from_managed_to_native_index: int = vfield('i32', max_version=22)
    marshaling_functions_index: int = vfield('i32', max_version=22)
    ccw_function_index: int = vfield('i32', 21, 22)
    guid_index: int = vfield('i32', 21, 22)
    flags: int = vfield('u32')
    field_start: int = vfield('i32')
    method_start: int = vfield('i32')
    event_start: int = vfield('i32')
    property_start: int = vfield('i32')
    nested_types_start: int = vfield('i32')
    interfaces_start: int = vfield('i32')
    vtable_start: int = vfield('i32')
    interface_offsets_start: int = vfield('i32')
    method_count: int = vfield('u16')
    property_count: int = vfield('u16')
    field_count: int = vfield('u16')
    event_count: int = vfield('u16')
    nested_type_count: int = vfield('u16')
    vtable_count: int = vfield('u16')
    interfaces_count: int = vfield('u16')
    interface_offsets_count: int = vfield('u16')
    bitfield: int = vfield('u32')
    token: int = vfield('u32', 19)

    @property
    def is_value_type(self) -> bool:
        return (self.bitfield & 0x1) == 1

    @property
    def is_enum(self) -> bool:
        return ((self.bitfield >> 1) & 0x1) == 1


@dataclass
class Il2CppMethodDefinition:
    name_index: int = vfield('u32')
    declaring_type: int = vfield('i32')
    return_type: int = vfield('i32')
    return_parameter_token: int = vfield('i32', 31)
    parameter_start: int = vfield('i32')
    custom_attribute_index: int = vfield('i32', max_version=24)
    generic_container_index: int = vfield('i32')
    method_index: int = vfield('i32', max_version=24.1)
    invoker_index: int = vfield('i32', max_version=24.1)
    delegate_wrapper_index: int = vfield('i32', max_version=24.1)
    rgctx_start_index: int = vfield('i32', max_version=24.1)
    rgctx_count: int = vfield('i32', max_version=24.1)
    token: int = vfield('u32')
    flags: int = vfield('u16')
    iflags: int = vfield('u16')
    slot: int = vfield('u16')
    parameter_count: int = vfield('u16')


@dataclass
class Il2CppFieldDefinition:
    name_index: int = vfield('u32')
    type_index: int = vfield('i32')
    custom_attribute_index: int = vfield('i32', max_version=24)
    token: int = vfield('u32', 19)


@dataclass
class Il2CppMetadataUsagePair:
    destination_index: int = vfield('u32')
    encoded_source_index: int = vfield('u32')
