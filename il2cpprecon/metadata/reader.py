# -*- coding: utf-8 -*-
"""
il2cpprecon/metadata/reader.py - global-metadata.dat reader

Parses the metadata blob once and exposes the tables the recovery
pipeline needs: version, the counts used by the registration search, the
metadata-usage count and the definition tables used by the linker and
the assembly synthesizer.
"""

from dataclasses import dataclass
from typing import List, Tuple, Type, TypeVar

from ..core.exceptions import InvalidMetadataError, UnsupportedMetadataVersionError, ImageAccessError
from ..core.logging import get_logger
from ..core.stream import BinaryStream
from .structures import (
    Il2CppGlobalMetadataHeader,
    Il2CppImageDefinition,
    Il2CppTypeDefinition,
    Il2CppMethodDefinition,
    Il2CppFieldDefinition,
    Il2CppMetadataUsagePair,
)

logger = get_logger("metadata.reader")

T = TypeVar('T')

METADATA_SANITY = 0xFAB11BAF
MIN_METADATA_VERSION = 16
MAX_METADATA_VERSION = 31

# Header size of a 24.2+ file, which is also where its string literals start
HEADER_SIZE_V242 = 264

# Size of Il2CppAssemblyDefinition from 24.4 on
ASSEMBLY_DEFINITION_SIZE_V244 = 68


@dataclass
class _MetadataUsageList:
    start: int
    count: int


class MetadataTable(BinaryStream):
    """
    Parsed global-metadata.dat

    Immutable after construction except for `image_base`, which only the
    metadata linker writes.
    """

    def __init__(self, data) -> None:
        super().__init__(data)
        self.image_base = 0

        if self.length < 8:
            raise InvalidMetadataError(f"Metadata file too small ({self.length} bytes)")

        sanity = self.read_u32(0)
        if sanity != METADATA_SANITY:
            raise InvalidMetadataError(
                f"ERROR: Metadata file supplied is not valid metadata file. (sanity 0x{sanity:08X})",
                details={'sanity': sanity}
            )

        version = self.read_i32(4)
        if version < MIN_METADATA_VERSION or version > MAX_METADATA_VERSION:
            raise UnsupportedMetadataVersionError(
                f"ERROR: Metadata file supplied is not a supported version[{version}].",
                version=version
            )
        self.version = float(version)

        try:
            self._parse()
        except ImageAccessError as e:
            raise InvalidMetadataError(f"Metadata file is truncated: {e.message}") from e

    @classmethod
    def parse(cls, data) -> 'MetadataTable':
        return cls(data)

    def _parse(self) -> None:
        self.header = self.read_class(Il2CppGlobalMetadataHeader, 0)

        if self.version == 24:
            if self.header.string_literal_offset == HEADER_SIZE_V242:
                self.version = 24.2
                self.header = self.read_class(Il2CppGlobalMetadataHeader, 0)
            else:
                image_defs = self._read_table(Il2CppImageDefinition,
                                              self.header.images_offset, self.header.images_size)
                if any(image.token != 1 for image in image_defs):
                    self.version = 24.1

        self.image_defs: List[Il2CppImageDefinition] = self._read_table(
            Il2CppImageDefinition, self.header.images_offset, self.header.images_size)

        if self.version == 24.2 and self.header.assemblies_size // ASSEMBLY_DEFINITION_SIZE_V244 < len(self.image_defs):
            self.version = 24.4

        self.type_defs: List[Il2CppTypeDefinition] = self._read_table(
            Il2CppTypeDefinition, self.header.type_definitions_offset, self.header.type_definitions_size)
        self.method_defs: List[Il2CppMethodDefinition] = self._read_table(
            Il2CppMethodDefinition, self.header.methods_offset, self.header.methods_size)
        self.field_defs: List[Il2CppFieldDefinition] = self._read_table(
            Il2CppFieldDefinition, self.header.fields_offset, self.header.fields_size)

        self.metadata_usages_count = 0
        if 19 <= self.version < 27:
            self.metadata_usages_count = self._count_metadata_usages()

    def _read_table(self, cls: Type[T], offset: int, size: int) -> List[T]:
        record_size = self.size_of(cls)
        return self.read_class_array(cls, offset, size // record_size)

    def _count_metadata_usages(self) -> int:
        lists_count = self.header.metadata_usage_lists_count // 8
        pairs = self._read_table(Il2CppMetadataUsagePair,
                                 self.header.metadata_usage_pairs_offset,
                                 self.header.metadata_usage_pairs_count)
        max_destination = -1
        self.position = self.header.metadata_usage_lists_offset
        for _ in range(lists_count):
            usage_list = _MetadataUsageList(self.read_u32(), self.read_u32())
            for pair in pairs[usage_list.start:usage_list.start + usage_list.count]:
                if pair.destination_index > max_destination:
                    max_destination = pair.destination_index
        return max_destination + 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search_counts(self) -> Tuple[int, int, int]:
        """
        Counts consumed by the counts-based registration search

        Returns:
            (defined method count, type definition count, image count)
        """
        method_count = sum(1 for m in self.method_defs if m.method_index >= 0)
        return method_count, len(self.type_defs), len(self.image_defs)

    def get_string(self, index: int) -> str:
        """String heap lookup"""
        return self.read_cstring(self.header.string_offset + index)

    def image_name(self, image: Il2CppImageDefinition) -> str:
        return self.get_string(image.name_index)

    def type_name(self, type_def: Il2CppTypeDefinition) -> str:
        return self.get_string(type_def.name_index)

    def type_namespace(self, type_def: Il2CppTypeDefinition) -> str:
        return self.get_string(type_def.namespace_index)
