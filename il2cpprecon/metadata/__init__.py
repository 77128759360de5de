# -*- coding: utf-8 -*-
"""
il2cpprecon/metadata - global-metadata.dat parsing
"""

from .reader import MetadataTable, METADATA_SANITY
from .structures import (
    Il2CppGlobalMetadataHeader,
    Il2CppImageDefinition,
    Il2CppTypeDefinition,
    Il2CppMethodDefinition,
    Il2CppFieldDefinition,
    Il2CppMetadataUsagePair,
)

__all__ = [
    'MetadataTable',
    'METADATA_SANITY',
    'Il2CppGlobalMetadataHeader',
    'Il2CppImageDefinition',
    'Il2CppTypeDefinition',
    'Il2CppMethodDefinition',
    'Il2CppFieldDefinition',
    'Il2CppMetadataUsagePair',
]
