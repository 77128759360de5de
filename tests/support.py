# -*- coding: utf-8 -*-
"""
Shared fakes for the test suite: metadata blob builder and in-memory images.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from il2cpprecon.core.config import Il2CppReconConfig
from il2cpprecon.core.exceptions import ImageAccessError
from il2cpprecon.core.stream import struct_layout
from il2cpprecon.formats.base import BinaryImage
from il2cpprecon.formats.section_helper import SectionHelper, SearchSection
from il2cpprecon.formats.structures import ContainerKind
from il2cpprecon.metadata.structures import (
    Il2CppGlobalMetadataHeader,
    Il2CppImageDefinition,
    Il2CppTypeDefinition,
    Il2CppMethodDefinition,
    Il2CppFieldDefinition,
    Il2CppMetadataUsagePair,
)

METADATA_SANITY = 0xFAB11BAF

ELF32_BYTES = b"\x7fELF\x01" + bytes(59)
ELF64_BYTES = b"\x7fELF\x02" + bytes(59)
PE_BYTES = b"MZ\x90\x00" + bytes(60)


def make_config(**overrides) -> Il2CppReconConfig:
    values = {'host_platform': "Linux"}
    values.update(overrides)
    return Il2CppReconConfig(**values)


def pack_record(cls, version: float, values: Dict[str, int], pointer_size: int = 8) -> bytes:
    layout, names = struct_layout(cls, version, pointer_size)
    return layout.pack(*[values.get(name, 0) for name in names])


# =============================================================================
# global-metadata.dat builder
# =============================================================================

class _StringHeap:

    def __init__(self) -> None:
        self.data = bytearray()
        self._index: Dict[str, int] = {}

    def add(self, text: str) -> int:
        if text not in self._index:
            self._index[text] = len(self.data)
            self.data += text.encode('utf-8') + b"\x00"
        return self._index[text]


DEFAULT_TYPES = [
    {'name': "Player", 'namespace': "Game", 'method_start': 0, 'method_count': 2,
     'field_start': 0, 'field_count': 1, 'parent_index': -1},
    {'name': "Vector", 'namespace': "Game", 'method_start': 2, 'method_count': 0,
     'field_start': 1, 'field_count': 0, 'parent_index': -1, 'bitfield': 1},
]

DEFAULT_METHODS = [
    {'name': "Update", 'method_index': 0, 'token': 0x06000001},
    {'name': ".ctor", 'method_index': 1, 'token': 0x06000002},
]

DEFAULT_FIELDS = [
    {'name': "health", 'type_index': 0, 'token': 0x04000001},
]


def build_metadata(version: float = 24.0,
                   images: Optional[List[Dict]] = None,
                   types: Optional[List[Dict]] = None,
                   methods: Optional[List[Dict]] = None,
                   fields: Optional[List[Dict]] = None,
                   usage_lists: Sequence[Tuple[int, int]] = (),
                   usage_pairs: Sequence[Tuple[int, int]] = (),
                   assemblies_size: Optional[int] = None,
                   header: Optional[Dict[str, int]] = None) -> bytes:
    """
    Build a metadata blob laid out for `version`

    24.2 / 24.4 files are written with a version field of 24 and the
    markers the reader uses to detect the sub-version.
    """
    types = [dict(t) for t in (DEFAULT_TYPES if types is None else types)]
    methods = [dict(m) for m in (DEFAULT_METHODS if methods is None else methods)]
    fields = [dict(f) for f in (DEFAULT_FIELDS if fields is None else fields)]
    if images is None:
        images = [{'name': "Assembly-CSharp.dll", 'type_start': 0, 'type_count': len(types), 'token': 1}]
    images = [dict(i) for i in images]

    heap = _StringHeap()
    for image in images:
        image['name_index'] = heap.add(image.pop('name'))
    for type_def in types:
        type_def['name_index'] = heap.add(type_def.pop('name'))
        type_def['namespace_index'] = heap.add(type_def.pop('namespace', ""))
    for method in methods:
        method['name_index'] = heap.add(method.pop('name'))
    for field_def in fields:
        field_def['name_index'] = heap.add(field_def.pop('name'))

    header_layout, _ = struct_layout(Il2CppGlobalMetadataHeader, version, 8)
    header_size = header_layout.size
    values = {
        'sanity': METADATA_SANITY,
        'version': int(version),
        'string_literal_offset': header_size,
    }

    body = bytearray()

    def add_table(name: str, blob: bytes, size_key: str = "size") -> None:
        values[f"{name}_offset"] = header_size + len(body)
        values[f"{name}_{size_key}"] = len(blob)
        body.extend(blob)

    add_table("string", bytes(heap.data))
    add_table("images", b"".join(pack_record(Il2CppImageDefinition, version, i) for i in images))
    add_table("type_definitions", b"".join(pack_record(Il2CppTypeDefinition, version, t) for t in types))
    add_table("methods", b"".join(pack_record(Il2CppMethodDefinition, version, m) for m in methods))
    add_table("fields", b"".join(pack_record(Il2CppFieldDefinition, version, f) for f in fields))
    lists_blob = b"".join(pack_record_pair(start, count) for start, count in usage_lists)
    add_table("metadata_usage_lists", lists_blob, "count")
    pairs_blob = b"".join(
        pack_record(Il2CppMetadataUsagePair, version,
                    {'destination_index': d, 'encoded_source_index': s})
        for d, s in usage_pairs)
    add_table("metadata_usage_pairs", pairs_blob, "count")

    if version >= 24.4:
        values['assemblies_size'] = 0
    else:
        values['assemblies_size'] = 68 * len(images)
    if assemblies_size is not None:
        values['assemblies_size'] = assemblies_size
    if header:
        values.update(header)

    blob = header_layout.pack(*[values.get(name, 0) for name in struct_layout(
        Il2CppGlobalMetadataHeader, version, 8)[1]]) + bytes(body)
    # The reader parses a 24.0 header first, which is longer than a 24.2 one
    blob += bytes(16)
    return blob


def pack_record_pair(start: int, count: int) -> bytes:
    return start.to_bytes(4, 'little') + count.to_bytes(4, 'little')


# =============================================================================
# Images
# =============================================================================

class FlatImage(BinaryImage):
    """Identity-mapped image with fixed exec / data / bss ranges"""

    kind = ContainerKind.ELF64

    def __init__(self, data, exec_range: Tuple[int, int], data_range: Tuple[int, int],
                 bss_range: Tuple[int, int], is_32bit: bool = False) -> None:
        super().__init__(data)
        self.is_32bit = is_32bit
        self.exec_range = exec_range
        self.data_range = data_range
        self.bss_range = bss_range

    def map_vatr(self, addr: int) -> int:
        if 0 <= addr < self.length:
            return addr
        raise ImageAccessError(f"0x{addr:x} unmapped", address=addr)

    def map_rtva(self, addr: int) -> int:
        return addr

    def check_dump(self) -> bool:
        return False

    def search(self) -> bool:
        return False

    def symbol_search(self) -> bool:
        return False

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int) -> SectionHelper:
        def section(bounds):
            return SearchSection(bounds[0], bounds[1], bounds[0], bounds[1])
        helper = SectionHelper(self, method_count, type_def_count, self.metadata_usages_count, image_count)
        return helper.set_sections([section(self.exec_range)], [section(self.data_range)],
                                   [section(self.bss_range)])


class ScriptedImage(BinaryImage):
    """
    Image whose strategies return scripted results

    A strategy result may be an exception instance, which is raised.
    Every strategy call and every init() call is recorded.
    """

    kind = ContainerKind.ELF64

    def __init__(self, data: bytes = b"", plus=False, search=False, symbol=False,
                 kind: Optional[ContainerKind] = None, dumped: bool = False, reloadable: bool = False,
                 addresses: Tuple[int, int] = (0x1000, 0x2000), types: Iterable = ()) -> None:
        super().__init__(data or bytes(0x100))
        if kind is not None:
            self.kind = kind
        self.supports_reload = reloadable
        self.source = bytes(data)
        self.results = {'plus_search': plus, 'search': search, 'symbol_search': symbol}
        self.addresses = addresses
        self.scripted_types = list(types)
        self.looks_dumped = dumped
        self.calls: List[str] = []
        self.init_calls: List[Tuple[int, int]] = []
        self.reload_calls = 0
        self.search_counts = None

    def map_vatr(self, addr: int) -> int:
        if 0 <= addr < self.length:
            return addr
        raise ImageAccessError(f"0x{addr:x} unmapped", address=addr)

    def map_rtva(self, addr: int) -> int:
        return addr

    def check_dump(self) -> bool:
        return self.looks_dumped

    def reload(self) -> None:
        self.reload_calls += 1

    def plus_search(self, method_count: int, type_def_count: int, image_count: int) -> bool:
        self.search_counts = (method_count, type_def_count, image_count)
        return self._strategy('plus_search')

    def search(self) -> bool:
        return self._strategy('search')

    def symbol_search(self) -> bool:
        return self._strategy('symbol_search')

    def init(self, code_registration: int, metadata_registration: int) -> None:
        self.init_calls.append((code_registration, metadata_registration))
        self._resolve(code_registration, metadata_registration)

    def _strategy(self, name: str) -> bool:
        self._require_properties(name)
        self.calls.append(name)
        result = self.results[name]
        if isinstance(result, BaseException):
            raise result
        if result:
            self._resolve(*self.addresses)
            return True
        return False

    def _resolve(self, code_registration: int, metadata_registration: int) -> None:
        self.code_registration_address = code_registration
        self.metadata_registration_address = metadata_registration
        self.types = list(self.scripted_types)
