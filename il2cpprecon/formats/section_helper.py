# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/section_helper.py - Counts-based registration search

Locates CodeRegistration and MetadataRegistration by matching the counts
taken from global-metadata.dat against pointer-sized values in the data
ranges of the image, then validating that the neighbouring pointers land
in the expected ranges.
"""

import struct
from dataclasses import dataclass
from typing import Iterator, List

from ..core.exceptions import ImageAccessError
from ..core.logging import get_logger

logger = get_logger("formats.section_helper")

FEATURE_BYTES = b"mscorlib.dll\x00"


@dataclass
class SearchSection:
    """One searchable range: raw [offset, offset_end) mapped at [address, address_end)"""
    offset: int = 0
    offset_end: int = 0
    address: int = 0
    address_end: int = 0


class SectionHelper:
    """Search state bound to one image and one set of metadata counts"""

    def __init__(self, image, method_count: int, type_def_count: int,
                 metadata_usages_count: int, image_count: int) -> None:
        self.image = image
        self.method_count = method_count
        self.type_def_count = type_def_count
        self.metadata_usages_count = metadata_usages_count
        self.image_count = image_count

        self.exec: List[SearchSection] = []
        self.data: List[SearchSection] = []
        self.bss: List[SearchSection] = []
        self.pointer_in_exec = False

    def set_sections(self, exec_sections: List[SearchSection], data_sections: List[SearchSection],
                     bss_sections: List[SearchSection]) -> 'SectionHelper':
        self.exec = list(exec_sections)
        self.data = list(data_sections)
        self.bss = list(bss_sections)
        return self

    # ------------------------------------------------------------------
    # CodeRegistration
    # ------------------------------------------------------------------

    def find_code_registration(self) -> int:
        if self.image.version >= 24.2:
            if self.image.prefer_exec_code_search:
                result = self._find_code_registration_2019(self.exec)
                if result == 0:
                    result = self._find_code_registration_2019(self.data)
                else:
                    self.pointer_in_exec = True
            else:
                result = self._find_code_registration_2019(self.data)
                if result == 0:
                    result = self._find_code_registration_2019(self.exec)
                    self.pointer_in_exec = True
            return result
        return self._find_code_registration_old()

    def _find_code_registration_old(self) -> int:
        image = self.image
        step = image.pointer_size
        for section in self.data:
            end = min(section.offset_end, image.length) - step
            position = section.offset
            while position < end:
                if image.read_int_ptr(position) == self.method_count:
                    try:
                        pointer = image.map_vatr(image.read_uint_ptr())
                        if self._in_data_raw(pointer):
                            pointers = image.read_ptr_array(pointer, self.method_count)
                            if self._all_in(pointers, self.exec):
                                return position - section.offset + section.address
                    except ImageAccessError:
                        pass
                position += step
        return 0

    def _find_code_registration_2019(self, sections: List[SearchSection]) -> int:
        image = self.image
        step = image.pointer_size
        for section in sections:
            buff = bytes(image.data[section.offset:min(section.offset_end, image.length)])
            for index in _find_all(buff, FEATURE_BYTES):
                dll_va = index + section.address
                for ref_va in self.find_reference(dll_va):
                    for ref_va2 in self.find_reference(ref_va):
                        if image.version >= 27:
                            for i in range(self.image_count - 1, -1, -1):
                                for ref_va3 in self.find_reference(ref_va2 - i * step):
                                    try:
                                        count = image.read_int_ptr(image.map_vatr(ref_va3 - step))
                                    except ImageAccessError:
                                        continue
                                    if count == self.image_count:
                                        return ref_va3 - step * self._code_gen_modules_index()
                        else:
                            for i in range(self.image_count):
                                for ref_va3 in self.find_reference(ref_va2 - i * step):
                                    return ref_va3 - step * 13
        return 0

    def _code_gen_modules_index(self) -> int:
        version = self.image.version
        if version >= 29.1:
            return 16
        if version >= 29:
            return 14
        return 13

    # ------------------------------------------------------------------
    # MetadataRegistration
    # ------------------------------------------------------------------

    def find_metadata_registration(self) -> int:
        if self.image.version < 19:
            return 0
        if self.image.version >= 27:
            return self._find_metadata_registration_v21()
        return self._find_metadata_registration_old()

    def _find_metadata_registration_old(self) -> int:
        image = self.image
        step = image.pointer_size
        for section in self.data:
            end = min(section.offset_end, image.length) - step
            position = section.offset
            while position < end:
                if image.read_int_ptr(position) == self.type_def_count:
                    try:
                        pointer = image.map_vatr(image.read_uint_ptr(position + step * 3))
                        if self._in_data_raw(pointer):
                            pointers = image.read_ptr_array(pointer, self.metadata_usages_count)
                            if self._all_in(pointers, self.bss):
                                return position - step * 12 - section.offset + section.address
                    except ImageAccessError:
                        pass
                position += step
        return 0

    def _find_metadata_registration_v21(self) -> int:
        image = self.image
        step = image.pointer_size
        for section in self.data:
            end = min(section.offset_end, image.length) - step
            position = section.offset
            while position < end:
                if image.read_int_ptr(position) == self.type_def_count:
                    try:
                        if image.read_int_ptr(position + step * 2) == self.type_def_count:
                            pointer = image.map_vatr(image.read_uint_ptr())
                            if self._in_data_raw(pointer):
                                pointers = image.read_ptr_array(pointer, self.type_def_count)
                                targets = self.exec if self.pointer_in_exec else self.data
                                if self._all_in(pointers, targets):
                                    return position - step * 10 - section.offset + section.address
                    except ImageAccessError:
                        pass
                position += step
        return 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def find_reference(self, addr: int) -> Iterator[int]:
        """Virtual addresses of aligned pointer-sized slots in data ranges holding `addr`"""
        image = self.image
        step = image.pointer_size
        if addr < 0 or addr >= 1 << (step * 8):
            return
        needle = struct.pack('<I' if step == 4 else '<Q', addr)
        for section in self.data:
            end = min(section.offset_end, image.length)
            buff = bytes(image.data[section.offset:end])
            for index in _find_all(buff, needle):
                if index % step == 0:
                    yield index + section.address

    def _in_data_raw(self, pointer: int) -> bool:
        return any(s.offset <= pointer <= s.offset_end for s in self.data)

    @staticmethod
    def _all_in(pointers: List[int], sections: List[SearchSection]) -> bool:
        return all(
            any(s.address <= p <= s.address_end for s in sections)
            for p in pointers
        )


def _find_all(buff: bytes, needle: bytes) -> Iterator[int]:
    start = buff.find(needle)
    while start != -1:
        yield start
        start = buff.find(needle, start + 1)
