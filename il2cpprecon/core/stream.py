# -*- coding: utf-8 -*-
"""
il2cpprecon/core/stream.py - Positioned binary reader

Little-endian reader/writer over an in-memory buffer, plus the
version-gated structure reader shared by the metadata tables and the
registration structures of the binary.
"""

import struct
from dataclasses import field, fields
from functools import lru_cache
from typing import Any, List, Optional, Tuple, Type, TypeVar

from .exceptions import ImageAccessError

T = TypeVar('T')

# Field kinds understood by the versioned reader
_KIND_FORMATS = {
    'u8': 'B',
    'i8': 'b',
    'u16': 'H',
    'i16': 'h',
    'u32': 'I',
    'i32': 'i',
    'u64': 'Q',
    'i64': 'q',
}

ANY_VERSION = ((0.0, 99.0),)


def vfield(kind: str = 'i32', min_version: float = 0.0, max_version: float = 99.0,
           ranges: Optional[Tuple[Tuple[float, float], ...]] = None, default: int = 0):
    """
    Declare a structure field

    Args:
        kind: one of u8/i8/u16/i16/u32/i32/u64/i64, or "ptr" / "iptr" for
              pointer-sized unsigned / signed values
        min_version: first version carrying the field
        max_version: last version carrying the field
        ranges: explicit list of (min, max) ranges, for fields that
                disappear and come back
        default: value used when the field is absent in a version
    """
    versions = tuple(ranges) if ranges else ((min_version, max_version),)
    return field(default=default, metadata={'kind': kind, 'versions': versions})


def ptr(min_version: float = 0.0, max_version: float = 99.0, ranges=None):
    """Pointer-sized unsigned field"""
    return vfield('ptr', min_version, max_version, ranges)


def _present(f, version: float) -> bool:
    versions = f.metadata.get('versions', ANY_VERSION)
    return any(lo <= version <= hi for lo, hi in versions)


@lru_cache(maxsize=None)
def struct_layout(cls: type, version: float, pointer_size: int) -> Tuple[struct.Struct, Tuple[str, ...]]:
    """
    Compute the on-disk layout of a structure for one version

    Returns:
        (compiled struct, names of the fields present in that version)
    """
    fmt = '<'
    names = []
    for f in fields(cls):
        if 'kind' not in f.metadata or not _present(f, version):
            continue
        kind = f.metadata['kind']
        if kind == 'ptr':
            fmt += 'I' if pointer_size == 4 else 'Q'
        elif kind == 'iptr':
            fmt += 'i' if pointer_size == 4 else 'q'
        else:
            fmt += _KIND_FORMATS[kind]
        names.append(f.name)
    return struct.Struct(fmt), tuple(names)


def struct_size(cls: type, version: float, pointer_size: int = 8) -> int:
    """Size in bytes of a structure for one version"""
    return struct_layout(cls, version, pointer_size)[0].size


class BinaryStream:
    """
    Positioned little-endian reader/writer

    Every read past the end of the buffer raises ImageAccessError.
    """

    def __init__(self, data) -> None:
        self._data = bytearray(data)
        self.position = 0
        self.is_32bit = False
        self.version: float = 0.0

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    @property
    def data(self) -> bytearray:
        return self._data

    @property
    def length(self) -> int:
        return len(self._data)

    @property
    def pointer_size(self) -> int:
        return 4 if self.is_32bit else 8

    def _take(self, size: int, offset: Optional[int] = None) -> int:
        if offset is not None:
            self.position = offset
        start = self.position
        if start < 0 or start + size > len(self._data):
            raise ImageAccessError(
                f"Read of {size} bytes at 0x{start:x} is outside the buffer (0x{len(self._data):x})",
                address=start
            )
        self.position = start + size
        return start

    def _unpack(self, fmt: str, offset: Optional[int] = None) -> int:
        size = struct.calcsize(fmt)
        start = self._take(size, offset)
        return struct.unpack_from(fmt, self._data, start)[0]

    def read_bytes(self, count: int, offset: Optional[int] = None) -> bytes:
        start = self._take(count, offset)
        return bytes(self._data[start:start + count])

    def read_u8(self, offset: Optional[int] = None) -> int:
        return self._unpack('<B', offset)

    def read_u16(self, offset: Optional[int] = None) -> int:
        return self._unpack('<H', offset)

    def read_i32(self, offset: Optional[int] = None) -> int:
        return self._unpack('<i', offset)

    def read_u32(self, offset: Optional[int] = None) -> int:
        return self._unpack('<I', offset)

    def read_i64(self, offset: Optional[int] = None) -> int:
        return self._unpack('<q', offset)

    def read_u64(self, offset: Optional[int] = None) -> int:
        return self._unpack('<Q', offset)

    def read_int_ptr(self, offset: Optional[int] = None) -> int:
        return self._unpack('<i' if self.is_32bit else '<q', offset)

    def read_uint_ptr(self, offset: Optional[int] = None) -> int:
        return self._unpack('<I' if self.is_32bit else '<Q', offset)

    def read_ptr_array(self, offset: int, count: int) -> List[int]:
        """Read `count` pointer-sized values starting at a raw offset"""
        if count <= 0:
            return []
        fmt = f"<{count}{'I' if self.is_32bit else 'Q'}"
        start = self._take(struct.calcsize(fmt), offset)
        return list(struct.unpack_from(fmt, self._data, start))

    def read_u32_array(self, offset: int, count: int) -> List[int]:
        if count <= 0:
            return []
        fmt = f"<{count}I"
        start = self._take(struct.calcsize(fmt), offset)
        return list(struct.unpack_from(fmt, self._data, start))

    def read_cstring(self, offset: Optional[int] = None, encoding: str = 'utf-8') -> str:
        """Read a NUL-terminated string"""
        if offset is not None:
            self.position = offset
        start = self.position
        if start < 0 or start >= len(self._data):
            raise ImageAccessError(f"String at 0x{start:x} is outside the buffer", address=start)
        end = self._data.find(b'\x00', start)
        if end == -1:
            end = len(self._data)
        self.position = min(end + 1, len(self._data))
        return self._data[start:end].decode(encoding, errors='replace')

    def write_u32(self, value: int, offset: Optional[int] = None) -> None:
        start = self._take(4, offset)
        struct.pack_into('<I', self._data, start, value & 0xFFFFFFFF)

    def write_u64(self, value: int, offset: Optional[int] = None) -> None:
        start = self._take(8, offset)
        struct.pack_into('<Q', self._data, start, value & 0xFFFFFFFFFFFFFFFF)

    def write_uint_ptr(self, value: int, offset: Optional[int] = None) -> None:
        if self.is_32bit:
            self.write_u32(value, offset)
        else:
            self.write_u64(value, offset)

    # ------------------------------------------------------------------
    # Versioned structures
    # ------------------------------------------------------------------

    def read_class(self, cls: Type[T], offset: Optional[int] = None,
                   version: Optional[float] = None) -> T:
        """
        Read one versioned structure

        Args:
            cls: dataclass declared with vfield()/ptr() fields
            offset: raw offset (current position when None)
            version: layout version (the stream's version when None)
        """
        layout, names = struct_layout(cls, self.version if version is None else version,
                                      self.pointer_size)
        start = self._take(layout.size, offset)
        values = layout.unpack_from(self._data, start)
        return cls(**dict(zip(names, values)))

    def read_class_array(self, cls: Type[T], offset: int, count: int,
                         version: Optional[float] = None) -> List[T]:
        """Read `count` consecutive structures"""
        if count <= 0:
            return []
        layout, names = struct_layout(cls, self.version if version is None else version,
                                      self.pointer_size)
        start = self._take(layout.size * count, offset)
        return [
            cls(**dict(zip(names, values)))
            for values in layout.iter_unpack(self._data[start:start + layout.size * count])
        ]

    def size_of(self, cls: type, version: Optional[float] = None) -> int:
        return struct_size(cls, self.version if version is None else version, self.pointer_size)
