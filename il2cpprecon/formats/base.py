# -*- coding: utf-8 -*-
"""
il2cpprecon/formats/base.py - Binary image abstraction

Common capability set of every executable container: property setup,
dump detection, the three registration search strategies, explicit
initialization from known addresses and address translation.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..core.exceptions import ImageStateError, ImageAccessError
from ..core.logging import get_logger
from ..core.stream import BinaryStream
from .structures import (
    ContainerKind,
    Il2CppCodeRegistration,
    Il2CppMetadataRegistration,
    Il2CppCodeGenModule,
    Il2CppTypeRecord,
)

logger = get_logger("formats.base")

# Counts above this are not plausible and indicate a shifted layout
VERSION_CHECK_LIMIT = 0x50000


class BinaryImage(BinaryStream, ABC):
    """
    Loaded il2cpp executable

    Subclasses implement address translation, dump detection and the
    signature / symbol searches. The counts-based search is shared and
    driven by get_section_helper().
    """

    kind: ContainerKind = None
    supports_reload: bool = False
    # Code registration lives in executable segments more often than data
    prefer_exec_code_search: bool = False

    def __init__(self, data) -> None:
        super().__init__(data)
        self.image_base = 0
        self.is_dumped = False

        self.code_registration: Optional[Il2CppCodeRegistration] = None
        self.metadata_registration: Optional[Il2CppMetadataRegistration] = None
        self.code_registration_address = 0
        self.metadata_registration_address = 0

        self.types: List[Il2CppTypeRecord] = []
        self.code_gen_modules: Dict[str, Il2CppCodeGenModule] = {}
        self.metadata_usages_count = 0
        self._properties_set = False

    # ------------------------------------------------------------------
    # Address translation
    # ------------------------------------------------------------------

    @abstractmethod
    def map_vatr(self, addr: int) -> int:
        """Virtual address -> raw offset, ImageAccessError when unmapped"""

    @abstractmethod
    def map_rtva(self, addr: int) -> int:
        """Raw offset -> virtual address, 0 when unmapped"""

    def get_rva(self, pointer: int) -> int:
        if self.is_dumped:
            return pointer - self.image_base
        return pointer

    def map_vatr_class(self, cls, addr: int):
        return self.read_class(cls, self.map_vatr(addr))

    def map_vatr_array(self, addr: int, count: int) -> List[int]:
        if count <= 0:
            return []
        return self.read_ptr_array(self.map_vatr(addr), count)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def set_properties(self, version: float, metadata_usages_count: int) -> None:
        """
        Record the metadata version and usage count

        Must be called exactly once, before any search.
        """
        if self._properties_set:
            raise ImageStateError("set_properties() has already been called on this image")
        self.version = version
        self.metadata_usages_count = metadata_usages_count
        self._properties_set = True

    def _require_properties(self, operation: str) -> None:
        if not self._properties_set:
            raise ImageStateError(f"{operation}() called before set_properties()")

    @abstractmethod
    def check_dump(self) -> bool:
        """True when the image looks like a memory dump rather than a file"""

    def reload(self) -> None:
        """Re-read the container layout after image_base changed"""

    # ------------------------------------------------------------------
    # Registration search
    # ------------------------------------------------------------------

    def get_section_helper(self, method_count: int, type_def_count: int, image_count: int):
        """Section helper classifying this image's ranges, None when unsupported"""
        return None

    def plus_search(self, method_count: int, type_def_count: int, image_count: int) -> bool:
        """Counts-based search over exec/data/bss ranges"""
        self._require_properties("plus_search")
        helper = self.get_section_helper(method_count, type_def_count, image_count)
        if helper is None:
            return False
        code_registration = helper.find_code_registration()
        metadata_registration = helper.find_metadata_registration()
        return self.auto_plus_init(code_registration, metadata_registration)

    @abstractmethod
    def search(self) -> bool:
        """Signature-based search"""

    @abstractmethod
    def symbol_search(self) -> bool:
        """Symbol-table search for g_CodeRegistration / g_MetadataRegistration"""

    def auto_plus_init(self, code_registration: int, metadata_registration: int) -> bool:
        """
        Refine the version from the located CodeRegistration, then init

        Returns:
            True when both addresses are non-zero and init() ran
        """
        if code_registration != 0 and self.version >= 24.2:
            cr = self.map_vatr_class(Il2CppCodeRegistration, code_registration)
            if self.version == 31 and cr.generic_method_pointers_count > VERSION_CHECK_LIMIT:
                code_registration -= self.pointer_size * 2
            elif self.version == 29 and cr.generic_method_pointers_count > VERSION_CHECK_LIMIT:
                self.version = 29.1
                code_registration -= self.pointer_size * 2
                logger.info(f"Change il2cpp version to: {self.version}")
            elif self.version == 27 and cr.reverse_pinvoke_wrapper_count > VERSION_CHECK_LIMIT:
                self.version = 27.1
                code_registration -= self.pointer_size
                logger.info(f"Change il2cpp version to: {self.version}")
            elif self.version == 24.4:
                code_registration -= self.pointer_size * 2
                if cr.reverse_pinvoke_wrapper_count > VERSION_CHECK_LIMIT:
                    self.version = 24.5
                    code_registration -= self.pointer_size
                    logger.info(f"Change il2cpp version to: {self.version}")
            elif self.version == 24.2 and cr.interop_data_count == 0:
                self.version = 24.3
                code_registration -= self.pointer_size * 2
                logger.info(f"Change il2cpp version to: {self.version}")

        logger.info(f"CodeRegistration : 0x{code_registration:x}")
        logger.info(f"MetadataRegistration : 0x{metadata_registration:x}")

        if code_registration != 0 and metadata_registration != 0:
            self.init(code_registration, metadata_registration)
            return True
        return False

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def init(self, code_registration: int, metadata_registration: int) -> None:
        """
        Load the registration structures from known addresses

        Unconditional: the addresses are trusted as given.
        """
        self.code_registration_address = code_registration
        self.metadata_registration_address = metadata_registration

        self.code_registration = self.map_vatr_class(Il2CppCodeRegistration, code_registration)
        cr = self.code_registration
        if self.version == 27 and cr.invoker_pointers_count > VERSION_CHECK_LIMIT:
            self.version = 27.1
            logger.info(f"Change il2cpp version to: {self.version}")
            self.code_registration = self.map_vatr_class(Il2CppCodeRegistration, code_registration)
        elif self.version == 24.4 and cr.invoker_pointers_count > VERSION_CHECK_LIMIT:
            self.version = 24.5
            logger.info(f"Change il2cpp version to: {self.version}")
            self.code_registration = self.map_vatr_class(Il2CppCodeRegistration, code_registration)
        elif self.version == 24.2 and cr.code_gen_modules == 0:
            self.version = 24.3
            logger.info(f"Change il2cpp version to: {self.version}")
            self.code_registration = self.map_vatr_class(Il2CppCodeRegistration, code_registration)

        self.metadata_registration = self.map_vatr_class(Il2CppMetadataRegistration, metadata_registration)
        self._load_types()
        if self.version >= 24.2:
            self._load_code_gen_modules()

    def _load_types(self) -> None:
        mr = self.metadata_registration
        self.types = []
        for pointer in self.map_vatr_array(mr.types, mr.types_count):
            record = self.map_vatr_class(Il2CppTypeRecord, pointer)
            record.address = pointer
            self.types.append(record)

    def _load_code_gen_modules(self) -> None:
        cr = self.code_registration
        self.code_gen_modules = {}
        for pointer in self.map_vatr_array(cr.code_gen_modules, cr.code_gen_modules_count):
            module = self.map_vatr_class(Il2CppCodeGenModule, pointer)
            try:
                name = self.read_cstring(self.map_vatr(module.module_name))
            except ImageAccessError:
                logger.warning(f"CodeGenModule at 0x{pointer:x} has an unmapped name")
                continue
            self.code_gen_modules[name] = module

    def describe(self) -> Dict[str, object]:
        """Summary used by the CLI report"""
        return {
            'format': self.kind.value if self.kind else type(self).__name__,
            'version': self.version,
            'pointer_size': self.pointer_size,
            'image_base': self.image_base,
            'is_dumped': self.is_dumped,
            'types': len(self.types),
            'code_gen_modules': sorted(self.code_gen_modules),
        }
