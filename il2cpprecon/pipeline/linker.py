# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/linker.py - Metadata linker

From version 27 on, type handles in a memory dump point into the loaded
copy of global-metadata.dat. The linker derives where that copy was
loaded so the handles can be turned back into type definition indices.
"""

from ..core.exceptions import RecoveryError
from ..core.logging import get_logger
from ..formats.base import BinaryImage
from ..metadata.reader import MetadataTable

logger = get_logger("pipeline.linker")


class MetadataLinker:

    @staticmethod
    def should_link(image: BinaryImage) -> bool:
        return image.version >= 27 and image.is_dumped

    def link(self, metadata: MetadataTable, image: BinaryImage) -> bool:
        """
        Set metadata.image_base for dumped v27+ images

        Returns:
            True when metadata.image_base was written
        """
        if not self.should_link(image):
            return False

        if not metadata.type_defs:
            raise RecoveryError("Metadata has no type definitions to link against")
        index = metadata.type_defs[0].byval_type_index
        if not 0 <= index < len(image.types):
            raise RecoveryError(
                f"byval type index {index} is outside the {len(image.types)} registered types",
                details={'byval_type_index': index}
            )

        metadata.image_base = image.types[index].type_handle - metadata.header.type_definitions_offset
        logger.info(f"Metadata image base: 0x{metadata.image_base:x}")
        return True
