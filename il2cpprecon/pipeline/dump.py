# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/dump.py - Dump address resolution

Runs once, right after the image properties are set.
"""

from typing import Any, Generator, Optional

from ..core.config import Il2CppReconConfig, default_config
from ..core.logging import get_logger
from ..core.requests import InputRequest, dump_address_request
from ..core.utils import parse_address
from ..formats.base import BinaryImage

logger = get_logger("pipeline.dump")


class DumpAddressResolver:

    def __init__(self, config: Optional[Il2CppReconConfig] = None) -> None:
        self.config = config or default_config

    def resolve(self, image: BinaryImage) -> Generator[InputRequest, Any, bool]:
        """
        Generator returning image.is_dumped

        Reloadable images ask for the dump base address; 0 keeps the image
        as it is. Other images are flagged as dumped without asking.
        """
        if not (self.config.force_dump or image.check_dump()):
            return image.is_dumped

        if not image.supports_reload:
            image.is_dumped = True
            return True

        logger.info("Detected this may be a dump file.")
        address = parse_address((yield dump_address_request()))
        if address != 0:
            image.image_base = address
            image.is_dumped = True
            if not self.config.no_redirected_pointer:
                image.reload()
            logger.info(f"Dump base address: 0x{address:x}")
        return image.is_dumped
