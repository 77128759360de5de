# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/locator.py - Registration locator

Finds CodeRegistration and MetadataRegistration by trying the image's
search strategies in a fixed order and stopping at the first success:

    1. plus_search    counts from global-metadata.dat
    2. search         code signature
    3. symbol_search  exported / dynamic symbols
    4. manual input   two hexadecimal addresses from the operator
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generator, List, Optional

from ..core.config import Il2CppReconConfig, default_config
from ..core.exceptions import RecoveryError, UnsupportedRecoveryPathError
from ..core.logging import get_logger
from ..core.requests import InputRequest, code_registration_request, metadata_registration_request
from ..core.utils import parse_address, format_address
from ..formats.base import BinaryImage
from ..formats.structures import ContainerKind
from ..metadata.reader import MetadataTable

logger = get_logger("pipeline.locator")


class LocatorState(Enum):
    UNRESOLVED = "unresolved"
    PLUS_SEARCH_ATTEMPTED = "plus_search_attempted"
    SEARCH_ATTEMPTED = "search_attempted"
    SYMBOL_SEARCH_ATTEMPTED = "symbol_search_attempted"
    MANUAL_INPUT = "manual_input"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class RegistrationAddresses:
    """Both registration addresses; never partially set. Manual addresses are taken as given"""
    code_registration: int
    metadata_registration: int
    manual: bool = False

    def __post_init__(self) -> None:
        if self.code_registration is None or self.metadata_registration is None:
            raise RecoveryError(
                "Registration addresses must both be set",
                details={
                    'code_registration': self.code_registration,
                    'metadata_registration': self.metadata_registration,
                }
            )
        if not self.manual and (not self.code_registration or not self.metadata_registration):
            raise RecoveryError(
                "Registration addresses must both be non-zero",
                details={
                    'code_registration': self.code_registration,
                    'metadata_registration': self.metadata_registration,
                }
            )

    def to_dict(self) -> dict:
        return {
            'code_registration': format_address(self.code_registration),
            'metadata_registration': format_address(self.metadata_registration),
        }


class RegistrationLocator:
    """Runs the search strategy chain for one image"""

    def __init__(self, image: BinaryImage, metadata: MetadataTable,
                 config: Optional[Il2CppReconConfig] = None) -> None:
        self.image = image
        self.metadata = metadata
        self.config = config or default_config
        self.state = LocatorState.UNRESOLVED
        self.history: List[LocatorState] = [LocatorState.UNRESOLVED]
        self.manual = False

    def _enter(self, state: LocatorState) -> None:
        self.state = state
        self.history.append(state)

    def _requires_custom_pe_loader(self) -> bool:
        return (self.config.effective_platform == "Windows"
                and self.image.kind is ContainerKind.PE)

    def locate(self) -> Generator[InputRequest, Any, RegistrationAddresses]:
        """
        Generator returning the resolved addresses

        Yields two address requests when every automatic strategy fails.
        Any error marks the locator FAILED and propagates.
        """
        image = self.image
        try:
            method_count, type_def_count, image_count = self.metadata.search_counts()
            logger.info("Searching...")

            self._enter(LocatorState.PLUS_SEARCH_ATTEMPTED)
            found = image.plus_search(method_count, type_def_count, image_count)

            if not found and self._requires_custom_pe_loader():
                logger.info("Use custom PE loader")
                raise UnsupportedRecoveryPathError(
                    "Loading the PE image through the Windows loader is not supported",
                    platform=self.config.effective_platform,
                    container=image.kind.value
                )

            if not found:
                self._enter(LocatorState.SEARCH_ATTEMPTED)
                found = image.search()
            if not found:
                self._enter(LocatorState.SYMBOL_SEARCH_ATTEMPTED)
                found = image.symbol_search()
            if not found:
                logger.error("ERROR: Can't use auto mode to process file, try manual mode.")
                self._enter(LocatorState.MANUAL_INPUT)
                code_registration = parse_address((yield code_registration_request()))
                metadata_registration = parse_address((yield metadata_registration_request()))
                image.init(code_registration, metadata_registration)
                self.manual = True

            addresses = RegistrationAddresses(image.code_registration_address,
                                              image.metadata_registration_address,
                                              manual=self.manual)
        except Exception:
            self._enter(LocatorState.FAILED)
            raise

        self._enter(LocatorState.RESOLVED)
        return addresses
