# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/session.py - Recovery session

Drives one il2cpp binary and its global-metadata.dat through the whole
pipeline:

    metadata -> container detection -> set_properties -> dump resolution
             -> registration locator -> metadata linker

The session is the single fault boundary for registration recovery. Errors
raised while locating or linking are logged and returned as a failed
SessionResult; errors before that point (unreadable metadata, unknown
container) propagate to the caller because no image state exists yet.

Usage:
    session = RecoverySession(il2cpp_bytes, metadata_bytes)
    request = session.start()
    while request is not None:
        request = session.resume(answer_for(request))
    session.result.raise_for_status()
"""

from dataclasses import dataclass, field
from typing import Any, Generator, List, Optional, Tuple

from ..core.config import Il2CppReconConfig, default_config
from ..core.exceptions import RecoveryError, SessionFailure
from ..core.logging import get_logger
from ..core.requests import InputRequest
from ..formats.base import BinaryImage
from ..formats.detector import FormatDetector
from ..metadata.reader import MetadataTable
from .dump import DumpAddressResolver
from .linker import MetadataLinker
from .locator import LocatorState, RegistrationAddresses, RegistrationLocator
from .prompts import Responder
from .synthesizer import AssemblyModel, AssemblySynthesizer, AssemblyWriter

logger = get_logger("pipeline.session")


@dataclass
class SessionResult:
    """Outcome of a recovery session"""
    success: bool
    metadata: MetadataTable
    image: BinaryImage
    addresses: Optional[RegistrationAddresses] = None
    state: LocatorState = LocatorState.UNRESOLVED
    manual: bool = False
    linked: bool = False
    error: Optional[BaseException] = None
    history: List[LocatorState] = field(default_factory=list)

    def raise_for_status(self) -> None:
        if not self.success:
            raise SessionFailure("Registration recovery failed", cause=self.error)

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'state': self.state.value,
            'history': [s.value for s in self.history],
            'manual': self.manual,
            'linked': self.linked,
            'metadata_version': self.metadata.version,
            'metadata_image_base': self.metadata.image_base,
            'image': self.image.describe(),
            'addresses': self.addresses.to_dict() if self.addresses else None,
            'error': f"{type(self.error).__name__}: {self.error}" if self.error else None,
        }


class RecoverySession:
    """
    Resumable recovery of CodeRegistration / MetadataRegistration

    start() and resume() return the next InputRequest, or None once the
    session has finished and `result` is available.
    """

    def __init__(self, il2cpp_bytes: bytes, metadata_bytes: bytes,
                 config: Optional[Il2CppReconConfig] = None,
                 detector: Optional[FormatDetector] = None) -> None:
        self.il2cpp_bytes = il2cpp_bytes
        self.metadata_bytes = metadata_bytes
        self.config = config or default_config
        self.detector = detector or FormatDetector()

        self.metadata: Optional[MetadataTable] = None
        self.image: Optional[BinaryImage] = None
        self.locator: Optional[RegistrationLocator] = None

        self._flow: Optional[Generator[InputRequest, Any, SessionResult]] = None
        self._pending: Optional[InputRequest] = None
        self._result: Optional[SessionResult] = None

    @property
    def pending(self) -> Optional[InputRequest]:
        return self._pending

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    @property
    def finished(self) -> bool:
        return self._result is not None

    def start(self) -> Optional[InputRequest]:
        if self._flow is not None:
            raise RecoveryError("Session already started")
        self._flow = self._run_pipeline()
        return self._advance(None)

    def resume(self, response: Any) -> Optional[InputRequest]:
        if self._pending is None:
            raise RecoveryError("Session is not waiting for input")
        return self._advance(response)

    def run(self, responder: Responder) -> SessionResult:
        """
        Run to completion, answering every request with responder

        A responder that cannot answer (RecoveryError) fails the step that
        asked, the same way a bad answer would.
        """
        request = self.start()
        while request is not None:
            try:
                answer = responder.respond(request)
            except RecoveryError as e:
                request = self._advance(error=e)
                continue
            request = self.resume(answer)
        return self._result

    def _advance(self, response: Any = None, error: Optional[BaseException] = None) -> Optional[InputRequest]:
        self._pending = None
        try:
            if error is not None:
                self._pending = self._flow.throw(error)
            else:
                self._pending = self._flow.send(response)
        except StopIteration as stop:
            self._result = stop.value
        return self._pending

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run_pipeline(self) -> Generator[InputRequest, Any, SessionResult]:
        config = self.config

        logger.info("Initializing metadata...")
        metadata = MetadataTable(self.metadata_bytes)
        self.metadata = metadata
        logger.info(f"Metadata Version: {metadata.version}")

        logger.info("Initializing il2cpp file...")
        image = yield from self.detector.detect(self.il2cpp_bytes)
        self.image = image

        version = config.force_version if config.force_il2cpp_version else metadata.version
        image.set_properties(version, metadata.metadata_usages_count)
        logger.info(f"Il2Cpp Version: {image.version}")

        yield from DumpAddressResolver(config).resolve(image)

        self.locator = RegistrationLocator(image, metadata, config)
        try:
            addresses = yield from self.locator.locate()
            linked = MetadataLinker().link(metadata, image)
        except Exception as e:
            logger.error("ERROR: An error occurred while processing.")
            logger.error(f"{type(e).__name__}: {e}")
            return SessionResult(
                success=False,
                metadata=metadata,
                image=image,
                state=self.locator.state,
                manual=self.locator.manual,
                error=e,
                history=list(self.locator.history),
            )

        return SessionResult(
            success=True,
            metadata=metadata,
            image=image,
            addresses=addresses,
            state=self.locator.state,
            manual=self.locator.manual,
            linked=linked,
            history=list(self.locator.history),
        )


def initialize(il2cpp_bytes: bytes, metadata_bytes: bytes, responder: Responder,
               config: Optional[Il2CppReconConfig] = None,
               detector: Optional[FormatDetector] = None
               ) -> Tuple[bool, MetadataTable, BinaryImage]:
    """Run a session and return (success, metadata, image)"""
    result = RecoverySession(il2cpp_bytes, metadata_bytes, config, detector).run(responder)
    return result.success, result.metadata, result.image


def generate_assemblies(metadata: MetadataTable, image: BinaryImage,
                        writer: Optional[AssemblyWriter] = None,
                        config: Optional[Il2CppReconConfig] = None) -> List[AssemblyModel]:
    config = config or default_config
    return AssemblySynthesizer(writer, config.module_extension).synthesize(metadata, image)
