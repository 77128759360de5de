# -*- coding: utf-8 -*-
"""
il2cpprecon/pipeline/prompts.py - Answering operator input requests

A responder turns an InputRequest into an answer. The console responder
reads from the terminal; the scripted and preset responders answer
without a terminal (tests, CLI flags).
"""

import sys
from typing import Any, Callable, Dict, Iterable, Optional

from ..core.exceptions import NoResponseError
from ..core.logging import get_logger
from ..core.requests import (
    InputRequest,
    SliceSelectionRequest,
    HexAddressRequest,
    SLICE,
    DUMP_ADDRESS,
    CODE_REGISTRATION,
    METADATA_REGISTRATION,
)
from ..core.utils import parse_address

logger = get_logger("pipeline.prompts")


class Responder:
    """Answers one request at a time"""

    def respond(self, request: InputRequest) -> Any:
        raise NotImplementedError


class ConsoleResponder(Responder):
    """
    Interactive terminal responder

    Slice selection reads a single key d and answers d-1; address
    requests read one line of hexadecimal text. Without a `read_key`
    callable the key is the first character of a line.
    """

    def __init__(self, read_line: Callable[[str], str] = input, stream=None,
                 read_key: Optional[Callable[[str], str]] = None) -> None:
        self.read_line = read_line
        self.read_key = read_key or self._first_key
        self.stream = stream or sys.stdout

    def _first_key(self, prompt: str) -> str:
        return self.read_line(prompt).strip()[:1]

    def respond(self, request: InputRequest) -> Any:
        if isinstance(request, SliceSelectionRequest):
            for option in request.options:
                self.stream.write(f"{option} ")
            self.stream.write("\n")
            while True:
                key = self.read_key(request.prompt)
                if len(key) == 1 and key in "0123456789":
                    return int(key) - 1
                self.stream.write("Please press a single digit.\n")
        text = self.read_line(request.prompt)
        return parse_address(text)


class ScriptedResponder(Responder):
    """Answers requests from a fixed sequence, in order"""

    def __init__(self, responses: Iterable[Any]) -> None:
        self._responses = list(responses)
        self.answered = []

    def respond(self, request: InputRequest) -> Any:
        if not self._responses:
            raise NoResponseError(f"No scripted response left for '{request.key}'", request_key=request.key)
        answer = self._responses.pop(0)
        self.answered.append((request.key, answer))
        if isinstance(request, HexAddressRequest) and isinstance(answer, str):
            return parse_address(answer)
        return answer


class PresetResponder(Responder):
    """Answers from presets keyed by request key, falling back to another responder"""

    def __init__(self, presets: Optional[Dict[str, Any]] = None, fallback: Optional[Responder] = None) -> None:
        self.presets = {k: v for k, v in (presets or {}).items() if v is not None}
        self.fallback = fallback

    def respond(self, request: InputRequest) -> Any:
        if request.key in self.presets:
            answer = self.presets[request.key]
            logger.debug(f"{request.key} answered from preset: {answer}")
            if isinstance(request, HexAddressRequest) and isinstance(answer, str):
                return parse_address(answer)
            return answer
        if self.fallback is None:
            raise NoResponseError(f"No preset for '{request.key}' and no fallback responder",
                                  request_key=request.key)
        return self.fallback.respond(request)


__all__ = [
    'InputRequest',
    'SliceSelectionRequest',
    'HexAddressRequest',
    'SLICE',
    'DUMP_ADDRESS',
    'CODE_REGISTRATION',
    'METADATA_REGISTRATION',
    'Responder',
    'ConsoleResponder',
    'ScriptedResponder',
    'PresetResponder',
]
