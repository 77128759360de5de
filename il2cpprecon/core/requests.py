# -*- coding: utf-8 -*-
"""
il2cpprecon/core/requests.py - Operator input requests

Pipeline steps that need an answer from the operator are generators: they
yield one of these requests and receive the answer through send().
"""

from dataclasses import dataclass, field
from typing import List

# Request keys
SLICE = "slice"
DUMP_ADDRESS = "dump_address"
CODE_REGISTRATION = "code_registration"
METADATA_REGISTRATION = "metadata_registration"


@dataclass
class InputRequest:
    key: str
    prompt: str


@dataclass
class SliceSelectionRequest(InputRequest):
    """Choose one slice of a fat Mach-O; the answer is a zero-based index"""
    key: str = SLICE
    prompt: str = "Select Platform: "
    options: List[str] = field(default_factory=list)


@dataclass
class HexAddressRequest(InputRequest):
    """Ask for an address; the answer is an int or hexadecimal text"""
    pass


def dump_address_request() -> HexAddressRequest:
    return HexAddressRequest(DUMP_ADDRESS, "Input il2cpp dump address or input 0 to force continue:")


def code_registration_request() -> HexAddressRequest:
    return HexAddressRequest(CODE_REGISTRATION, "Input CodeRegistration: ")


def metadata_registration_request() -> HexAddressRequest:
    return HexAddressRequest(METADATA_REGISTRATION, "Input MetadataRegistration: ")
