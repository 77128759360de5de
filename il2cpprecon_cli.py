#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
il2cpprecon - Registration Recovery CLI Tool

Usage:
    python il2cpprecon_cli.py libil2cpp.so global-metadata.dat
    python il2cpprecon_cli.py GameAssembly.dll global-metadata.dat -o out/
    python il2cpprecon_cli.py UnityFramework global-metadata.dat --slice 1
    python il2cpprecon_cli.py dump.so global-metadata.dat --dump-address 7a8b000000
    python il2cpprecon_cli.py libil2cpp.so global-metadata.dat \\
        --code-registration 1A2B3C0 --metadata-registration 1A2C000
"""

import sys
import json
import argparse
from dataclasses import replace
from pathlib import Path

from il2cpprecon.core import (
    Il2CppReconConfig,
    Il2CppReconError,
    default_config,
    load_config,
    ConfigValidationError,
    format_exception,
    setup_logging_from_config,
)
from il2cpprecon.core.requests import SLICE, DUMP_ADDRESS, CODE_REGISTRATION, METADATA_REGISTRATION
from il2cpprecon.pipeline import (
    ConsoleResponder,
    PresetResponder,
    RecoverySession,
    generate_assemblies,
)

REPORT_NAME = "il2cpprecon_report.json"


def build_config(args) -> Il2CppReconConfig:
    """Configuration file first, then command line flags"""
    config = load_config(args.config) if args.config else replace(default_config)

    if args.force_dump:
        config.force_dump = True
    if args.no_redirected_pointer:
        config.no_redirected_pointer = True
    if args.force_version is not None:
        config.force_il2cpp_version = True
        config.force_version = args.force_version
    if args.output:
        config.output_dir = Path(args.output)
    if args.no_report:
        config.output_report = False
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = Path(args.log_file)
    return config


def build_responder(args) -> PresetResponder:
    presets = {
        SLICE: args.slice - 1 if args.slice is not None else None,
        DUMP_ADDRESS: args.dump_address,
        CODE_REGISTRATION: args.code_registration,
        METADATA_REGISTRATION: args.metadata_registration,
    }
    fallback = None if args.non_interactive else ConsoleResponder()
    return PresetResponder(presets, fallback=fallback)


def write_report(config: Il2CppReconConfig, result, assemblies) -> Path:
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    report = result.to_dict()
    report['assemblies'] = [a.to_dict() for a in assemblies]
    path = output_dir / REPORT_NAME
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2)
    return path


def run(args) -> int:
    config = build_config(args)
    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors), errors=errors)

    setup_logging_from_config(config)

    il2cpp_bytes = Path(args.il2cpp).read_bytes()
    metadata_bytes = Path(args.metadata).read_bytes()

    session = RecoverySession(il2cpp_bytes, metadata_bytes, config)
    result = session.run(build_responder(args))

    if not result.success:
        print("[-] Registration recovery failed")
        print(f"    {format_exception(result.error)}")
        return 1

    assemblies = generate_assemblies(result.metadata, result.image, config=config)

    print(f"[+] Registration recovered ({result.image.kind.value}, version {result.image.version})")
    print(f"    CodeRegistration:     0x{result.addresses.code_registration:X}")
    print(f"    MetadataRegistration: 0x{result.addresses.metadata_registration:X}")
    if result.manual:
        print("    Mode: manual")
    if result.linked:
        print(f"    Metadata image base:  0x{result.metadata.image_base:X}")
    print(f"    Assemblies: {len(assemblies)}")

    if config.output_report:
        path = write_report(config, result, assemblies)
        print(f"    Report: {path}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="il2cpprecon",
        description="Recover CodeRegistration / MetadataRegistration from an il2cpp binary",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('il2cpp', help='il2cpp executable (GameAssembly.dll, libil2cpp.so, main, ...)')
    parser.add_argument('metadata', help='global-metadata.dat')
    parser.add_argument('-c', '--config', help='YAML configuration file')
    parser.add_argument('-o', '--output', help='Output directory for the report')
    parser.add_argument('--no-report', action='store_true', help='Do not write the JSON report')

    dump = parser.add_argument_group('dump handling')
    dump.add_argument('--force-dump', action='store_true', help='Treat the binary as a memory dump')
    dump.add_argument('--no-redirected-pointer', action='store_true',
                      help='Keep the file layout after a dump address is given')
    dump.add_argument('--dump-address', help='Dump base address (hex), 0 to continue unchanged')

    search = parser.add_argument_group('registration search')
    search.add_argument('--force-version', type=float, help='Override the il2cpp version')
    search.add_argument('--slice', type=int, help='Fat Mach-O slice number (1-based)')
    search.add_argument('--code-registration', help='CodeRegistration address (hex)')
    search.add_argument('--metadata-registration', help='MetadataRegistration address (hex)')
    search.add_argument('--non-interactive', action='store_true',
                        help='Fail instead of prompting when an answer is missing')

    logs = parser.add_argument_group('logging')
    logs.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    logs.add_argument('--log-file', help='Also write the log to this file')

    args = parser.parse_args()

    try:
        sys.exit(run(args))
    except Il2CppReconError as e:
        print(f"[-] {format_exception(e)}")
        sys.exit(1)
    except OSError as e:
        print(f"[-] {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
