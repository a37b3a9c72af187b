"""
Offline Structure Fingerprinter

Usage:
    struct-fingerprinter dump.bin                        # Scan the first 4096 bytes
    struct-fingerprinter dump.bin --base 0x7FF6A0000000  # Address the dump was taken from
    struct-fingerprinter dump.bin --offset 0x200 --length 256
    struct-fingerprinter dump.bin --json scan.json       # Also write the result as JSON
    struct-fingerprinter dump.bin --structure MyObject   # Register the layout as a structure
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .core.address_space import StaticAddressSpace
from .core.errors import FingerprinterError
from .core.scan_controller import ScanController, ScanRequest
from .data.field_candidate import ScanResult
from .export.json_exporter import JSONStructureSink, ScanResultExporter
from .export.structure_exporter import StructureExporter

logger = logging.getLogger(__name__)

DEFAULT_BASE_ADDRESS = 0x140000000


def parse_int(text: str) -> int:
    """Accept decimal or 0x-prefixed hex."""
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")


def print_result(result: ScanResult, show_padding: bool):
    print("=" * 100)
    print(f"Fingerprint of 0x{result.base_address:X} ({result.length} bytes)")
    print("=" * 100)
    print(f"{'Offset':<8} {'Proposed Type':<16} {'Value':<40} {'Proposed Name':<22} Confidence")
    print("-" * 100)
    for candidate in result.visible(show_padding):
        value = candidate.display_value
        if len(value) > 38:
            value = value[:35] + "..."
        print(
            f"{candidate.offset:<8X} {candidate.type_label:<16} {value:<40} "
            f"{candidate.proposed_name:<22} {candidate.confidence}%"
        )
    print("-" * 100)
    summary = ", ".join(f"{k}: {v}" for k, v in sorted(result.type_distribution().items()))
    print(f"{len(result)} fields ({summary})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='struct-fingerprinter',
        description='Propose a structure layout for a raw memory dump',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('dump', type=Path, help='Raw memory dump file')
    parser.add_argument('--base', type=parse_int, default=DEFAULT_BASE_ADDRESS,
                        help='Address of the first byte of the dump (default: 0x140000000)')
    parser.add_argument('--offset', type=parse_int, default=0,
                        help='Offset into the dump where the scan starts')
    parser.add_argument('--length', type=parse_int, default=None,
                        help='Bytes to scan (clamped to the end of the dump)')
    parser.add_argument('--pointer-size', type=int, choices=[4, 8], default=None,
                        help='Pointer width of the process the dump came from')
    parser.add_argument('--module', default="",
                        help='Module name used for module+offset symbols')
    parser.add_argument('--json', type=Path, default=None, help='Write the scan result to this file')
    parser.add_argument('--structure', default=None,
                        help='Register the result as a structure with this name')
    parser.add_argument('--show-padding', action='store_true', help='Include padding runs in the output')
    parser.add_argument('--config', type=Path, default=None, help='Config file to use')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = load_config(args.config)
    if args.pointer_size:
        config.pointer_size = args.pointer_size
    length = args.length or config.default_scan_length

    try:
        space = StaticAddressSpace.from_dump(args.dump, args.base, module=args.module)
    except OSError as e:
        print(f"Could not read {args.dump}: {e}", file=sys.stderr)
        return 1

    controller = ScanController(space, config.scan_settings())
    try:
        result = controller.fingerprint(ScanRequest(args.base + args.offset, length))
    except (FingerprinterError, ValueError) as e:
        print(f"Scan failed: {e}", file=sys.stderr)
        return 1

    print_result(result, args.show_padding or config.show_padding)

    if args.json:
        options = {'show_padding': True, 'include_hex_dump': config.include_hex_dump}
        if not ScanResultExporter(result).export(args.json, options):
            return 1
        print(f"\nScan written to {args.json}")

    if args.structure:
        try:
            sink = JSONStructureSink(config.structures_path)
            elements = StructureExporter(sink).export(args.structure, result)
        except FingerprinterError as e:
            print(f"Could not create structure: {e}", file=sys.stderr)
            return 1
        print(f"\nStructure '{args.structure}' created with {len(elements)} elements "
              f"in {config.structures_path}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
