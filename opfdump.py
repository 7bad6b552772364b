#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
import zipfile
from pathlib import Path

from lxml import etree as LXML_ET

from opfgraph.archive import read_package
from opfgraph.env import read_env
from opfgraph.errors import OpfError
from opfgraph.media_types import SupportConfig
from opfgraph.parser import parse
from opfgraph.report import render_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Summarize the package document of an EPUB file or a bare OPF file."
    )
    parser.add_argument("input", help="EPUB or OPF file path")
    parser.add_argument(
        "--rootfile",
        default=None,
        help="Archive path of the OPF when INPUT is a bare .opf file",
    )
    parser.add_argument(
        "--supported",
        action="append",
        default=[],
        metavar="MEDIA_TYPE",
        help="Treat MEDIA_TYPE as supported in addition to the EPUB core media types",
    )
    parser.add_argument(
        "--unsupported",
        action="append",
        default=[],
        metavar="MEDIA_TYPE",
        help="Treat MEDIA_TYPE as unsupported even if it is a core media type",
    )
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=(read_env("OPFGRAPH_LOG_LEVEL") or "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    env_config = SupportConfig.from_env()
    config = SupportConfig.of(
        additional=[*env_config.additional_supported, *args.supported],
        excluded=[*env_config.excluded_supported, *args.unsupported],
    )
    try:
        if input_path.suffix.lower() == ".opf":
            package = parse(input_path.read_bytes(), rootfile_path=args.rootfile or input_path.name)
        else:
            package = read_package(input_path)
    except (OpfError, LXML_ET.XMLSyntaxError, zipfile.BadZipFile) as exc:
        print(f"Cannot read package: {exc}", file=sys.stderr)
        return 1

    sys.stdout.write(render_summary(package, config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
