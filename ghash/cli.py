from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__
from .config import ExcludeRules, GhashConfig
from .core import PARALLELISM
from .dups import find_duplicates
from .errors import FatalError, PipelineError
from .generate import generate
from .hashes import DEFAULT_ALGORITHM, available_algorithms
from .manifest import ManifestWriter
from .output import open_output
from .verify import verify_manifest


PROG = "ghash"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format=f"{PROG}: %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Generate and verify strong checksums for files and directory trees",
    )
    parser.add_argument("names", nargs="*", help="Files or directories to hash")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s - {__version__}")
    parser.add_argument("-r", "--recurse", action="store_true", help="Recursively traverse directories")
    parser.add_argument("-x", "--one-filesystem", action="store_true", help="Don't cross file system boundaries")
    parser.add_argument("-L", "--follow-symlinks", action="store_true", help="Follow symbolic links")
    parser.add_argument("-H", "--hash", dest="algorithm", default=DEFAULT_ALGORITHM, metavar="H", help="Use hash algorithm H [%(default)s]")
    parser.add_argument("--list-hashes", action="store_true", help="List supported hash algorithms")
    parser.add_argument("-v", "--verify-from", metavar="F", default=None, help="Verify the hashes in file F ('-' for stdin)")
    parser.add_argument("-o", "--output", metavar="O", default=None, help="Write hashes to file O [stdout]")
    parser.add_argument("-f", "--force-overwrite", dest="force", action="store_true", help="Forcibly overwrite output file")
    parser.add_argument("-j", "--parallelism", type=int, default=PARALLELISM, help="Workers per CPU [%(default)s]")
    parser.add_argument("-i", "--ignore", dest="excludes", action="append", default=[], help="Skip names matching this pattern when recursing")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding the persisted exclude list")
    parser.add_argument("--report", metavar="R", default=None, help="Save a verification report (.xlsx, .csv or .json)")
    parser.add_argument("--dups", action="store_true", help="Find duplicate files under the named directories")
    parser.add_argument("-s", "--shell", action="store_true", help="With --dups, emit shell commands")
    parser.add_argument("--debug", action="store_true", help="Verbose diagnostics on stderr")
    return parser


def _config_from_args(args: argparse.Namespace) -> GhashConfig:
    rules = ExcludeRules(args.config_dir)
    return GhashConfig(
        algorithm=args.algorithm,
        recurse=args.recurse,
        follow_symlinks=args.follow_symlinks,
        one_filesystem=args.one_filesystem,
        output=args.output,
        force=args.force,
        verify_from=args.verify_from,
        parallelism=max(1, args.parallelism),
        excludes=rules.merged(args.excludes),
    )


def _warn(failures: Sequence[PipelineError]) -> None:
    for failure in failures:
        print(f"{PROG}: {failure}", file=sys.stderr)


def _run_verify(config: GhashConfig, report_path: Optional[str]) -> int:
    summary = verify_manifest(config.verify_from, parallelism=config.parallelism)
    _warn(summary.failures)
    if report_path:
        from .report import save_report

        save_report(report_path, summary)
    return summary.exit_code


def _run_generate(names: List[str], config: GhashConfig) -> int:
    config.factory()
    sink = open_output(config.output, force=config.force)
    try:
        writer = ManifestWriter(sink, config.algorithm)
        summary = generate(names, config, writer.write_result)
    except BaseException:
        sink.abort()
        raise
    sink.close()
    _warn(summary.failures)
    return summary.exit_code


def _run_dups(names: List[str], config: GhashConfig, shell: bool) -> int:
    report = find_duplicates(
        names,
        follow_symlinks=config.follow_symlinks,
        one_filesystem=config.one_filesystem,
        excludes=config.excludes,
        parallelism=config.parallelism,
    )
    for line in report.render(shell=shell):
        print(line)
    _warn(report.failures)
    return 0 if not report.failures else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    if args.list_hashes:
        print(f"{PROG}: Available hash algorithms:")
        for name in available_algorithms():
            print(f"   {name}")
        return 0

    try:
        config = _config_from_args(args)
        if config.verify_from:
            return _run_verify(config, args.report)
        if not args.names:
            raise FatalError(f"Insufficient arguments. Try '{PROG} -h'")
        if args.dups:
            return _run_dups(args.names, config, args.shell)
        return _run_generate(args.names, config)
    except FatalError as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
