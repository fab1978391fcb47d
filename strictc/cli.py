"""
Command line shell around the engine.

    strictc analyze [--config FILE] [--format json|text] [--fail-on LEVEL]
                    [--jobs N] [--out FILE] [--verbose] files...
    strictc rules

Exit status: 0 when nothing at or above --fail-on was found, 1 otherwise,
2 for a bad configuration or an unreadable input file.
"""

from __future__ import annotations
import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Tuple

from . import __version__
from .aggregator import RunReport
from .config import AnalysisConfig, load_config
from .engine import Engine
from .errors import ConfigError, log, set_verbose
from .model import Diagnostic, Severity

EXIT_CLEAN = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2


# ============================================================
# ===================== DIAGNOSTIC OUTPUT ====================
# ============================================================

def diagnostic_to_json_obj(d: Diagnostic) -> Dict[str, Any]:
    """
    Convert a Diagnostic into a JSON-friendly dict.
    Field order is kept explicit so the output stays stable.
    """
    obj = d.to_dict()
    obj["tool"] = "strictc"
    obj["version"] = __version__
    return obj


def report_to_json_obj(report: RunReport) -> Dict[str, Any]:
    return {
        "files": [
            {
                "path": file_report.path,
                "failed": file_report.failed,
                "suppressed": file_report.suppressed,
                "counts": dict(file_report.counts),
                "diagnostics": [diagnostic_to_json_obj(d) for d in file_report.diagnostics],
            }
            for file_report in report.files
        ],
        "summary": report.summary.to_dict(),
    }


def format_text(report: RunReport) -> str:
    lines: List[str] = []
    for d in report.diagnostics():
        line = f"{d.path}:{d.line}:{d.column}: {d.severity}: {d.message} [{d.rule_id}]"
        if d.fix:
            line += f" (fix: {d.fix})"
        lines.append(line)
    summary = report.summary
    counts = ", ".join(f"{count} {name}" for name, count in summary.counts.items())
    lines.append(f"{summary.files_analyzed} file(s) analysed, {counts}")
    return "\n".join(lines)


def emit_report(report: RunReport, fmt: str = "json", out: Optional[str] = None) -> None:
    """
    Serialize the run report as JSON or as one line per diagnostic.
    """
    if fmt == "json":
        text = json.dumps(report_to_json_obj(report), indent=2, sort_keys=False)
    else:
        text = format_text(report)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)


# ============================================================
# ============================ CLI ===========================
# ============================================================

def read_inputs(paths: List[str]) -> Tuple[List[Tuple[str, bytes]], List[str]]:
    inputs: List[Tuple[str, bytes]] = []
    unreadable: List[str] = []
    for path in paths:
        try:
            with open(path, "rb") as f:
                inputs.append((path, f.read()))
        except OSError as exc:
            log(f"could not read {path}: {exc.strerror or exc}")
            unreadable.append(path)
    return inputs, unreadable


def _run_analyze(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config) if args.config else AnalysisConfig()
        if args.jobs is not None:
            config.jobs = args.jobs
        engine = Engine(config)
    except ConfigError as exc:
        log(f"configuration error: {exc.message}")
        return EXIT_USAGE

    inputs, unreadable = read_inputs(args.files)
    report = engine.analyze_files(inputs)
    emit_report(report, fmt=args.format, out=args.out)

    if unreadable:
        return EXIT_USAGE
    if report.summary.failed(Severity.parse(args.fail_on)):
        return EXIT_FINDINGS
    return EXIT_CLEAN


def _run_rules(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config) if args.config else AnalysisConfig()
        registry = config.build_registry()
    except ConfigError as exc:
        log(f"configuration error: {exc.message}")
        return EXIT_USAGE
    for rule in registry:
        state = str(rule.severity) if rule.enabled else "off"
        print(f"{rule.id:<40} {state:<8} {rule.description}")
    return EXIT_CLEAN


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strictc",
        description="strictc: coding standard compliance checker for C"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_p = subparsers.add_parser(
        "analyze",
        help="Check one or more C source or header files."
    )
    analyze_p.add_argument(
        "--config",
        metavar="CONFIG_YAML",
        help="YAML configuration file (rule severities, parameters, suppression pattern).",
    )
    analyze_p.add_argument(
        "--format",
        choices=("json", "text"),
        default="json",
        help="Output format (default: json).",
    )
    analyze_p.add_argument(
        "--fail-on",
        choices=("error", "warning", "info"),
        default="error",
        help="Lowest severity that makes the exit status non-zero (default: error).",
    )
    analyze_p.add_argument(
        "--jobs",
        type=int,
        metavar="N",
        help="Number of files analysed in parallel.",
    )
    analyze_p.add_argument(
        "--out",
        metavar="OUT_FILE",
        help="Write the report to this file instead of stdout.",
    )
    analyze_p.add_argument(
        "--verbose",
        action="store_true",
        help="Write progress lines to stderr.",
    )
    analyze_p.add_argument(
        "files",
        nargs="+",
        help="C files to analyse."
    )

    rules_p = subparsers.add_parser("rules", help="List the rule corpus.")
    rules_p.add_argument("--config", metavar="CONFIG_YAML", help="Apply this configuration first.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point for strictc.
    Intended usage:
      strictc analyze --format text src/foo.c src/foo.h
    """
    args = build_parser().parse_args(argv)
    set_verbose(getattr(args, "verbose", False))

    if args.command == "analyze":
        return _run_analyze(args)
    if args.command == "rules":
        return _run_rules(args)

    # unreachable if parser is correct
    return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
