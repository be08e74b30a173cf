"""auditflow command line: analyze contracts and inspect the audit ledger"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from auditflow.agent.analyzers import available_agents
from auditflow.agent.orchestrator import AnalysisOrchestrator
from auditflow.cal.preprocessor import PreprocessingError
from auditflow.config import PipelineConfig
from auditflow.ledger.audit_ledger import AuditLedger, LedgerIOError, LedgerQuery
from auditflow.models.findings import AnalysisReport
from auditflow.utils.llm_backend import create_backend
from auditflow.utils.logging import configure_logging
from auditflow.utils.validation import ValidationError

RULE = "=" * 70


def _print_errors(title: str, errors: List[str]) -> None:
    print("\n" + RULE)
    print(title)
    print(RULE)
    for error in errors:
        print(f"  {error}")
    print(RULE + "\n")


def format_report(report: AnalysisReport) -> str:
    meta = report.metadata
    lines = [
        RULE,
        f"{meta.contract_name} ({meta.chain}) - {report.status.value.upper()}",
        RULE,
        f"Overall score: {report.overall_score}/100   Risk: {report.risk_level.value}",
        f"Agents: {', '.join(meta.agents_used) or '-'}"
        + (f"   Failed: {', '.join(meta.failed_agents)}" if meta.failed_agents else ""),
        f"Analysis id: {meta.analysis_id}   Time: {meta.execution_time}ms"
        + ("   (cached)" if meta.from_cache else ""),
        "",
        report.summary,
    ]
    if report.vulnerabilities:
        lines += ["", "Findings:"]
        for finding in report.vulnerabilities:
            where = f" lines {finding.line_start}-{finding.line_end}" if finding.has_lines else ""
            lines.append(
                f"  [{finding.severity.label}] {finding.name} ({finding.category}{where}, "
                f"confidence {finding.confidence:.2f}, by {', '.join(finding.detected_by)})"
            )
            if finding.remediation:
                lines.append(f"      fix: {finding.remediation}")
    if report.recommendations:
        lines += ["", "Recommendations:"]
        lines += [f"  - {r}" for r in report.recommendations]
    if report.gas_optimizations:
        lines += ["", "Gas optimizations:"]
        lines += [f"  - {g.description}" for g in report.gas_optimizations]
    lines += ["", f"Code quality: {report.code_quality.score}/100", RULE]
    return "\n".join(lines)


def _parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 date: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auditflow",
        description="Multi-agent smart contract analysis with a tamper-evident audit ledger",
    )
    parser.add_argument("--ledger", type=Path, help="Ledger file (default: LEDGER_PATH or data/ledger/audit.ledger)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a Solidity contract")
    analyze.add_argument("contract", type=Path, help="Path to Solidity source")
    analyze.add_argument(
        "--agents",
        help="Comma-separated agent ids (" + ", ".join(a["id"] for a in available_agents()) + ")",
    )
    analyze.add_argument("--mode", choices=("quick", "comprehensive"), default="comprehensive")
    analyze.add_argument("--chain", default="ethereum")
    analyze.add_argument("--address", help="Deployed contract address, recorded in the ledger")
    analyze.add_argument("--backend", choices=("http", "heuristic"), help="Inference backend (default: auto)")
    analyze.add_argument("--timeout", type=float, help="Overall deadline in seconds")
    analyze.add_argument("--json", action="store_true", help="Print the report as JSON")

    history = sub.add_parser("history", help="List ledger entries, newest first")
    history.add_argument("--status", choices=("completed", "failed"))
    history.add_argument("--risk", choices=("Low", "Medium", "High", "Critical"))
    history.add_argument("--contract", help="Contract address or name")
    history.add_argument("--since", type=_parse_date, help="ISO-8601 start date")
    history.add_argument("--until", type=_parse_date, help="ISO-8601 end date")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--offset", type=int, default=0)

    sub.add_parser("stats", help="Aggregate ledger statistics")

    verify = sub.add_parser("verify", help="Verify ledger integrity")
    verify.add_argument("--strict", action="store_true", help="Exit non-zero on any issue")

    export = sub.add_parser("export", help="Export the ledger as a JSON envelope")
    export.add_argument("path", type=Path)

    imp = sub.add_parser("import", help="Import a legacy JSON (or base64 JSON) envelope")
    imp.add_argument("path", type=Path)

    return parser


async def _run_analysis(args, settings: PipelineConfig) -> int:
    try:
        source = args.contract.read_text(encoding="utf-8")
    except OSError as e:
        _print_errors("INPUT ERROR:", [str(e)])
        return 1

    payload = {"contractCode": source, "chain": args.chain, "analysisMode": args.mode}
    if args.agents:
        payload["agents"] = [a.strip() for a in args.agents.split(",") if a.strip()]
    if args.address:
        payload["contractAddress"] = args.address

    ledger = AuditLedger(settings.ledger_path, enabled=settings.LEDGER_ENABLED)
    backend = create_backend(args.backend, settings=settings)
    try:
        async with AnalysisOrchestrator(backend=backend, settings=settings, ledger=ledger) as orchestrator:
            report = await orchestrator.analyze(payload, timeout=args.timeout)
    except ValidationError as e:
        _print_errors("VALIDATION ERRORS:", str(e).split("; "))
        return 2
    except PreprocessingError as e:
        _print_errors("PREPROCESSING ERROR:", [str(e)])
        return 1
    except asyncio.TimeoutError:
        _print_errors("TIMEOUT:", [f"no report within {args.timeout}s"])
        return 1
    finally:
        await backend.aclose()

    print(report.to_json() if args.json else format_report(report))
    return 0 if report.status.value == "completed" else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    settings = PipelineConfig.from_env(LEDGER_PATH=args.ledger)

    if args.command == "analyze":
        return asyncio.run(_run_analysis(args, settings))

    try:
        ledger = AuditLedger(settings.ledger_path, enabled=settings.LEDGER_ENABLED)
    except LedgerIOError as e:
        _print_errors("LEDGER ERROR:", [str(e)])
        return 1
    if not ledger.enabled:
        print("Ledger is disabled (LEDGER_ENABLED=false)")
        return 1

    if args.command == "history":
        entries = ledger.query(LedgerQuery(
            start_date=args.since,
            end_date=args.until,
            status=args.status,
            risk_level=args.risk,
            contract=args.contract,
            limit=args.limit,
            offset=args.offset,
        ))
        for entry in entries:
            data = entry.data
            name = (data.get("contractInfo") or {}).get("name", "?")
            print(
                f"{entry.timestamp}  {entry.entry_id}  {data.get('status', '?'):<9}  "
                f"{str(data.get('riskLevel', '?')):<8}  {data.get('overallScore', '-'):>3}  {name}"
            )
        if not entries:
            print("No matching entries")
        return 0

    if args.command == "stats":
        print(json.dumps(ledger.statistics().to_dict(), indent=2))
        return 0

    if args.command == "verify":
        result = ledger.verify_integrity()
        print(json.dumps(result.to_dict(), indent=2))
        return 1 if args.strict and not result.verified else 0

    if args.command == "export":
        args.path.write_text(json.dumps(ledger.export_envelope(), indent=2), encoding="utf-8")
        print(f"Exported {len(ledger)} entries to {args.path}")
        return 0

    if args.command == "import":
        try:
            added = ledger.import_envelope(args.path)
        except LedgerIOError as e:
            _print_errors("IMPORT ERROR:", [str(e)])
            return 1
        print(f"Imported {added} entries")
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
