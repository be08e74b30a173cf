"""
Audit Ledger

Tamper-evident, append-only record of every finished analysis.

On-disk layout: a stream of length-prefixed records (4-byte big-endian
length, then UTF-8 canonical JSON). The first record is a header
{format, version, created}; every following record is one LedgerEntry.
The in-memory index is rebuilt from the file on open. A torn trailing
record (crash mid-write) is truncated away with a warning.

Each entry stores a sanitized projection of the report (no contract
source) together with a SHA-256 hash and an MD5 checksum of that
projection's canonical JSON, so verification needs nothing but the
stored record itself.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import secrets
import struct
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from auditflow.models.findings import AnalysisReport

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct(">I")
LEDGER_FORMAT = "auditflow-ledger"
FORMAT_VERSION = 1
INTEGRITY_VERSION = "1.0.0"
ENVELOPE_VERSION = "1.0.0"
RISK_LEVELS = ("Low", "Medium", "High", "Critical")


class LedgerIOError(Exception):
    """ledger storage could not be read or written"""


class LedgerIntegrityError(Exception):
    """strict verification found altered entries"""

    def __init__(self, report: "IntegrityReport"):
        self.report = report
        super().__init__(f"ledger integrity check failed: {len(report.issues)} issue(s)")


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_hash(data: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def compute_checksum(data: Dict[str, Any]) -> str:
    return hashlib.md5(canonical_json(data).encode("utf-8")).hexdigest()


def generate_entry_id() -> str:
    return f"led_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def sanitize_report(report: AnalysisReport) -> Dict[str, Any]:
    """projection stored in the ledger: scores, findings summary, no source"""
    meta = report.metadata
    data: Dict[str, Any] = {
        "auditId": meta.analysis_id,
        "status": report.status.value,
        "type": meta.analysis_mode.value,
        "timestamp": meta.timestamp,
        "executionTime": meta.execution_time,
        "fingerprint": meta.fingerprint,
        "contractInfo": {
            "name": meta.contract_name,
            "address": meta.contract_address,
            "chain": meta.chain,
        },
        "agentsUsed": list(meta.agents_used),
        "failedAgents": list(meta.failed_agents),
        "partial": meta.partial,
        "fromCache": meta.from_cache,
        "vulnerabilities": [
            {
                "name": f.name,
                "severity": f.severity.label,
                "category": f.category,
                "confidence": round(f.confidence, 3),
            }
            for f in report.vulnerabilities
        ],
        "overallScore": report.overall_score,
        "riskLevel": report.risk_level.value,
        "severityCounts": report.severity_counts(),
    }
    if meta.error or report.error_message:
        data["error"] = report.error_message or "analysis failed"
    return data


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    timestamp: str
    hash: str
    data: Dict[str, Any]
    checksum: str
    version: str = INTEGRITY_VERSION

    @classmethod
    def create(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            entry_id=generate_entry_id(),
            timestamp=datetime.now(UTC).isoformat(),
            hash=compute_hash(data),
            data=data,
            checksum=compute_checksum(data),
        )

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "LedgerEntry":
        """stored values are taken verbatim, never recomputed"""
        integrity = record.get("integrity") or {}
        return cls(
            entry_id=str(record.get("id", "")),
            timestamp=str(record.get("timestamp", "")),
            hash=str(record.get("hash", "")),
            data=record.get("data") if isinstance(record.get("data"), dict) else {},
            checksum=str(integrity.get("checksum", "")),
            version=str(integrity.get("version", INTEGRITY_VERSION)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "timestamp": self.timestamp,
            "hash": self.hash,
            "data": self.data,
            "integrity": {"checksum": self.checksum, "version": self.version},
        }

    @property
    def created_at(self) -> Optional[datetime]:
        return _parse_timestamp(self.timestamp)

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    def __repr__(self) -> str:
        return f"LedgerEntry({self.entry_id}, {self.status}, score={self.data.get('overallScore')})"


@dataclass(frozen=True)
class IntegrityViolation:
    entry_id: str
    issue: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"entryId": self.entry_id, "issue": self.issue, "expected": self.expected, "actual": self.actual}


@dataclass
class IntegrityReport:
    verified: bool
    total_entries: int = 0
    issues: List[IntegrityViolation] = field(default_factory=list)
    verified_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "verified": self.verified,
            "totalEntries": self.total_entries,
            "issues": [i.to_dict() for i in self.issues],
            "verifiedAt": self.verified_at,
        }
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class LedgerQuery:
    """history filter. dates are inclusive bounds on the entry timestamp."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[str] = None
    risk_level: Optional[str] = None
    contract: Optional[str] = None
    limit: int = 50
    offset: int = 0

    def matches(self, entry: LedgerEntry) -> bool:
        data = entry.data
        if self.status and data.get("status") != self.status:
            return False
        if self.risk_level and str(data.get("riskLevel", "")).lower() != self.risk_level.lower():
            return False
        if self.contract:
            info = data.get("contractInfo") or {}
            needle = self.contract.lower()
            candidates = [str(info.get("address") or "").lower(), str(info.get("name") or "").lower()]
            if needle not in candidates:
                return False
        if self.start_date or self.end_date:
            created = entry.created_at
            if created is None:
                return False
            if self.start_date and created < _aware(self.start_date):
                return False
            if self.end_date and created > _aware(self.end_date):
                return False
        return True


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@dataclass
class LedgerStatistics:
    total_audits: int = 0
    successful_audits: int = 0
    failed_audits: int = 0
    risk_level_distribution: Dict[str, int] = field(default_factory=dict)
    average_score: int = 0
    total_vulnerabilities: int = 0
    recent_activity: Dict[str, int] = field(default_factory=dict)
    top_vulnerabilities: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAudits": self.total_audits,
            "successfulAudits": self.successful_audits,
            "failedAudits": self.failed_audits,
            "riskLevelDistribution": dict(self.risk_level_distribution),
            "averageScore": self.average_score,
            "totalVulnerabilities": self.total_vulnerabilities,
            "recentActivity": dict(self.recent_activity),
            "topVulnerabilities": list(self.top_vulnerabilities),
        }


def _encode_record(record: Dict[str, Any]) -> bytes:
    payload = canonical_json(record).encode("utf-8")
    return LENGTH_PREFIX.pack(len(payload)) + payload


def _scan(fh) -> Iterator[Tuple[int, Optional[Dict[str, Any]], bool]]:
    """yield (offset, record or None if undecodable, complete) for every framed record"""
    while True:
        offset = fh.tell()
        prefix = fh.read(LENGTH_PREFIX.size)
        if not prefix:
            return
        if len(prefix) < LENGTH_PREFIX.size:
            yield offset, None, False
            return
        (length,) = LENGTH_PREFIX.unpack(prefix)
        payload = fh.read(length)
        if len(payload) < length:
            yield offset, None, False
            return
        try:
            record = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            record = None
        yield offset, record if isinstance(record, dict) else None, True


class AuditLedger:
    """
    Append-only audit ledger

    Usage:
        ledger = AuditLedger("data/ledger/audit.ledger")
        entry = ledger.append(report)
        ledger.query(LedgerQuery(status="failed", limit=10))
        ledger.verify_integrity().verified
    """

    def __init__(self, path: Optional[Path] = None, enabled: bool = True):
        if path is None:
            from auditflow.config import config
            path = config.ledger_path
            enabled = enabled and config.LEDGER_ENABLED
        self.path = Path(path)
        self.enabled = enabled
        self.created: Optional[str] = None
        self._entries: List[LedgerEntry] = []
        self._offsets: Dict[str, int] = {}
        self._lock = threading.Lock()

        if self.enabled:
            self._open()

    def _open(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists() or self.path.stat().st_size == 0:
                self._write_header()
                return
            self._load()
        except OSError as e:
            raise LedgerIOError(f"cannot open ledger {self.path}: {e}") from e

    def _write_header(self) -> None:
        self.created = datetime.now(UTC).isoformat()
        header = {"format": LEDGER_FORMAT, "version": FORMAT_VERSION, "created": self.created}
        with open(self.path, "wb") as fh:
            fh.write(_encode_record(header))
            fh.flush()
            os.fsync(fh.fileno())
        logger.info(f"[ledger] created {self.path}")

    def _load(self) -> None:
        torn_at = None
        skipped = 0
        with open(self.path, "rb") as fh:
            records = _scan(fh)
            first = next(records, None)
            if first is None or not first[2] or not first[1] or first[1].get("format") != LEDGER_FORMAT:
                raise LedgerIOError(f"{self.path} is not an audit ledger")
            self.created = first[1].get("created")

            for offset, record, complete in records:
                if not complete:
                    torn_at = offset
                    break
                if record is None:
                    skipped += 1
                    continue
                entry = LedgerEntry.from_dict(record)
                self._entries.append(entry)
                self._offsets[entry.entry_id] = offset

        if torn_at is not None:
            logger.warning(
                f"[ledger] truncating torn trailing record at byte {torn_at}",
                extra={"path": str(self.path)},
            )
            with open(self.path, "r+b") as fh:
                fh.truncate(torn_at)
                fh.flush()
                os.fsync(fh.fileno())
        if skipped:
            logger.warning(f"[ledger] {skipped} unreadable record(s) in {self.path}; run verify")
        logger.info(f"[ledger] loaded {len(self._entries)} entries from {self.path}")

    def _write_entry(self, entry: LedgerEntry) -> None:
        with open(self.path, "ab") as fh:
            offset = fh.tell()
            fh.write(_encode_record(entry.to_dict()))
            fh.flush()
            os.fsync(fh.fileno())
        self._entries.append(entry)
        self._offsets[entry.entry_id] = offset

    def append(self, report: AnalysisReport) -> Optional[LedgerEntry]:
        """record one finished report. no-op returning None when disabled."""
        if not self.enabled:
            return None
        entry = LedgerEntry.create(sanitize_report(report))
        with self._lock:
            try:
                self._write_entry(entry)
            except OSError as e:
                raise LedgerIOError(f"ledger append failed: {e}") from e
        logger.info(
            f"[ledger] appended {entry.entry_id}",
            extra={"analysis_id": report.analysis_id, "status": report.status.value},
        )
        return entry

    def entries(self) -> List[LedgerEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        with self._lock:
            if entry_id not in self._offsets:
                return None
            return next((e for e in self._entries if e.entry_id == entry_id), None)

    def query(self, query: Optional[LedgerQuery] = None) -> List[LedgerEntry]:
        """filtered history, newest first"""
        if not self.enabled:
            return []
        query = query or LedgerQuery()
        matched = [e for e in reversed(self.entries()) if query.matches(e)]
        offset = max(0, query.offset)
        if query.limit is None or query.limit <= 0:
            return matched[offset:]
        return matched[offset:offset + query.limit]

    def statistics(self, now: Optional[datetime] = None) -> Optional[LedgerStatistics]:
        if not self.enabled:
            return None
        entries = self.entries()
        now = _aware(now) if now else datetime.now(UTC)

        completed = [e for e in entries if e.status == "completed"]
        stats = LedgerStatistics(
            total_audits=len(entries),
            successful_audits=len(completed),
            failed_audits=sum(1 for e in entries if e.status == "failed"),
            risk_level_distribution={
                level: sum(1 for e in entries if e.data.get("riskLevel") == level) for level in RISK_LEVELS
            },
        )
        if completed:
            stats.average_score = int(round(sum(e.data.get("overallScore") or 0 for e in completed) / len(completed)))
        stats.total_vulnerabilities = sum(len(e.data.get("vulnerabilities") or []) for e in completed)

        day, week = now - timedelta(hours=24), now - timedelta(days=7)
        stamps = [e.created_at for e in entries]
        stats.recent_activity = {
            "last24Hours": sum(1 for t in stamps if t and t > day),
            "last7Days": sum(1 for t in stamps if t and t > week),
        }

        counts: Dict[Tuple[str, str], int] = {}
        for entry in entries:
            for vuln in entry.data.get("vulnerabilities") or []:
                key = (str(vuln.get("category")), str(vuln.get("severity")))
                counts[key] = counts.get(key, 0) + 1
        top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:10]
        stats.top_vulnerabilities = [
            {"category": category, "severity": severity, "count": count}
            for (category, severity), count in top
        ]
        return stats

    def verify_integrity(self, strict: bool = False) -> IntegrityReport:
        """recompute hash and checksum of every entry as stored on disk"""
        if not self.enabled:
            return IntegrityReport(verified=False, reason="ledger disabled")

        issues: List[IntegrityViolation] = []
        total = 0
        with self._lock:
            try:
                with open(self.path, "rb") as fh:
                    records = _scan(fh)
                    next(records, None)
                    for offset, record, complete in records:
                        total += 1
                        if not complete:
                            issues.append(IntegrityViolation(f"@{offset}", "Truncated record"))
                            break
                        if record is None:
                            issues.append(IntegrityViolation(f"@{offset}", "Unreadable record"))
                            continue
                        entry = LedgerEntry.from_dict(record)
                        expected_hash = compute_hash(entry.data)
                        if entry.hash != expected_hash:
                            issues.append(IntegrityViolation(entry.entry_id, "Hash mismatch", expected_hash, entry.hash))
                        expected_checksum = compute_checksum(entry.data)
                        if entry.checksum != expected_checksum:
                            issues.append(IntegrityViolation(
                                entry.entry_id, "Checksum mismatch", expected_checksum, entry.checksum,
                            ))
            except OSError as e:
                logger.error(f"[ledger] verification could not read {self.path}: {e}")
                return IntegrityReport(verified=False, reason=str(e))

        report = IntegrityReport(verified=not issues, total_entries=total, issues=issues)
        if issues:
            logger.warning(f"[ledger] integrity check found {len(issues)} issue(s) in {total} entries")
            if strict:
                raise LedgerIntegrityError(report)
        return report

    def export_envelope(self) -> Dict[str, Any]:
        """whole-ledger document {version, created, audits, metadata}"""
        entries = self.entries()
        return {
            "version": ENVELOPE_VERSION,
            "created": self.created,
            "audits": [e.to_dict() for e in entries],
            "metadata": {
                "totalAudits": len(entries),
                "lastAudit": entries[-1].timestamp if entries else None,
            },
        }

    def import_envelope(self, path: Path) -> int:
        """migrate a legacy whole-file envelope (plain or base64 JSON). returns entries added."""
        if not self.enabled:
            return 0
        try:
            raw = Path(path).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise LedgerIOError(f"cannot read envelope {path}: {e}") from e

        envelope = _decode_envelope(raw)
        audits = envelope.get("audits")
        if not isinstance(audits, list):
            raise LedgerIOError(f"{path}: envelope has no audits list")

        added = 0
        with self._lock:
            for record in audits:
                if not isinstance(record, dict):
                    continue
                entry = LedgerEntry.from_dict(record)
                if not entry.entry_id or entry.entry_id in self._offsets:
                    continue
                try:
                    self._write_entry(entry)
                except OSError as e:
                    raise LedgerIOError(f"import failed after {added} entries: {e}") from e
                added += 1
        logger.info(f"[ledger] imported {added}/{len(audits)} entries from {path}")
        return added


def _decode_envelope(raw: str) -> Dict[str, Any]:
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError:
        try:
            envelope = json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LedgerIOError(f"envelope is neither JSON nor base64 JSON: {e}") from e
    if not isinstance(envelope, dict):
        raise LedgerIOError("envelope must be a JSON object")
    return envelope
