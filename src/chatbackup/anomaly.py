"""Rule-based scanner for undefined terms, equations, code stubs and entities."""

from __future__ import annotations

import re
from collections import Counter
from typing import NamedTuple

from .config import ANOMALY_BUFFER_LIMIT, BITSTREAM_MAX_CHARS, SCANNER_TAG
from .formatting import iso_now
from .models import Anomaly, AnomalyType, AuditReport, Severity


class AnomalyRule(NamedTuple):
    pattern: re.Pattern
    type: AnomalyType
    reason: str
    severity: Severity


DEFAULT_RULES: list[AnomalyRule] = [
    AnomalyRule(
        re.compile(
            r"\b(undefined|undefined_variable|unknown_constant|delta_str|unknown_value"
            r"|null_reference|void_parameter)\b",
            re.IGNORECASE,
        ),
        "WORD",
        "Jargon or term used without proper context or definition",
        "low",
    ),
    AnomalyRule(
        re.compile(r"(Delta-[a-z]+|Unknown-[A-Z]+|Var_[0-9]+|X_[a-z]+|undef_[a-z]+)"),
        "EQUATION",
        "Mathematical variable or constant not properly defined",
        "high",
    ),
    AnomalyRule(
        re.compile(
            r"(function\s+[a-z0-9]*\s*\(\s*\)\s*\{?\s*\}"
            r"|class\s+[A-Z][a-z]+\s*\{?\s*\}"
            r"|for\s*\(\s*[a-z]+\s*in\s*undefined\s*\))"
        ),
        "CODE",
        "Code fragment lacks implementation or proper syntax",
        "high",
    ),
    AnomalyRule(
        re.compile(r"\b(ENTITY_[0-9]+|UNDEF_\w+|UNKNOWN_\w+|MYSTERY_\w+|ANOMALY_\w+)\b", re.IGNORECASE),
        "ENTITY",
        "Named entity or concept without clear definition",
        "medium",
    ),
]

SEVERITY_BY_TYPE: dict[str, Severity] = {
    "WORD": "low",
    "ENTITY": "medium",
    "EQUATION": "high",
    "CODE": "high",
    "UNKNOWN": "low",
}

ENTITY_PATTERNS = [
    re.compile(r"\b[A-Z][a-z]+(?:System|Network|Data|Core|Vessel|Bridge|Matrix)\b"),
    re.compile(r"\b(?:EMG|CORE|MEMORY|SYSTEM|NEURAL|QUANTUM|CYPBER)\b", re.IGNORECASE),
    re.compile(r"\b(?:undefined|unknown|variable|parameter|constant)\s+[a-z0-9_]+", re.IGNORECASE),
]

_NULLISH = re.compile(r"null|undefined|void", re.IGNORECASE)


def detect_anomalies(text: str, rules: list[AnomalyRule] = DEFAULT_RULES) -> list[Anomaly]:
    """Scan ``text`` line by line; each rule reports at most its first hit per line."""
    anomalies: list[Anomaly] = []
    position = 0

    for line_no, line in enumerate(text.split("\n"), 1):
        for rule in rules:
            match = rule.pattern.search(line)
            if match:
                anomalies.append(
                    Anomaly(
                        type=rule.type,
                        item=match.group(0),
                        reason=rule.reason,
                        position=position,
                        line=line_no,
                        severity=rule.severity,
                    )
                )
        position += len(line) + 1

    return anomalies


def scan_buffer(buffer: str, rules: list[AnomalyRule] = DEFAULT_RULES) -> list[Anomaly]:
    """Scan the tail of a chat buffer, capped at ANOMALY_BUFFER_LIMIT chars."""
    if len(buffer) > ANOMALY_BUFFER_LIMIT:
        buffer = buffer[-ANOMALY_BUFFER_LIMIT:]
    return detect_anomalies(buffer, rules)


def severity_for(anomaly_type: str) -> Severity:
    return SEVERITY_BY_TYPE.get(anomaly_type, "low")


def anomaly_stats(anomalies: list[Anomaly]) -> dict:
    return {
        "total": len(anomalies),
        "by_type": dict(Counter(a.type for a in anomalies)),
        "by_severity": dict(Counter(a.severity for a in anomalies)),
    }


def extract_entities(text: str) -> list[str]:
    """Collect entity-like names, deduplicated in first-seen order."""
    entities: list[str] = []
    for pattern in ENTITY_PATTERNS:
        for match in pattern.finditer(text):
            if match.group(0) not in entities:
                entities.append(match.group(0))
    return entities


def validate_bitstream(content: str) -> dict:
    issues: list[str] = []

    if not content:
        issues.append("Bitstream is empty")

    if len(content) > BITSTREAM_MAX_CHARS:
        issues.append(f"Bitstream exceeds {BITSTREAM_MAX_CHARS // 1000}KB limit")

    nullish = len(_NULLISH.findall(content))
    if nullish > 10:
        issues.append(f"High frequency of null/undefined values: {nullish} occurrences")

    return {"valid": not issues, "issues": issues}


def sanitize_bitstream(content: str) -> str:
    content = re.sub(r"\n{3,}", "\n\n", content)
    content = re.sub(r"[\x00-\x08\x0B-\x1F\x7F]", "", content)
    return content.strip()


def build_audit_report(
    anomalies: list[Anomaly],
    buffer_size: int,
    notes: str | None = None,
    model: str = SCANNER_TAG,
) -> AuditReport:
    return AuditReport(
        generated=iso_now(),
        model=model,
        anomalies=anomalies,
        total=len(anomalies),
        buffer_size=buffer_size,
        custom_notes=notes,
    )
