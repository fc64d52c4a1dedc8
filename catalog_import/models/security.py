"""
Security screening for imported rows.
Flags injection-style payloads before transformation and strips them after.
"""

from typing import Any, Dict, List, Tuple
import html
import re
from enum import Enum


class ThreatSeverity(str, Enum):
    """Severity levels for security findings."""

    CRITICAL = "critical"  # Row should be rejected
    WARNING = "warning"  # Row is kept, finding is reported
    INFO = "info"


class SecurityScanner:
    """Check row values for script, SQL and path injection payloads."""

    MAX_CELL_LENGTH = 65535

    # (name, pattern, severity)
    THREAT_PATTERNS: List[Tuple[str, str, ThreatSeverity]] = [
        ("script_tag", r"<\s*/?\s*script\b", ThreatSeverity.CRITICAL),
        ("javascript_protocol", r"javascript\s*:", ThreatSeverity.CRITICAL),
        ("vbscript_protocol", r"vbscript\s*:", ThreatSeverity.CRITICAL),
        ("event_handler", r"<[^>]+\bon[a-z]+\s*=", ThreatSeverity.CRITICAL),
        ("data_uri", r"\bdata\s*:\s*[a-z]+/[a-z0-9.+-]+\s*;", ThreatSeverity.CRITICAL),
        ("sql_injection", r"('\s*(or|and)\s*'\s*=\s*')|('\s*;\s*--)", ThreatSeverity.CRITICAL),
        ("path_traversal", r"\.\.[/\\]", ThreatSeverity.CRITICAL),
        ("sql_keyword", r"\b(select\s+.+\s+from|union\s+select|drop\s+table|insert\s+into)\b",
         ThreatSeverity.WARNING),
    ]

    # Stripped from any string value after transformation
    DANGEROUS_TOKENS = ["<script", "</script", "javascript:", "vbscript:", "data:", "file:"]

    SUSPICIOUS_STRINGS = [
        "eval(", "exec(", "system(", "shell_exec", "base64_decode", "gzinflate",
    ]

    _compiled = [(name, re.compile(p, re.IGNORECASE), sev) for name, p, sev in THREAT_PATTERNS]
    # Scheme tokens only match at a word start, so "Profile:" keeps its text
    _token_patterns = [
        re.compile((r"(?<![a-z0-9])" if token[0].isalpha() else "") + re.escape(token), re.IGNORECASE)
        for token in DANGEROUS_TOKENS
    ]

    @classmethod
    def scan_value(cls, value: Any) -> List[Dict[str, Any]]:
        """Findings for a single cell value."""
        if value is None or value == "":
            return []

        text = str(value)
        findings = []

        if len(text) > cls.MAX_CELL_LENGTH:
            findings.append({"threat": "cell_too_large", "severity": ThreatSeverity.WARNING})

        for name, pattern, severity in cls._compiled:
            if pattern.search(text):
                findings.append({"threat": name, "severity": severity})

        lowered = text.lower()
        for suspicious in cls.SUSPICIOUS_STRINGS:
            if suspicious in lowered:
                findings.append({"threat": f"suspicious:{suspicious}", "severity": ThreatSeverity.WARNING})

        return findings

    @classmethod
    def scan_row(cls, fields: Dict[str, Any]) -> List[str]:
        """
        Critical findings for a mapped row.
        Returns human-readable messages, empty when the row is clean.
        """
        messages = []
        for field, value in fields.items():
            for finding in cls.scan_value(value):
                if finding["severity"] == ThreatSeverity.CRITICAL:
                    messages.append(f"Field '{field}': {finding['threat'].replace('_', ' ')} detected")
        return messages

    @classmethod
    def warnings_for_row(cls, fields: Dict[str, Any]) -> List[str]:
        messages = []
        for field, value in fields.items():
            for finding in cls.scan_value(value):
                if finding["severity"] == ThreatSeverity.WARNING:
                    messages.append(f"Field '{field}': {finding['threat']}")
        return messages

    @classmethod
    def sanitize_value(cls, value: str) -> str:
        """Remove dangerous tokens; escape markup that remains."""
        cleaned = value
        for pattern in cls._token_patterns:
            cleaned = pattern.sub("", cleaned)
        if re.search(r"[<>]", cleaned):
            cleaned = html.escape(html.unescape(cleaned), quote=False)
        return cleaned
