"""
Read-only enforcement. The Graph client asks the guardian before every
request; anything other than GET/HEAD/OPTIONS is refused and logged, and
the tally ends up in the JSON report as proof the audit changed nothing.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("m365_copilot_readiness.safety")

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Graph actions that would change sharing, labels or CA policies
WRITE_ENDPOINT_PATTERN = re.compile(
    r"/(invite|createLink|grant|restore|assignSensitivityLabel)$"
    r"|/permissions/[^/]+$"
    r"|/conditionalAccess/policies/[^/]+$",
    re.IGNORECASE,
)


class SafetyViolation(Exception):
    pass


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SafetyGuardian:
    def __init__(self):
        self.started_at = _utcnow()
        self.checks_performed = 0
        self.violations: list[dict] = []

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """True for read methods; otherwise records the attempt and raises SafetyViolation."""
        self.checks_performed += 1
        verb = method.upper()
        if verb in READ_METHODS:
            return True

        if WRITE_ENDPOINT_PATTERN.search(url):
            reason = "Blocked write-pattern URL"
        else:
            reason = "Write HTTP method blocked"
        self.violations.append({"timestamp": _utcnow(), "method": verb, "url": url, "reason": reason})
        logger.critical(f"Refused {verb} {url}: {reason}")
        raise SafetyViolation(f"{reason}: {verb} {url}")

    def get_audit_record(self) -> dict:
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": list(self.violations),
            "status": "VIOLATIONS_DETECTED" if self.violations else "CLEAN",
        }

    @staticmethod
    def print_banner():
        rule = "=" * 75
        print(rule)
        print("  COPILOT READINESS AUDIT  |  READ-ONLY")
        print("  Only GET requests are sent to Microsoft Graph. Conditional Access")
        print("  policies, sharing links and sensitivity labels are never modified.")
        print(rule)
