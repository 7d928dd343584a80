"""
Executive summary — One-page Copilot readiness summary for leadership audiences.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from ..scoring.models import ReadinessVerdict, RiskLevel

VERDICT_GUIDANCE = {
    ReadinessVerdict.READY: "No blocking issues found for this area.",
    ReadinessVerdict.NEARLY_READY: "Minor remediation needed before enabling Copilot broadly.",
    ReadinessVerdict.REQUIRES_WORK: "Material gaps; remediate before a pilot extends beyond IT.",
    ReadinessVerdict.NOT_READY: "Copilot would surface overshared or unprotected content.",
}

# Worst verdict across audits decides the overall position
_VERDICT_ORDER = [
    ReadinessVerdict.READY,
    ReadinessVerdict.NEARLY_READY,
    ReadinessVerdict.REQUIRES_WORK,
    ReadinessVerdict.NOT_READY,
]

TOP_REASONS = 5

# Remediation guidance keyed by the start of a rule reason
RECOMMENDATIONS = [
    ("No MFA requirement", "Require MFA (or an authentication strength) on policies covering Microsoft 365 apps."),
    ("No compliant device", "Add a compliant or hybrid-joined device grant to all-user policies."),
    ("Block-all policy", "Exclude the Office 365 app group from block-all policies or scope them to named apps."),
    ("Sign-in frequency", "Relax sign-in frequency to one hour or more for Copilot users."),
    ("Policy is in report-only", "Review report-only results and switch the policy to On."),
    ("Shared with Everyone", "Remove Everyone and Everyone-except-external-users grants from sites and files."),
    ("Anonymous link", "Disable or expire Anyone links; restrict the tenant sharing setting."),
    ("External party has edit", "Downgrade external editors to view or remove access no longer needed."),
    ("Shared with a large", "Replace large-group grants with scoped groups that match the audience."),
    ("External account dormant", "Run an access review and remove dormant guest accounts."),
    ("External account uses a consumer", "Block or review guests from consumer mail domains."),
    ("No sensitivity label", "Enable default library labels and auto-labeling for sensitive content."),
    ("Unlabeled document is shared", "Label externally shared documents first."),
    ("Organization-wide sharing link", "Replace People-in-organization links with specific-people links."),
    ("Shared with a security group", "Confirm each security group grant matches the intended audience."),
]


def recommendation_for(reason: str) -> str:
    for prefix, action in RECOMMENDATIONS:
        if reason.startswith(prefix):
            return action
    return ""


def overall_verdict(outcomes: list) -> ReadinessVerdict:
    """Worst verdict across all audits; Not Ready when nothing was audited."""
    if not outcomes:
        return ReadinessVerdict.NOT_READY
    return max((o.summary.verdict for o in outcomes), key=_VERDICT_ORDER.index)


def export_executive_summary(
    outcomes: list,
    output_dir: Path,
    scan_id: str,
    tenant_name: str = "Unknown Tenant",
) -> Path:
    """
    Generate a concise executive summary in Markdown.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"executive_summary_{scan_id}.md"

    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(render_summary(outcomes, scan_id, tenant_name))

    return filepath


def render_summary(outcomes: list, scan_id: str, tenant_name: str) -> str:
    lines = []
    w = lines.append

    w("# Microsoft 365 Copilot Readiness Summary")
    w("")
    w(f"**Tenant:** {tenant_name}  ")
    w(f"**Date:** {datetime.now(timezone.utc).strftime('%Y-%m-%d')}  ")
    w(f"**Scan ID:** {scan_id}  ")
    w("**Classification:** Confidential")
    w("")
    w("---")
    w("")

    overall = overall_verdict(outcomes)
    w(f"## Overall: {overall.value}")
    w("")
    w(VERDICT_GUIDANCE[overall])
    w("")

    # --- Verdict table ---
    w("| Audit | Verdict | Records | Critical | High | Medium | Low | Avg Score |")
    w("|-------|---------|---------|----------|------|--------|-----|-----------|")
    for o in outcomes:
        s = o.summary
        avg = f"{s.average_score:.2f}" if s.average_score is not None else "-"
        w(
            f"| {o.display_name} | {s.verdict.value} | {s.record_count} "
            f"| {s.count(RiskLevel.CRITICAL)} | {s.count(RiskLevel.HIGH)} "
            f"| {s.count(RiskLevel.MEDIUM)} | {s.count(RiskLevel.LOW)} | {avg} |"
        )
    w("")

    # --- Per-audit detail ---
    for o in outcomes:
        w(f"## {o.display_name}")
        w("")
        w(f"**Verdict:** {o.summary.verdict.value}. {VERDICT_GUIDANCE[o.summary.verdict]}")
        w("")

        if o.error:
            w(f"> Analysis could not complete: {o.error}")
            w("")

        if o.metrics:
            for key, value in o.metrics.items():
                if isinstance(value, dict):
                    value = ", ".join(f"{k}: {v}" for k, v in value.items()) or "none"
                w(f"- {key.replace('_', ' ').capitalize()}: {value}")
            w("")

        reasons = Counter(r for res in o.results for r in res.reasons)
        if reasons:
            w("**Most common issues:**")
            w("")
            top = reasons.most_common(TOP_REASONS)
            for reason, count in top:
                w(f"1. {reason} ({count})")
            w("")

            actions = list(dict.fromkeys(
                recommendation_for(reason) for reason, _ in top if recommendation_for(reason)
            ))
            if actions:
                w("**Recommended actions:**")
                w("")
                for action in actions:
                    w(f"- {action}")
                w("")

        for note in o.notes:
            w(f"> {note}")
        if o.notes:
            w("")

        if o.coverage_gaps:
            w("**Coverage gaps** (verdict may be optimistic):")
            w("")
            for gap in o.coverage_gaps:
                w(f"- {gap}")
            w("")

    w("---")
    w("")
    w("*Generated by the M365 Copilot Readiness Audit (read-only). "
      "No changes were made to the tenant.*")
    w("")
    return "\n".join(lines)
