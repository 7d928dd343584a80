"""
JSON exporter — Full machine-readable output of the readiness audit.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__


def export_json(
    outcomes: list,
    collector_results: dict,
    output_dir: Path,
    scan_id: str,
    tenant_name: str = "Unknown Tenant",
    safety_record: Optional[dict] = None,
) -> Path:
    """
    Write full audit results to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "engine": "M365 Copilot Readiness Audit",
            "version": __version__,
            "scan_id": scan_id,
            "tenant": tenant_name,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
        },
        "readiness": {o.domain: o.summary.verdict.value for o in outcomes},
        "audits": [o.to_dict() for o in outcomes],
        "collection_summary": _summarize_raw(collector_results),
        "safety": safety_record or {},
    }

    filepath = output_dir / f"copilot_readiness_{scan_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath


def _summarize_raw(collector_results: dict) -> dict[str, Any]:
    """Compact view of what each collector gathered, without the raw data."""
    summary = {}
    for name, result in collector_results.items():
        data = result.data if hasattr(result, "data") else result
        metadata = getattr(result, "metadata", {})
        section: dict[str, Any] = {
            key: len(value) if isinstance(value, list) else type(value).__name__
            for key, value in (data.items() if isinstance(data, dict) else [])
        }
        section["_metadata"] = {
            k: metadata.get(k)
            for k in ("duration_seconds", "endpoints_queried", "sites_scanned",
                      "permission_gaps", "failed_sites", "errors", "warnings")
            if k in metadata
        }
        summary[name] = section
    return summary
