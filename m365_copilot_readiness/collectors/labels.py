"""
Sensitivity Label Collector
Enumerates the tenant's published sensitivity labels (beta endpoint).
"""

from __future__ import annotations

import logging

from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_copilot_readiness.collectors.labels")


class SensitivityLabelCollector(BaseCollector):
    name = "sensitivity_labels"
    description = "Published sensitivity label catalog"

    async def collect(self, result: CollectorResult):
        labels = await self.safe_get_all(
            "security/informationProtection/sensitivityLabels",
            result,
            beta=True,
            skip_top=True,
        )
        result.add_data("labels", [
            {
                "id": lbl.get("id"),
                "name": lbl.get("name") or lbl.get("displayName"),
                "sensitivity": lbl.get("sensitivity"),
                "isActive": lbl.get("isActive", True),
                "hasProtection": bool(lbl.get("hasProtection")),
            }
            for lbl in labels
        ])
