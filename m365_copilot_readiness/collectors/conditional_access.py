"""
Conditional Access Policy Collector
Enumerates CA policies and security defaults, and resolves the flags the
compatibility audit scores (MFA, device compliance, AI tool exemptions,
sign-in frequency).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ..config import AI_TOOL_APP_IDS
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_copilot_readiness.collectors.conditional_access")


def sign_in_frequency_hours(frequency: dict) -> Optional[float]:
    """Normalize a signInFrequency session control to hours (None when not enforced)."""
    if not frequency or not frequency.get("isEnabled"):
        return None
    if frequency.get("frequencyInterval") == "everyTime":
        return 0.0
    value = frequency.get("value")
    if not isinstance(value, (int, float)):
        return None
    unit = (frequency.get("type") or "hours").lower()
    return float(value) * 24 if unit == "days" else float(value)


def normalize_policy(p: dict) -> dict[str, Any]:
    """Flatten one raw CA policy into the attributes the audit scores."""
    # `or {}` handles JSON null values (key present but None)
    conditions = p.get("conditions", {}) or {}
    grant_controls = p.get("grantControls", {}) or {}
    session_controls = p.get("sessionControls", {}) or {}

    users_cond = conditions.get("users", {}) or {}
    include_users = users_cond.get("includeUsers", []) or []
    exclude_users = users_cond.get("excludeUsers", []) or []
    include_groups = users_cond.get("includeGroups", []) or []
    include_roles = users_cond.get("includeRoles", []) or []

    apps_cond = conditions.get("applications", {}) or {}
    include_apps = apps_cond.get("includeApplications", []) or []
    exclude_apps = apps_cond.get("excludeApplications", []) or []

    built_in = grant_controls.get("builtInControls", []) or []
    auth_strength = grant_controls.get("authenticationStrength", {}) or {}

    excluded_ai_apps = sorted(set(exclude_apps) & set(AI_TOOL_APP_IDS))
    targets_ai_apps = "All" in include_apps or bool(set(include_apps) & set(AI_TOOL_APP_IDS))

    return {
        "id": p.get("id"),
        "displayName": p.get("displayName"),
        "state": p.get("state"),  # enabled, disabled, enabledForReportingButNotEnforced
        "modifiedDateTime": p.get("modifiedDateTime"),

        "includeUsers": include_users,
        "excludeUsers": exclude_users,
        "includeGroups": include_groups,
        "includeRoles": include_roles,
        "includeApplications": include_apps,
        "excludeApplications": exclude_apps,
        "clientAppTypes": conditions.get("clientAppTypes", []) or [],
        "grantBuiltInControls": built_in,
        "signInFrequency": session_controls.get("signInFrequency", {}) or {},

        # Computed flags
        "appliesToAllUsers": "All" in include_users,
        "targetsAllApps": "All" in include_apps,
        "targetsAITools": targets_ai_apps,
        "requiresMFA": "mfa" in built_in or bool(auth_strength),
        "requiresCompliantDevice": "compliantDevice" in built_in,
        "blocksAccess": "block" in built_in,
        "exemptsAITools": bool(excluded_ai_apps),
        "exemptedAIApps": [AI_TOOL_APP_IDS[a] for a in excluded_ai_apps],
        "signInFrequencyHours": sign_in_frequency_hours(
            session_controls.get("signInFrequency", {}) or {}
        ),
    }


class ConditionalAccessCollector(BaseCollector):
    name = "conditional_access"
    description = "Conditional Access policies and security defaults"

    async def collect(self, result: CollectorResult):
        gather_results = await asyncio.gather(
            self._collect_ca_policies(result),
            self._collect_security_defaults(result),
            return_exceptions=True,
        )
        for name, res in zip(["ca_policies", "security_defaults"], gather_results):
            if isinstance(res, Exception):
                result.add_warning(f"Sub-collection {name} failed: {type(res).__name__}: {res}")

    async def _collect_ca_policies(self, result: CollectorResult):
        """Collect all Conditional Access policies with computed flags."""
        policies = await self.safe_get_all(
            "identity/conditionalAccess/policies",
            result,
            skip_top=True,
        )
        result.add_data("ca_policies", [normalize_policy(p) for p in policies])

    async def _collect_security_defaults(self, result: CollectorResult):
        """Check if security defaults are enabled."""
        data = await self.safe_get(
            "policies/identitySecurityDefaultsEnforcementPolicy",
            result,
        )
        if data.get("_forbidden"):
            result.add_data("security_defaults", {"_inaccessible": True})
        else:
            result.add_data("security_defaults", {
                "isEnabled": data.get("isEnabled", False),
                "displayName": data.get("displayName"),
            })
