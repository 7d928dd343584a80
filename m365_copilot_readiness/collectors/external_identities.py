"""
External Identity Collector
Enumerates: tenant verified domains, guest / external user accounts with
sign-in activity. Days-since-activity is resolved here against the run's
reference time so the classifier never reads the clock.
"""

from __future__ import annotations

import logging

from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_copilot_readiness.collectors.external_identities")

GUEST_SELECT = (
    "id,displayName,mail,userPrincipalName,userType,accountEnabled,"
    "createdDateTime,externalUserState,signInActivity"
)


def email_domain(address: str) -> str:
    """Domain part of an address; guest UPNs encode it as user_domain#EXT#@tenant."""
    if not address:
        return ""
    if "#EXT#" in address:
        local = address.split("#EXT#", 1)[0]
        return local.rsplit("_", 1)[-1].lower() if "_" in local else ""
    return address.rsplit("@", 1)[-1].lower() if "@" in address else ""


class ExternalIdentityCollector(BaseCollector):
    name = "external_identities"
    description = "Guest accounts, their home domains and last activity"

    async def collect(self, result: CollectorResult):
        await self._collect_tenant_domains(result)
        await self._collect_guests(result)

    async def _collect_tenant_domains(self, result: CollectorResult):
        data = await self.safe_get("organization", result, params={"$select": "id,displayName,verifiedDomains"})
        orgs = data.get("value", [])
        domains = []
        tenant_name = ""
        if orgs:
            tenant_name = orgs[0].get("displayName") or ""
            domains = [
                (d.get("name") or "").lower()
                for d in orgs[0].get("verifiedDomains", []) or []
                if d.get("name")
            ]
        result.add_data("tenant", {"displayName": tenant_name, "verifiedDomains": domains})

    async def _collect_guests(self, result: CollectorResult):
        """Collect guest users; signInActivity requires AuditLog.Read.All."""
        guests = await self.safe_get_all(
            "users",
            result,
            params={"$filter": "userType eq 'Guest'", "$select": GUEST_SELECT},
        )
        if not guests and result.metadata["permission_gaps"]:
            result.add_data("external_users", [])
            return

        consumer = self.config.consumer_domains
        rows = []
        for g in guests:
            address = g.get("mail") or g.get("userPrincipalName") or ""
            domain = email_domain(address) or email_domain(g.get("userPrincipalName") or "")
            activity = g.get("signInActivity") or {}
            last_sign_in = activity.get("lastSignInDateTime") or activity.get(
                "lastNonInteractiveSignInDateTime"
            )
            # Never signed in: age from account creation
            days = self.days_since(last_sign_in) if last_sign_in else self.days_since(
                g.get("createdDateTime")
            )
            rows.append({
                "id": g.get("id"),
                "displayName": g.get("displayName"),
                "mail": address,
                "domain": domain,
                "accountEnabled": g.get("accountEnabled"),
                "externalUserState": g.get("externalUserState"),
                "lastSignInDateTime": last_sign_in,
                "neverSignedIn": not last_sign_in,
                "daysSinceActivity": days,
                "isConsumerDomain": domain in consumer if domain else None,
            })
        result.add_data("external_users", rows)
