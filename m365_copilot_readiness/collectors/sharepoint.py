"""
SharePoint Content Collector
Scans document libraries site by site: document inventory with sensitivity
labels, and the sharing permissions on every shared item. Each site is
isolated — a failing site is recorded as a coverage gap and skipped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .base import BaseCollector, CollectorResult
from .external_identities import email_domain

logger = logging.getLogger("m365_copilot_readiness.collectors.sharepoint")

EVERYONE_NAMES = {"everyone", "everyone except external users"}
EVERYONE_LOGIN_MARKERS = ("spo-grid-all-users", "c:0(.s|true", "c:0-.f|rolemanager|")

ITEM_SELECT = "webUrl,shared,sensitivityLabel,parentReference"


def _identity_sets(perm: dict) -> list[dict]:
    sets = []
    if perm.get("grantedToV2"):
        sets.append(perm["grantedToV2"])
    sets.extend(perm.get("grantedToIdentitiesV2") or [])
    return sets


def describe_permission(perm: dict, tenant_domains: set[str]) -> dict[str, Any]:
    """
    Resolve one driveItem permission into a principal description.

    principalType is one of: anonymousLink, organizationLink, everyone,
    securityGroup, externalUser, user, specificPeopleLink.
    """
    roles = perm.get("roles", []) or []
    link = perm.get("link") or {}
    row: dict[str, Any] = {
        "permissionId": perm.get("id"),
        "roles": roles,
        "role": "owner" if "owner" in roles else ("write" if "write" in roles else "read"),
        "linkScope": link.get("scope"),
        "principalName": "",
        "email": "",
        "groupId": None,
        "isExternal": False,
    }

    if link:
        scope = link.get("scope")
        if scope == "anonymous":
            row["principalType"] = "anonymousLink"
            row["principalName"] = "Anyone with the link"
            row["isExternal"] = True
            return row
        if scope == "organization":
            row["principalType"] = "organizationLink"
            row["principalName"] = "People in the organization"
            return row
        row["principalType"] = "specificPeopleLink"

    for identity in _identity_sets(perm):
        site_user = identity.get("siteUser") or {}
        group = identity.get("group") or identity.get("siteGroup") or {}
        user = identity.get("user") or {}

        name = (site_user.get("displayName") or group.get("displayName") or "").strip()
        login = (site_user.get("loginName") or "").lower()
        if name.lower() in EVERYONE_NAMES or any(m in login for m in EVERYONE_LOGIN_MARKERS):
            row["principalType"] = "everyone"
            row["principalName"] = name or "Everyone"
            return row

        if identity.get("group"):
            row["principalType"] = "securityGroup"
            row["principalName"] = group.get("displayName") or ""
            row["email"] = group.get("email") or ""
            row["groupId"] = group.get("id")
            return row

        email = user.get("email") or site_user.get("email") or ""
        if email or user:
            domain = email_domain(email)
            row["email"] = email
            row["principalName"] = user.get("displayName") or site_user.get("displayName") or email
            row["isExternal"] = bool(domain) and domain not in tenant_domains
            if row.get("principalType") != "specificPeopleLink":
                row["principalType"] = "externalUser" if row["isExternal"] else "user"
            return row

    row.setdefault("principalType", "user")
    return row


class SharePointCollector(BaseCollector):
    name = "sharepoint"
    description = "Document libraries: label coverage and sharing permissions"

    async def collect(self, result: CollectorResult):
        tenant_domains = await self._tenant_domains(result)
        sites = await self.list_sites(result)
        result.add_data("sites", [
            {"id": s.get("id"), "displayName": s.get("displayName"), "webUrl": s.get("webUrl")}
            for s in sites
        ])

        async def scan(site: dict) -> list[dict]:
            return await self._scan_site(site, tenant_domains)

        rows = await self.scan_sites(sites, scan, result)

        documents = [r["document"] for r in rows]
        permissions = [p for r in rows for p in r["permissions"]]
        await self._resolve_group_sizes(permissions)

        result.add_data("documents", documents)
        result.add_data("permissions", permissions)

    async def _tenant_domains(self, result: CollectorResult) -> set[str]:
        data = await self.safe_get("organization", result, params={"$select": "verifiedDomains"})
        orgs = data.get("value", [])
        if not orgs:
            return set()
        return {
            (d.get("name") or "").lower()
            for d in orgs[0].get("verifiedDomains", []) or []
            if d.get("name")
        }

    async def _scan_site(self, site: dict, tenant_domains: set[str]) -> list[dict]:
        """One row per document: the document and its permission rows."""
        items = await self.drive_items(site, select=ITEM_SELECT, beta=True)
        rows = []
        for item in items:
            permissions: list[dict] = []
            if item.get("shared"):
                drive_id = (item.get("parentReference") or {}).get("driveId")
                endpoint = (
                    f"drives/{drive_id}/items/{item['id']}/permissions" if drive_id
                    else f"sites/{site['id']}/drive/items/{item['id']}/permissions"
                )
                raw = await self.graph.get_all_pages(endpoint, skip_top=True)
                for perm in raw:
                    if "owner" in (perm.get("roles") or []) and not perm.get("link"):
                        continue  # the item's own owner
                    described = describe_permission(perm, tenant_domains)
                    described.update({
                        "itemId": item["id"],
                        "itemName": item.get("name"),
                        "webUrl": item.get("webUrl"),
                        "siteUrl": site.get("webUrl"),
                    })
                    permissions.append(described)

            label = item.get("sensitivityLabel") or {}
            rows.append({
                "document": {
                    "id": item["id"],
                    "name": item.get("name"),
                    "webUrl": item.get("webUrl"),
                    "siteUrl": site.get("webUrl"),
                    "hasLabel": bool(label.get("labelId") or label.get("id")),
                    "labelName": label.get("displayName") or "",
                    "sharedExternally": any(p["isExternal"] for p in permissions),
                },
                "permissions": permissions,
            })
        return rows

    async def _resolve_group_sizes(self, permissions: list[dict]):
        """Attach transitive member counts to group grants (None when unavailable)."""
        group_ids = sorted({p["groupId"] for p in permissions if p.get("groupId")})
        counts = await asyncio.gather(
            *(self._member_count(g) for g in group_ids), return_exceptions=True
        )
        sizes: dict[str, Optional[int]] = {}
        for gid, count in zip(group_ids, counts):
            if isinstance(count, Exception):
                logger.debug(f"Member count failed for group {gid}: {count}")
                sizes[gid] = None
            else:
                sizes[gid] = count if count >= 0 else None
        for p in permissions:
            p["groupMemberCount"] = sizes.get(p["groupId"]) if p.get("groupId") else None

    async def _member_count(self, group_id: str) -> int:
        return await self.graph.get_count(f"groups/{group_id}/transitiveMembers")
