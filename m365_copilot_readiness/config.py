"""
Settings for a readiness audit run: credentials, Graph throttling limits,
scan caps, scoring thresholds and where reports are written.

A JSON config file (`--config`) overrides the defaults section by section;
command-line flags override the file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class ConfigError(Exception):
    pass


# ─── Credentials ─────────────────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    tenant_id: str
    client_id: str
    certificate_path: str = "./base64.txt"   # base64-encoded PFX
    certificate_password: str = ""           # else M365_CERT_PASSWORD, else prompt

@dataclass
class SecretAuth:
    tenant_id: str
    client_id: str
    client_secret: str = ""                  # else M365_CLIENT_SECRET

@dataclass
class DelegatedAuth:
    """Device-code sign-in; the signed-in user needs read access to everything audited."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "Policy.Read.All",
        "Sites.Read.All",
        "User.Read.All",
        "AuditLog.Read.All",
        "InformationProtectionPolicy.Read",
    ])

AUTH_SECTIONS = {
    "certificate": CertificateAuth,
    "secret": SecretAuth,
    "delegated": DelegatedAuth,
}

@dataclass
class AuthConfig:
    mode: str = "certificate"
    certificate: Optional[CertificateAuth] = None
    secret: Optional[SecretAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph ───────────────────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

MAX_CONCURRENT_REQUESTS = 4       # requests in flight across all collectors
MAX_RETRIES = 5                   # per request, on 429/503/504
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 120.0
BACKOFF_MULTIPLIER = 2.0

DEFAULT_PAGE_SIZE = 999           # largest $top Graph accepts
MAX_PAGES_PER_ENDPOINT = 10000


# ─── Scoring thresholds ──────────────────────────────────────────────────────

DORMANT_DAYS_THRESHOLD = 90       # days without sign-in before a guest counts as dormant
LARGE_GROUP_THRESHOLD = 100       # members at which a sharing group counts as "large"
MIN_SIGN_IN_FREQUENCY_HOURS = 1   # shorter re-auth intervals break AI sessions

# Consumer mail providers: external accounts on these are unmanaged identities
CONSUMER_EMAIL_DOMAINS = frozenset({
    "gmail.com", "googlemail.com", "outlook.com", "hotmail.com", "live.com",
    "msn.com", "yahoo.com", "icloud.com", "me.com", "aol.com", "proton.me",
    "protonmail.com", "gmx.com", "mail.com", "yandex.com",
})

# Application identities the AI assistant depends on. A block-all CA policy
# must exclude at least one of these to leave the assistant reachable.
AI_TOOL_APP_IDS = {
    "Office365": "Office 365 (app group)",
    "00000003-0000-0000-c000-000000000000": "Microsoft Graph",
    "00000003-0000-0ff1-ce00-000000000000": "Office 365 SharePoint Online",
    "00000002-0000-0ff1-ce00-000000000000": "Office 365 Exchange Online",
    "cc15fd57-2c6c-4117-a88c-83b1d56b4bbe": "Microsoft Teams Services",
    "4765445b-32c6-49b0-83e6-1d93765276ca": "OfficeHome",
}

AUDIT_NAMES = ("conditional_access", "external_sharing", "sensitivity_labels", "oversharing")

AUDIT_DISPLAY = {
    "conditional_access": "Conditional Access Compatibility",
    "external_sharing":   "External Sharing & Permissions",
    "sensitivity_labels": "Sensitivity Label Coverage",
    "oversharing":        "Oversharing Content Scan",
}


# ─── Run settings ────────────────────────────────────────────────────────────

@dataclass
class CollectionConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = MAX_PAGES_PER_ENDPOINT
    max_sites: int = 500
    max_items_per_site: int = 5000
    site_concurrency: int = 4
    dormant_days_threshold: int = DORMANT_DAYS_THRESHOLD
    large_group_threshold: int = LARGE_GROUP_THRESHOLD
    min_sign_in_frequency_hours: float = MIN_SIGN_IN_FREQUENCY_HOURS
    consumer_domains: frozenset[str] = CONSUMER_EMAIL_DOMAINS
    audits: list[str] = field(default_factory=lambda: list(AUDIT_NAMES))

    def update(self, overrides: dict[str, Any], source: str = "config") -> None:
        """Apply known keys from a config section; unknown keys are ignored."""
        for key, value in overrides.items():
            if not hasattr(self, key):
                continue
            if key == "consumer_domains":
                value = frozenset(d.lower() for d in value)
            elif key == "audits":
                unknown = sorted(set(value) - set(AUDIT_NAMES))
                if unknown:
                    raise ConfigError(f"Unknown audits in {source}: {unknown}")
            setattr(self, key, value)


@dataclass
class OutputConfig:
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["csv", "json", "text"])

    def __post_init__(self):
        self.timestamp = self.timestamp or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        self.base_dir = self.base_dir or os.path.join(os.getcwd(), f"copilot_readiness_{self.timestamp}")

    @property
    def scan_dir(self) -> Path:
        return Path(self.base_dir)


@dataclass
class EngineConfig:
    auth: AuthConfig = field(default_factory=AuthConfig)
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """
        Build a config from a JSON file shaped like

            {"auth": {"mode": ..., "<mode>": {...}},
             "collection": {...}, "output": {...}, "verbose": false}

        Raises ConfigError for unreadable files, missing credential keys
        and unknown audit names.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

        config = cls(auth=_auth_from_dict(raw.get("auth", {}), str(path)))
        config.collection.update(raw.get("collection", {}), str(path))
        for key, value in raw.get("output", {}).items():
            if hasattr(config.output, key):
                setattr(config.output, key, value)
        config.verbose = bool(raw.get("verbose", False))
        return config


def _auth_from_dict(section: dict[str, Any], source: str) -> AuthConfig:
    auth = AuthConfig(mode=section.get("mode", "certificate"))
    for mode, settings_cls in AUTH_SECTIONS.items():
        settings = section.get(mode)
        if settings is None:
            continue
        missing = [k for k in ("tenant_id", "client_id") if k not in settings]
        if missing:
            raise ConfigError(f"auth.{mode} in {source} is missing {', '.join(missing)}")
        accepted = settings_cls.__dataclass_fields__
        setattr(auth, mode, settings_cls(**{k: v for k, v in settings.items() if k in accepted}))
    return auth


# ─── Required Graph application permissions (all read-only) ──────────────────

REQUIRED_PERMISSIONS = {
    "Policy.Read.All": "Read Conditional Access policies",
    "Application.Read.All": "Resolve application identities excluded from CA policies",
    "Sites.Read.All": "Enumerate SharePoint / OneDrive sites and drive items",
    "Files.Read.All": "Read sharing permissions on drive items",
    "User.Read.All": "Enumerate guest / external users",
    "AuditLog.Read.All": "Read signInActivity for dormant external accounts",
    "GroupMember.Read.All": "Count members of groups that content is shared with",
    "InformationProtectionPolicy.Read.All": "Read tenant sensitivity labels",
}
