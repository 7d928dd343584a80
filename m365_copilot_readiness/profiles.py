"""
Named tenant profiles, so one install can audit several customer tenants.

Stored as JSON in ~/.m365_copilot_readiness/profiles.json:

    {
      "default_profile": "contoso-prod",
      "profiles": {
        "contoso-prod": {"tenant_id": "...", "client_id": "...", "auth_mode": "certificate", ...}
      }
    }

Select one on the command line with `--profile <name>`; without it the
default profile is used.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("m365_copilot_readiness.profiles")

PROFILES_PATH = Path.home() / ".m365_copilot_readiness" / "profiles.json"

AUTH_MODES = ("certificate", "secret", "delegated")


@dataclass
class TenantProfile:
    name: str
    tenant_id: str
    client_id: str
    auth_mode: str = "certificate"
    cert_path: str = "./base64.txt"     # only read in certificate mode
    tenant_display_name: str = ""
    notes: str = ""

    def __post_init__(self):
        if self.auth_mode not in AUTH_MODES:
            raise ValueError(
                f"Unknown auth mode '{self.auth_mode}' for profile '{self.name}' "
                f"(expected one of {', '.join(AUTH_MODES)})"
            )

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> "TenantProfile":
        known = {f.name for f in fields(cls)} - {"name"}
        return cls(name=name, **{k: v for k, v in raw.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        body = asdict(self)
        body.pop("name")
        return body

    def resolve_cert_path(self) -> str:
        """Certificate path with ~ expanded, relative paths anchored at the cwd."""
        return str(Path.cwd() / Path(self.cert_path).expanduser())


@dataclass
class ProfileStore:
    """In-memory view of profiles.json; every mutation is written straight back."""
    path: Path = PROFILES_PATH
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Read the store; a missing or unreadable file gives an empty one."""
        store = cls(path=path or PROFILES_PATH)
        if not store.path.exists():
            return store
        try:
            raw = json.loads(store.path.read_text(encoding="utf-8"))
            entries = {
                name: TenantProfile.from_dict(name, body)
                for name, body in raw.get("profiles", {}).items()
            }
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable profile store {store.path}: {e}")
            return store
        store.profiles = entries
        store.default_profile = raw.get("default_profile", "")
        return store

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        logger.debug(f"Saved {len(self.profiles)} profiles to {self.path}")

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        # TenantProfile validates on construction, but fields can be reassigned afterwards
        if profile.auth_mode not in AUTH_MODES:
            raise ValueError(f"Unknown auth mode: {profile.auth_mode}")
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        if self.profiles.pop(name, None) is None:
            return False
        if self.default_profile == name:
            self.default_profile = min(self.profiles, default="")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Case-insensitive lookup."""
        wanted = name.casefold()
        return next((p for key, p in self.profiles.items() if key.casefold() == wanted), None)

    def get_default(self) -> Optional[TenantProfile]:
        chosen = self.profiles.get(self.default_profile)
        if chosen is None and self.profiles:
            chosen = self.profiles[min(self.profiles)]
        return chosen

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return [self.profiles[name] for name in sorted(self.profiles)]


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """The named profile, else the default; None when nothing matches."""
    store = ProfileStore.load(path)
    return store.get(profile_name) if profile_name else store.get_default()
