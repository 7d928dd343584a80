"""
M365 Copilot Readiness Audit — Main Orchestrator

Usage:
    python -m m365_copilot_readiness                            # use default profile
    python -m m365_copilot_readiness --profile contoso-prod     # named profile
    python -m m365_copilot_readiness --config config.json       # JSON config file
    python -m m365_copilot_readiness --delegated                # device-code auth flow
    python -m m365_copilot_readiness --audits ca labels --max-sites 50

Profile management:
    python -m m365_copilot_readiness profile add <name> --tenant-id ... --client-id ...
    python -m m365_copilot_readiness profile list
    python -m m365_copilot_readiness profile remove <name>
    python -m m365_copilot_readiness profile set-default <name>

Permissions the app registration needs:
    python -m m365_copilot_readiness permissions

This tool is STRICTLY READ-ONLY. It will NEVER modify the tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .config import (
    AUDIT_NAMES,
    CertificateAuth,
    ConfigError,
    DelegatedAuth,
    EngineConfig,
    REQUIRED_PERMISSIONS,
    SecretAuth,
)
from .safety.guardian import SafetyGuardian
from .auth.authenticator import Authenticator, AuthenticationError
from .graph.client import GraphClient
from .collectors import ALL_COLLECTORS, AUDIT_COLLECTORS
from .analyzers import ALL_ANALYZERS, AnalysisResult
from .reporting import export_csv, export_executive_summary, export_json
from .reporting.executive_summary import overall_verdict
from .profiles import AUTH_MODES, ProfileStore, TenantProfile, resolve_profile

# Short names accepted by --audits
AUDIT_ALIASES = {
    "ca": "conditional_access",
    "sharing": "external_sharing",
    "labels": "sensitivity_labels",
    "oversharing": "oversharing",
}


# ---------------------------------------------------------------------------
# `profile` and `permissions` sub-commands
# ---------------------------------------------------------------------------

def _profile_list(store: ProfileStore, args: argparse.Namespace) -> int:
    entries = store.list_profiles()
    if not entries:
        print("No tenant profiles yet. Create one with:\n")
        print("  python -m m365_copilot_readiness profile add contoso-prod \\")
        print("    --tenant-id <GUID> --client-id <GUID> [--auth-mode secret]")
        return 0

    print(f"\n    {'Profile':<28s} {'Tenant ID':<38s} {'Client ID':<38s} Auth")
    for p in entries:
        star = "* " if p.name == store.default_profile else "  "
        label = f"{p.name} ({p.tenant_display_name})" if p.tenant_display_name else p.name
        print(f"  {star}{label:<28s} {p.tenant_id:<38s} {p.client_id:<38s} {p.auth_mode}")
    print("\n  * default profile\n")
    return 0


def _profile_add(store: ProfileStore, args: argparse.Namespace) -> int:
    replacing = store.get(args.profile_name) is not None
    make_default = args.set_default or not store.profiles
    store.add(
        TenantProfile(
            name=args.profile_name,
            tenant_id=args.tenant_id,
            client_id=args.client_id,
            auth_mode=args.auth_mode,
            cert_path=args.cert_path,
            tenant_display_name=args.display_name or "",
            notes=args.notes or "",
        ),
        set_default=make_default,
    )
    verb = "Updated" if replacing else "Added"
    suffix = " (default)" if make_default else ""
    print(f"  ✅ {verb} profile '{args.profile_name}'{suffix}")
    return 0


def _profile_remove(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.remove(args.profile_name):
        print(f"  ❌ No profile named '{args.profile_name}'")
        return 1
    print(f"  ✅ Removed profile '{args.profile_name}'")
    return 0


def _profile_set_default(store: ProfileStore, args: argparse.Namespace) -> int:
    if not store.set_default(args.profile_name):
        print(f"  ❌ No profile named '{args.profile_name}'")
        return 1
    print(f"  ✅ '{args.profile_name}' is now the default profile")
    return 0


PROFILE_ACTIONS = {
    "list": _profile_list,
    "add": _profile_add,
    "remove": _profile_remove,
    "set-default": _profile_set_default,
}


def _cmd_profile(args: argparse.Namespace) -> int:
    handler = PROFILE_ACTIONS.get(args.profile_action)
    if handler is None:
        print(f"Usage: python -m m365_copilot_readiness profile {{{'|'.join(PROFILE_ACTIONS)}}}")
        return 0
    return handler(ProfileStore.load(), args)


def _cmd_permissions() -> int:
    print("\n  Microsoft Graph application permissions (all read-only):\n")
    width = max(map(len, REQUIRED_PERMISSIONS)) + 2
    for permission, purpose in REQUIRED_PERMISSIONS.items():
        print(f"  {permission:<{width}s}{purpose}")
    print()
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _audit_choice(value: str) -> str:
    name = AUDIT_ALIASES.get(value, value)
    if name not in AUDIT_NAMES:
        raise argparse.ArgumentTypeError(
            f"unknown audit '{value}' (choose from {', '.join(AUDIT_ALIASES)})"
        )
    return name


def _add_profile_commands(subparsers) -> None:
    profile_cmd = subparsers.add_parser("profile", help="Manage saved tenant profiles")
    actions = profile_cmd.add_subparsers(dest="profile_action")

    add = actions.add_parser("add", help="Save a tenant profile (overwrites one with the same name)")
    add.add_argument("profile_name", metavar="NAME")
    add.add_argument("--tenant-id", required=True, help="Entra tenant ID")
    add.add_argument("--client-id", required=True, help="App registration (client) ID")
    add.add_argument("--auth-mode", choices=AUTH_MODES, default="certificate")
    add.add_argument("--cert-path", default="./base64.txt",
                     help="Base64-encoded PFX for certificate auth (default: ./base64.txt)")
    add.add_argument("--display-name", help="Tenant name printed in reports")
    add.add_argument("--notes")
    add.add_argument("--set-default", action="store_true")

    actions.add_parser("list", help="Show saved profiles")
    for action, text in (("remove", "Delete a profile"), ("set-default", "Use a profile when --profile is omitted")):
        actions.add_parser(action, help=text).add_argument("profile_name", metavar="NAME")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="m365_copilot_readiness",
        description="M365 Copilot Readiness Audit (READ-ONLY)",
    )

    subparsers = parser.add_subparsers(dest="command")
    _add_profile_commands(subparsers)
    subparsers.add_parser("permissions", help="List the Graph permissions the audit needs")

    # --- Scan options ---
    parser.add_argument("--profile", "-p", default=None,
                        help="Tenant profile name to use (run 'profile list' to see available)")
    parser.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")

    auth_group = parser.add_mutually_exclusive_group()
    auth_group.add_argument("--delegated", action="store_true",
                            help="Use delegated (device-code) authentication")
    auth_group.add_argument("--client-secret", action="store_true",
                            help="Use client-secret authentication (secret from M365_CLIENT_SECRET)")

    parser.add_argument("--cert-path", type=Path,
                        help="Path to base64-encoded certificate file (overrides profile)")
    parser.add_argument("--tenant-id", default=None,
                        help="Tenant ID (overrides profile; use with --client-id for ad-hoc scans)")
    parser.add_argument("--client-id", default=None,
                        help="Client ID (overrides profile; use with --tenant-id for ad-hoc scans)")
    parser.add_argument("--audits", nargs="+", type=_audit_choice, default=None,
                        metavar="AUDIT",
                        help="Audits to run: ca sharing labels oversharing (default: all)")
    parser.add_argument("--max-sites", type=int, default=None,
                        help="Maximum SharePoint sites to scan")
    parser.add_argument("--formats", nargs="+", choices=["csv", "json", "text"], default=None,
                        help="Output formats to generate (default: csv json text)")
    parser.add_argument("--output-dir", "-o", type=Path, default=None,
                        help="Output directory for reports")
    parser.add_argument("--tenant-name", default=None,
                        help="Display name for the tenant in reports (overrides profile)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def _select_profile(args: argparse.Namespace) -> Optional[TenantProfile]:
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise ConfigError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
        return profile
    if not args.config and not args.tenant_id:
        return resolve_profile()
    return None


def _configured_identity(config: EngineConfig) -> Optional[tuple[str, str]]:
    for section in (config.auth.certificate, config.auth.secret, config.auth.delegated):
        if section:
            return section.tenant_id, section.client_id
    return None


def build_config(
    args: argparse.Namespace,
    profile: Optional[TenantProfile] = None,
) -> EngineConfig:
    """
    Build engine configuration from a config file, a profile and CLI flags.
    CLI flags override the profile, which overrides the config file.
    """
    config = EngineConfig.from_file(args.config) if args.config else EngineConfig()

    if args.delegated:
        config.auth.mode = "delegated"
    elif args.client_secret:
        config.auth.mode = "secret"
    elif profile:
        config.auth.mode = profile.auth_mode

    # --- Resolve tenant identity ---
    configured = _configured_identity(config)
    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
    elif args.tenant_id and args.client_id:
        tenant_id, client_id = args.tenant_id, args.client_id
    elif configured:
        tenant_id, client_id = configured
    else:
        raise ConfigError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, or --config config.json"
        )

    if config.auth.mode == "certificate":
        if args.cert_path:
            cert_path = str(args.cert_path)
        elif profile:
            cert_path = profile.resolve_cert_path()
        elif config.auth.certificate:
            cert_path = config.auth.certificate.certificate_path
        else:
            cert_path = "./base64.txt"
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
    elif config.auth.mode == "secret":
        secret = config.auth.secret.client_secret if config.auth.secret else ""
        config.auth.secret = SecretAuth(tenant_id=tenant_id, client_id=client_id, client_secret=secret)
    elif config.auth.mode == "delegated":
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
    else:
        raise ConfigError(f"Unknown auth mode: {config.auth.mode}")

    if args.audits:
        # de-duplicate, keep the canonical audit order
        config.collection.audits = [a for a in AUDIT_NAMES if a in args.audits]
    if args.max_sites is not None:
        if args.max_sites < 1:
            raise ConfigError("--max-sites must be at least 1")
        config.collection.max_sites = args.max_sites
    if args.formats:
        config.output.formats = list(args.formats)
    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    config.verbose = config.verbose or args.verbose

    return config


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def collectors_for(audits: list[str]) -> list[type]:
    """Collector classes the selected audits read from, in registry order."""
    needed = {name for audit in audits for name in AUDIT_COLLECTORS[audit]}
    return [cls for cls in ALL_COLLECTORS if cls.name in needed]


async def run_collection(
    client: GraphClient,
    config: EngineConfig,
    now: datetime,
) -> dict[str, Any]:
    """
    Run the collectors the selected audits need, concurrently.

    Returns:
        Dict mapping collector name to CollectorResult.
    """
    results = {}
    collectors = [
        cls(graph=client, config=config.collection, now=now)
        for cls in collectors_for(config.collection.audits)
    ]

    print(f"\n  Running {len(collectors)} collectors concurrently...\n")
    completed = await asyncio.gather(*(c.execute() for c in collectors), return_exceptions=True)

    for collector, result in zip(collectors, completed):
        display_name = collector.__class__.__name__
        if isinstance(result, Exception):
            print(f"  ❌ {display_name}: FAILED — {result}")
            continue
        count = sum(
            len(v) if isinstance(v, list) else 1
            for k, v in result.data.items()
            if not k.startswith("_")
        )
        print(f"  ✅ {display_name}: {count} data points collected "
              f"({result.metadata.get('duration_seconds', '?')}s)")
        for w in result.metadata.get("warnings", []):
            print(f"      ⚠  {w}")
        if result.metadata.get("failed_sites"):
            print(f"      ⚠  {len(result.metadata['failed_sites'])} sites could not be scanned")

        results[collector.name] = result

    return results


def run_analysis(
    collector_results: dict[str, Any],
    config: EngineConfig,
) -> list[AnalysisResult]:
    """Run the selected audits against collected data."""
    # Include _metadata so analyzers can report permission gaps and skipped sites
    merged_data = {
        name: {**result.data, "_metadata": result.metadata}
        for name, result in collector_results.items()
    }

    outcomes = []
    for cls in ALL_ANALYZERS:
        if cls.domain not in config.collection.audits:
            continue
        outcome = cls(config.collection).analyze(merged_data)
        outcomes.append(outcome)
        marker = "❌" if outcome.error else "✅"
        s = outcome.summary
        print(f"  {marker} {outcome.display_name:40s} {s.verdict.value:14s} "
              f"({s.record_count} records, {len(outcome.coverage_gaps)} coverage gaps)")
    return outcomes


def generate_reports(
    outcomes: list[AnalysisResult],
    collector_results: dict,
    output_dir: Path,
    scan_id: str,
    tenant_name: str,
    formats: list[str],
    safety_record: Optional[dict] = None,
) -> list[Path]:
    """Generate all requested report formats."""
    created = []

    if "json" in formats:
        path = export_json(outcomes, collector_results, output_dir, scan_id,
                           tenant_name=tenant_name, safety_record=safety_record)
        created.append(path)
        print(f"  📄 JSON:       {path}")

    if "csv" in formats:
        paths = export_csv(outcomes, output_dir, scan_id)
        created.extend(paths)
        for p in paths:
            print(f"  📊 CSV:        {p}")

    if "text" in formats:
        path = export_executive_summary(outcomes, output_dir, scan_id, tenant_name)
        created.append(path)
        print(f"  📋 Summary:    {path}")

    return created


def _phase(title: str):
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70)


async def run_scan(
    config: EngineConfig,
    token: str,
    guardian: SafetyGuardian,
    scan_id: str,
    tenant_name: str,
) -> list[AnalysisResult]:
    output_dir = config.output.scan_dir
    now = datetime.now(timezone.utc)

    async with GraphClient(
        access_token=token,
        guardian=guardian,
        max_pages=config.collection.max_pages,
        page_size=config.collection.page_size,
    ) as client:
        _phase("PHASE 1: DATA COLLECTION")
        collector_results = await run_collection(client, config, now)
        stats = client.get_stats()

    if not collector_results:
        print("\n❌ No data collected. Cannot proceed with analysis.")
        return []

    _phase("PHASE 2: READINESS ANALYSIS")
    print()
    outcomes = run_analysis(collector_results, config)

    _phase("PHASE 3: REPORT GENERATION")
    print()
    created_files = generate_reports(
        outcomes=outcomes,
        collector_results=collector_results,
        output_dir=output_dir,
        scan_id=scan_id,
        tenant_name=tenant_name,
        formats=config.output.formats,
        safety_record=guardian.get_audit_record(),
    )

    _phase("SCAN COMPLETE")
    print(f"\n  Overall:  {overall_verdict(outcomes).value}")
    print(f"  Requests: {stats.get('total_requests', 0)} "
          f"({stats.get('throttle_events', 0)} throttled)")
    print(f"  Files:    {len(created_files)} reports generated")
    print(f"  Path:     {output_dir.resolve()}")
    print()
    return outcomes


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for `python -m m365_copilot_readiness`."""
    args = build_parser().parse_args(argv)

    if args.command == "profile":
        return _cmd_profile(args)
    if args.command == "permissions":
        return _cmd_permissions()

    configure_logging(args.verbose)

    guardian = SafetyGuardian()
    guardian.print_banner()

    print("=" * 70)
    print(f" M365 Copilot Readiness Audit v{__version__}")
    print(" Mode: READ-ONLY — No tenant modifications will be made")
    print("=" * 70)

    try:
        profile = _select_profile(args)
        config = build_config(args, profile)
    except ConfigError as e:
        print(f"\n❌ {e}")
        return 1

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    scan_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    output_dir = config.output.scan_dir

    if args.tenant_name:
        tenant_name = args.tenant_name
    elif profile and profile.tenant_display_name:
        tenant_name = profile.tenant_display_name
    else:
        tenant_name = "Unknown Tenant"

    profile_label = f" (profile: {profile.name})" if profile else ""
    print(f"\n📋 Scan ID: {scan_id}")
    print(f"📂 Output:  {output_dir.resolve()}")
    print(f"🏢 Tenant:  {tenant_name}{profile_label}")
    print(f"🔎 Audits:  {', '.join(config.collection.audits)}")

    print("\n🔐 Authenticating...")
    try:
        token = Authenticator(config.auth).acquire_token()
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        return 1
    print("✅ Authentication successful.")

    outcomes = asyncio.run(run_scan(config, token, guardian, scan_id, tenant_name))
    return 0 if outcomes else 1


if __name__ == "__main__":
    sys.exit(main())
