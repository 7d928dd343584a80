"""
MSAL token acquisition for the readiness audit.

App-only runs use a certificate (base64-encoded PFX) or a client secret;
interactive runs use the device-code flow with delegated scopes.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Callable, Optional

import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from ..config import AuthConfig

logger = logging.getLogger("m365_copilot_readiness.auth")

GRAPH_DEFAULT_SCOPE = ["https://graph.microsoft.com/.default"]
LOGIN_AUTHORITY = "https://login.microsoftonline.com/"

CERT_PASSWORD_ENV = "M365_CERT_PASSWORD"
CLIENT_SECRET_ENV = "M365_CLIENT_SECRET"


class AuthenticationError(Exception):
    pass


def load_pfx_credential(cert_path: str, password: str) -> dict[str, str]:
    """
    Turn a base64-encoded PFX on disk into the thumbprint/private_key
    credential dict that msal.ConfidentialClientApplication accepts.
    """
    try:
        with open(cert_path, "r", encoding="utf-8") as f:
            pfx = base64.b64decode(f.read().strip())
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}")
    except (OSError, ValueError) as e:
        raise AuthenticationError(f"Cannot read certificate {cert_path}: {e}")

    try:
        key, cert, _ = pkcs12.load_key_and_certificates(
            pfx, password.encode("utf-8") if password else None
        )
    except ValueError as e:
        # wrong password and corrupt archives both land here
        raise AuthenticationError(f"Cannot open PFX {cert_path}: {e}")
    if key is None or cert is None:
        raise AuthenticationError(f"{cert_path} holds no private key/certificate pair")

    thumbprint = cert.fingerprint(SHA1()).hex()
    logger.info(f"Loaded certificate {thumbprint}")
    pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
    return {"thumbprint": thumbprint, "private_key": pem.decode("utf-8")}


class Authenticator:
    """Acquires a Graph access token for the configured auth mode."""

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None

    def acquire_token(self) -> str:
        flows: dict[str, Callable[[], str]] = {
            "certificate": self._certificate_flow,
            "secret": self._secret_flow,
            "delegated": self._device_code_flow,
        }
        flow = flows.get(self.config.mode)
        if flow is None:
            raise AuthenticationError(
                f"Unknown auth mode '{self.config.mode}' (expected one of {', '.join(flows)})"
            )
        return flow()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    # ─── Flows ──────────────────────────────────────────────────────────

    def _certificate_flow(self) -> str:
        settings = self.config.certificate
        if settings is None:
            raise AuthenticationError("auth.mode is 'certificate' but no certificate settings were given")

        password = (
            settings.certificate_password
            or os.environ.get(CERT_PASSWORD_ENV, "")
            or getpass.getpass(f"Password for {settings.certificate_path}: ")
        )
        credential = load_pfx_credential(settings.certificate_path, password)
        logger.info(f"Requesting app-only token for tenant {settings.tenant_id} (certificate)")
        return self._app_only_token(settings.tenant_id, settings.client_id, credential, "certificate")

    def _secret_flow(self) -> str:
        settings = self.config.secret
        if settings is None:
            raise AuthenticationError("auth.mode is 'secret' but no client secret settings were given")

        secret = settings.client_secret or os.environ.get(CLIENT_SECRET_ENV, "")
        if not secret:
            raise AuthenticationError(f"No client secret: set {CLIENT_SECRET_ENV} or auth.secret.client_secret")
        logger.info(f"Requesting app-only token for tenant {settings.tenant_id} (client secret)")
        return self._app_only_token(settings.tenant_id, settings.client_id, secret, "client secret")

    def _device_code_flow(self) -> str:
        settings = self.config.delegated
        if settings is None:
            raise AuthenticationError("auth.mode is 'delegated' but no delegated settings were given")

        app = msal.PublicClientApplication(
            client_id=settings.client_id,
            authority=LOGIN_AUTHORITY + settings.tenant_id,
        )
        flow = app.initiate_device_flow(scopes=settings.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Could not start device-code sign-in: {flow.get('error_description', 'no details')}"
            )

        # the device-code prompt must reach the operator even with logging at WARNING
        print()
        print(f"  Sign in at {flow['verification_uri']} with code {flow['user_code']}")
        print()
        return self._remember(app.acquire_token_by_device_flow(flow), "device code")

    def _app_only_token(self, tenant_id: str, client_id: str, credential, label: str) -> str:
        app = msal.ConfidentialClientApplication(
            client_id=client_id,
            authority=LOGIN_AUTHORITY + tenant_id,
            client_credential=credential,
        )
        return self._remember(app.acquire_token_for_client(scopes=GRAPH_DEFAULT_SCOPE), label)

    def _remember(self, response: dict, label: str) -> str:
        token = response.get("access_token")
        if not token:
            detail = response.get("error_description") or response.get("error") or "no error details"
            raise AuthenticationError(f"Token request ({label}) rejected: {detail}")
        self._access_token = token
        logger.info(f"Token acquired ({label})")
        return token
