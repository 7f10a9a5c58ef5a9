"""Store platform configuration settings.

StorePlatformSettings is the single configuration object accepted by
create_app(). It is a plain dataclass (not env-coupled) so tests can inject
config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# In-cluster service-account credentials, used when nothing explicit is set.
SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")

_FALSEY = {"0", "false", "no", "off"}


def _read_text(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError:
        return ""


@dataclass(frozen=True, slots=True)
class StorePlatformSettings:
    """Configuration for the store platform FastAPI application.

    All fields have sensible defaults for local development, where the
    in-memory cluster is used. Non-local environments must supply a real
    cluster_api_url and cluster_token.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    base_domain: str = "127.0.0.1.nip.io"
    """Stores are routed at <store_id>.<base_domain>."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = ("*",)
    """Allowed CORS origins."""

    # ── Cluster ────────────────────────────────────────────────────
    cluster_api_url: str = ""
    """Kubernetes API server URL (e.g. https://10.0.0.1:443)."""

    cluster_token: str = ""
    """Bearer token for the Kubernetes API. Never log this."""

    cluster_ca_path: str = ""
    """CA bundle used to verify the API server certificate."""

    cluster_verify_tls: bool = True

    # ── Provisioning timing ────────────────────────────────────────
    poll_interval_seconds: float = 5.0
    data_tier_ready_timeout_seconds: float = 120
    application_ready_timeout_seconds: float = 300
    bootstrap_timeout_seconds: float = 600

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def tls_verify(self) -> bool | str:
        """Value for httpx ``verify=``: a CA path, or a plain flag."""
        if not self.cluster_verify_tls:
            return False
        return self.cluster_ca_path or True

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.cluster_api_url:
                errors.append(f"{self.environment}: cluster_api_url is required")
            if not self.cluster_token:
                errors.append(f"{self.environment}: cluster_token is required")
        if not self.base_domain:
            errors.append("base_domain must not be empty")
        for name in (
            "poll_interval_seconds",
            "data_tier_ready_timeout_seconds",
            "application_ready_timeout_seconds",
            "bootstrap_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        return errors

    @classmethod
    def from_env(
        cls,
        env: dict[str, str] | None = None,
        *,
        service_account_dir: Path = SERVICE_ACCOUNT_DIR,
    ) -> StorePlatformSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct StorePlatformSettings directly.
        """
        if env is None:
            env = dict(os.environ)
        defaults = cls()

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else defaults.cors_origins

        api_url = env.get("CLUSTER_API_URL", "")
        if not api_url and env.get("KUBERNETES_SERVICE_HOST"):
            port = env.get("KUBERNETES_SERVICE_PORT", "443")
            api_url = f"https://{env['KUBERNETES_SERVICE_HOST']}:{port}"

        token = env.get("CLUSTER_TOKEN", "") or _read_text(service_account_dir / "token")

        ca_path = env.get("CLUSTER_CA_PATH", "")
        if not ca_path and (service_account_dir / "ca.crt").is_file():
            ca_path = str(service_account_dir / "ca.crt")

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            base_domain=env.get("BASE_DOMAIN", defaults.base_domain),
            cors_origins=cors,
            cluster_api_url=api_url,
            cluster_token=token,
            cluster_ca_path=ca_path,
            cluster_verify_tls=env.get("CLUSTER_VERIFY_TLS", "true").strip().lower() not in _FALSEY,
            poll_interval_seconds=float(env.get("POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds)),
            data_tier_ready_timeout_seconds=float(
                env.get("DATA_TIER_READY_TIMEOUT_SECONDS", defaults.data_tier_ready_timeout_seconds)
            ),
            application_ready_timeout_seconds=float(
                env.get("APPLICATION_READY_TIMEOUT_SECONDS", defaults.application_ready_timeout_seconds)
            ),
            bootstrap_timeout_seconds=float(
                env.get("BOOTSTRAP_TIMEOUT_SECONDS", defaults.bootstrap_timeout_seconds)
            ),
            log_level=env.get("LOG_LEVEL", defaults.log_level),
            log_json=env.get("LOG_FORMAT", "json") == "json",
        )
