"""Kubernetes manifests for a store instance.

The manifests are domain data: images, volume sizes, probe timings, quota
values and the bootstrap script are carried by ``WooCommerceTemplates`` so
deployments can tune them without touching the provisioning sequence.
Builders are pure functions returning plain dicts ready for the REST API.
"""

from __future__ import annotations

import base64
import shlex
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

MANAGED_BY = "store-platform"

# Object names inside a store namespace.
QUOTA_NAME = "store-quota"
LIMIT_RANGE_NAME = "store-limits"
DB_SECRET_NAME = "mariadb-secret"
DB_PVC_NAME = "mariadb-data"
DB_NAME = "mariadb"
DB_PORT = 3306
APP_PVC_NAME = "wordpress-data"
APP_NAME = "wordpress"
APP_PORT = 80
INGRESS_NAME = "store-ingress"
BOOTSTRAP_JOB_NAME = "woocommerce-bootstrap"
ADMIN_SECRET_NAME = "wordpress-admin"

# Secret keys and the fixed database identity.
DB_ROOT_PASSWORD_KEY = "mariadb-root-password"
DB_PASSWORD_KEY = "mariadb-password"
DB_DATABASE_KEY = "mariadb-database"
DB_USER_KEY = "mariadb-user"
DB_DATABASE = "wordpress"
DB_USER = "wordpress"
ADMIN_USER_KEY = "admin-user"
ADMIN_PASSWORD_KEY = "admin-password"
ADMIN_USER = "admin"

WP_ROOT = "/var/www/html"


def _frozen(values: dict[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True, slots=True)
class Probe:
    initial_delay_seconds: int
    period_seconds: int


@dataclass(frozen=True, slots=True)
class WooCommerceTemplates:
    """Tunable inputs for the WooCommerce engine manifests."""

    db_image: str = "mariadb:10.11"
    db_storage: str = "5Gi"
    db_resources: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({
            "requests": _frozen({"cpu": "100m", "memory": "256Mi"}),
            "limits": _frozen({"cpu": "500m", "memory": "512Mi"}),
        })
    )
    db_liveness: Probe = Probe(initial_delay_seconds=30, period_seconds=10)
    db_readiness: Probe = Probe(initial_delay_seconds=5, period_seconds=5)

    wait_image: str = "busybox:1.36"

    app_image: str = "wordpress:6.4-apache"
    app_storage: str = "10Gi"
    app_resources: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({
            "requests": _frozen({"cpu": "200m", "memory": "256Mi"}),
            "limits": _frozen({"cpu": "1", "memory": "1Gi"}),
        })
    )
    app_probe_path: str = "/wp-admin/install.php"
    app_liveness: Probe = Probe(initial_delay_seconds=60, period_seconds=15)
    app_readiness: Probe = Probe(initial_delay_seconds=30, period_seconds=5)

    quota_hard: Mapping[str, str] = field(
        default_factory=lambda: _frozen({
            "requests.cpu": "1",
            "requests.memory": "2Gi",
            "limits.cpu": "2",
            "limits.memory": "4Gi",
            "persistentvolumeclaims": "3",
            "pods": "10",
        })
    )
    container_default_limits: Mapping[str, str] = field(
        default_factory=lambda: _frozen({"cpu": "500m", "memory": "512Mi"})
    )
    container_default_requests: Mapping[str, str] = field(
        default_factory=lambda: _frozen({"cpu": "100m", "memory": "128Mi"})
    )

    ingress_class: str = "nginx"
    proxy_body_size: str = "50m"

    cli_image: str = "wordpress:cli-2.9"
    commerce_plugin: str = "woocommerce"
    sample_product_name: str = "Sample Product"
    sample_product_price: str = "19.99"
    bootstrap_backoff_limit: int = 2
    bootstrap_ttl_seconds: int = 600
    config_wait_attempts: int = 90
    install_attempts: int = 30


def b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _metadata(name: str, namespace: str, **extra: Any) -> dict[str, Any]:
    return {"name": name, "namespace": namespace, **extra}


def _dict(mapping: Mapping[str, Any]) -> dict[str, Any]:
    return {
        k: _dict(v) if isinstance(v, Mapping) else v
        for k, v in mapping.items()
    }


def _probe(probe: Probe, handler: dict[str, Any]) -> dict[str, Any]:
    return {
        **handler,
        "initialDelaySeconds": probe.initial_delay_seconds,
        "periodSeconds": probe.period_seconds,
    }


def _secret_env(env_name: str, secret_name: str, key: str) -> dict[str, Any]:
    return {
        "name": env_name,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}},
    }


# ── Isolation boundary and quotas ────────────────────────────────


def namespace_manifest(name: str, *, store_id: str | None = None) -> dict[str, Any]:
    labels = {
        "app.kubernetes.io/managed-by": MANAGED_BY,
        "store-platform/type": "store",
    }
    if store_id:
        labels["store-platform/store-id"] = store_id
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name, "labels": labels},
    }


def resource_quota_manifest(namespace: str, t: WooCommerceTemplates) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": _metadata(QUOTA_NAME, namespace),
        "spec": {"hard": dict(t.quota_hard)},
    }


def limit_range_manifest(namespace: str, t: WooCommerceTemplates) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "LimitRange",
        "metadata": _metadata(LIMIT_RANGE_NAME, namespace),
        "spec": {
            "limits": [
                {
                    "type": "Container",
                    "default": dict(t.container_default_limits),
                    "defaultRequest": dict(t.container_default_requests),
                }
            ]
        },
    }


# ── Shared primitives ────────────────────────────────────────────


def secret_manifest(
    namespace: str, name: str, data: Mapping[str, str],
) -> dict[str, Any]:
    """Opaque secret; ``data`` values are plain text and get base64-encoded."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(name, namespace),
        "type": "Opaque",
        "data": {k: b64(v) for k, v in data.items()},
    }


def pvc_manifest(namespace: str, name: str, size: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(name, namespace),
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": size}},
        },
    }


def database_secret_data(password: str) -> dict[str, str]:
    return {
        DB_ROOT_PASSWORD_KEY: password,
        DB_PASSWORD_KEY: password,
        DB_DATABASE_KEY: DB_DATABASE,
        DB_USER_KEY: DB_USER,
    }


# ── Data tier (MariaDB) ──────────────────────────────────────────


def database_statefulset_manifest(
    namespace: str, t: WooCommerceTemplates,
) -> dict[str, Any]:
    ping = {
        "exec": {
            "command": [
                "sh",
                "-c",
                'mysqladmin ping -h localhost -uroot -p"$MARIADB_ROOT_PASSWORD"',
            ]
        }
    }
    labels = {"app": DB_NAME}
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": _metadata(DB_NAME, namespace),
        "spec": {
            "serviceName": DB_NAME,
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [
                        {
                            "name": DB_NAME,
                            "image": t.db_image,
                            "ports": [{"containerPort": DB_PORT, "name": "mysql"}],
                            "env": [
                                _secret_env(
                                    "MARIADB_ROOT_PASSWORD",
                                    DB_SECRET_NAME,
                                    DB_ROOT_PASSWORD_KEY,
                                ),
                                {"name": "MARIADB_DATABASE", "value": DB_DATABASE},
                                {"name": "MARIADB_USER", "value": DB_USER},
                                _secret_env(
                                    "MARIADB_PASSWORD", DB_SECRET_NAME, DB_PASSWORD_KEY,
                                ),
                            ],
                            "volumeMounts": [
                                {"name": "data", "mountPath": "/var/lib/mysql"}
                            ],
                            "resources": _dict(t.db_resources),
                            "livenessProbe": _probe(t.db_liveness, ping),
                            "readinessProbe": _probe(t.db_readiness, ping),
                        }
                    ],
                    "volumes": [
                        {
                            "name": "data",
                            "persistentVolumeClaim": {"claimName": DB_PVC_NAME},
                        }
                    ],
                },
            },
        },
    }


def database_service_manifest(namespace: str) -> dict[str, Any]:
    """Headless service giving the database a stable DNS name."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(DB_NAME, namespace),
        "spec": {
            "selector": {"app": DB_NAME},
            "ports": [{"port": DB_PORT, "targetPort": DB_PORT}],
            "clusterIP": "None",
        },
    }


# ── Application tier (WordPress) ─────────────────────────────────


def _wordpress_db_env() -> list[dict[str, Any]]:
    return [
        {"name": "WORDPRESS_DB_HOST", "value": f"{DB_NAME}:{DB_PORT}"},
        {"name": "WORDPRESS_DB_NAME", "value": DB_DATABASE},
        {"name": "WORDPRESS_DB_USER", "value": DB_USER},
        _secret_env("WORDPRESS_DB_PASSWORD", DB_SECRET_NAME, DB_PASSWORD_KEY),
    ]


def wordpress_deployment_manifest(
    namespace: str, t: WooCommerceTemplates,
) -> dict[str, Any]:
    http_check = {"httpGet": {"path": t.app_probe_path, "port": APP_PORT}}
    labels = {"app": APP_NAME}
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(APP_NAME, namespace),
        "spec": {
            "replicas": 1,
            # Single replica on a ReadWriteOnce volume: no rolling overlap.
            "strategy": {"type": "Recreate"},
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "initContainers": [
                        {
                            "name": "wait-for-db",
                            "image": t.wait_image,
                            "command": [
                                "sh",
                                "-c",
                                f"until nc -z {DB_NAME} {DB_PORT}; do "
                                f"echo waiting for {DB_NAME}; sleep 2; done;",
                            ],
                        }
                    ],
                    "containers": [
                        {
                            "name": APP_NAME,
                            "image": t.app_image,
                            "ports": [{"containerPort": APP_PORT, "name": "http"}],
                            "env": [
                                *_wordpress_db_env(),
                                {
                                    "name": "WORDPRESS_CONFIG_EXTRA",
                                    "value": (
                                        "define('WP_HOME', 'http://' . $_SERVER['HTTP_HOST']); "
                                        "define('WP_SITEURL', 'http://' . $_SERVER['HTTP_HOST']);"
                                    ),
                                },
                            ],
                            "volumeMounts": [
                                {"name": APP_PVC_NAME, "mountPath": WP_ROOT}
                            ],
                            "resources": _dict(t.app_resources),
                            "livenessProbe": _probe(t.app_liveness, http_check),
                            "readinessProbe": _probe(t.app_readiness, http_check),
                        }
                    ],
                    "volumes": [
                        {
                            "name": APP_PVC_NAME,
                            "persistentVolumeClaim": {"claimName": APP_PVC_NAME},
                        }
                    ],
                },
            },
        },
    }


def wordpress_service_manifest(namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(APP_NAME, namespace),
        "spec": {
            "selector": {"app": APP_NAME},
            "ports": [{"port": APP_PORT, "targetPort": APP_PORT}],
            "type": "ClusterIP",
        },
    }


# ── Public route ─────────────────────────────────────────────────


def ingress_manifest(
    namespace: str, host: str, t: WooCommerceTemplates,
) -> dict[str, Any]:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": _metadata(
            INGRESS_NAME,
            namespace,
            annotations={
                "nginx.ingress.kubernetes.io/proxy-body-size": t.proxy_body_size,
            },
        ),
        "spec": {
            "ingressClassName": t.ingress_class,
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": APP_NAME,
                                        "port": {"number": APP_PORT},
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }


# ── Bootstrap job ────────────────────────────────────────────────


def bootstrap_script(t: WooCommerceTemplates) -> str:
    """Shell script run by the bootstrap job (wp-cli image).

    Waits for wp-config.php, installs WordPress until ``wp core is-installed``
    passes, activates the commerce plugin, seeds one product into an empty
    catalog and applies the checkout/payment/permalink options.
    """
    wp = f"wp --path={WP_ROOT}"
    plugin = shlex.quote(t.commerce_plugin)
    product = shlex.quote(t.sample_product_name)
    price = shlex.quote(t.sample_product_price)
    return "\n".join([
        "set -eu",
        "i=0",
        f"until [ -f {WP_ROOT}/wp-config.php ]; do",
        "  i=$((i+1))",
        f'  if [ "$i" -ge {t.config_wait_attempts} ]; then echo "wp-config.php not found"; exit 1; fi',
        "  sleep 2",
        "done",
        "i=0",
        f"until {wp} core is-installed; do",
        "  i=$((i+1))",
        f'  if [ "$i" -ge {t.install_attempts} ]; then echo "WordPress install did not complete"; exit 1; fi',
        f'  {wp} core install --url="http://$STORE_HOST" --title="$STORE_TITLE" '
        '--admin_user="$ADMIN_USER" --admin_password="$ADMIN_PASSWORD" '
        '--admin_email="$ADMIN_EMAIL" --skip-email || true',
        "  sleep 2",
        "done",
        f"{wp} plugin is-installed {plugin} || {wp} plugin install {plugin}",
        f"{wp} plugin activate {plugin}",
        f'count="$({wp} post list --post_type=product --post_status=any --format=count)"',
        'if [ "$count" -eq 0 ]; then',
        f"  {wp} wc product create --name={product} --type=simple "
        f'--regular_price={price} --status=publish --user="$ADMIN_USER"',
        "fi",
        f"{wp} option update woocommerce_enable_guest_checkout yes",
        f"{wp} option update woocommerce_ship_to_destination billing",
        f"{wp} option update woocommerce_cod_settings "
        "'{\"enabled\":\"yes\",\"title\":\"Cash on delivery\"}' --format=json",
        f"{wp} option update woocommerce_bacs_settings "
        "'{\"enabled\":\"yes\",\"title\":\"Direct bank transfer\"}' --format=json",
        f"{wp} rewrite structure '/%postname%/' --hard",
        'echo "bootstrap complete"',
    ])


def bootstrap_job_manifest(
    namespace: str,
    *,
    host: str,
    display_name: str,
    t: WooCommerceTemplates,
) -> dict[str, Any]:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(BOOTSTRAP_JOB_NAME, namespace),
        "spec": {
            "backoffLimit": t.bootstrap_backoff_limit,
            "ttlSecondsAfterFinished": t.bootstrap_ttl_seconds,
            "template": {
                "metadata": {"labels": {"app": BOOTSTRAP_JOB_NAME}},
                "spec": {
                    "restartPolicy": "Never",
                    "containers": [
                        {
                            "name": "bootstrap",
                            "image": t.cli_image,
                            "command": ["sh", "-c", bootstrap_script(t)],
                            "env": [
                                *_wordpress_db_env(),
                                {"name": "STORE_HOST", "value": host},
                                {"name": "STORE_TITLE", "value": display_name},
                                _secret_env(
                                    "ADMIN_USER", ADMIN_SECRET_NAME, ADMIN_USER_KEY,
                                ),
                                _secret_env(
                                    "ADMIN_PASSWORD",
                                    ADMIN_SECRET_NAME,
                                    ADMIN_PASSWORD_KEY,
                                ),
                                {"name": "ADMIN_EMAIL", "value": f"admin@{host}"},
                            ],
                            "volumeMounts": [
                                {"name": APP_PVC_NAME, "mountPath": WP_ROOT}
                            ],
                        }
                    ],
                    "volumes": [
                        {
                            "name": APP_PVC_NAME,
                            "persistentVolumeClaim": {"claimName": APP_PVC_NAME},
                        }
                    ],
                },
            },
        },
    }
