from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

DEFAULT_DOMAIN_NAME = "cdk-elk"
DEFAULT_USER_POOL_DOMAIN_PREFIX = "cdk-elk"
# Single small node is meant for testing; override for anything long-lived.
DEFAULT_DATA_NODE_INSTANCE_TYPE = "t3.small.search"
DEFAULT_DATA_NODES = 1
DEFAULT_EBS_VOLUME_SIZE_GIB = 30
DEFAULT_DATA_RETENTION_MODE = "retain"

_DOMAIN_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{2,27}$")
_DOMAIN_PREFIX_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_DOMAIN_PREFIX_RESERVED = ("aws", "amazon", "cognito")


@dataclass(frozen=True)
class SearchStackConfig:
    domain_name: str = DEFAULT_DOMAIN_NAME
    user_pool_domain_prefix: str = DEFAULT_USER_POOL_DOMAIN_PREFIX
    data_node_instance_type: str = DEFAULT_DATA_NODE_INSTANCE_TYPE
    data_nodes: int = DEFAULT_DATA_NODES
    ebs_volume_size_gib: int = DEFAULT_EBS_VOLUME_SIZE_GIB
    data_retention_mode: str = DEFAULT_DATA_RETENTION_MODE

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "data_retention_mode", (self.data_retention_mode or "").strip().lower()
        )
        validate_search_config(self)

    @property
    def retain_data(self) -> bool:
        return self.data_retention_mode == "retain"


def _env(environ: Mapping[str, str], name: str) -> str | None:
    v = (environ.get(name) or "").strip()
    return v or None


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = _env(environ, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def validate_search_config(config: SearchStackConfig) -> None:
    if not _DOMAIN_NAME_RE.match(config.domain_name or ""):
        raise ValueError(
            "SEARCH_DOMAIN_NAME must be 3-28 characters of lowercase letters, digits "
            f"or hyphens and start with a letter, got {config.domain_name!r}"
        )

    prefix = config.user_pool_domain_prefix or ""
    if not _DOMAIN_PREFIX_RE.match(prefix):
        raise ValueError(
            "USER_POOL_DOMAIN_PREFIX must be lowercase letters, digits or hyphens "
            f"and must not start or end with a hyphen, got {prefix!r}"
        )
    for word in _DOMAIN_PREFIX_RESERVED:
        if word in prefix:
            raise ValueError(
                f"USER_POOL_DOMAIN_PREFIX must not contain reserved word {word!r}, got {prefix!r}"
            )

    if not (config.data_node_instance_type or "").endswith(".search"):
        raise ValueError(
            "SEARCH_DATA_NODE_INSTANCE_TYPE must end with '.search', "
            f"got {config.data_node_instance_type!r}"
        )
    if config.data_nodes < 1:
        raise ValueError(f"SEARCH_DATA_NODES must be >= 1, got {config.data_nodes}")
    if config.ebs_volume_size_gib < 10:
        raise ValueError(
            f"SEARCH_EBS_VOLUME_SIZE_GIB must be >= 10, got {config.ebs_volume_size_gib}"
        )
    if config.data_retention_mode not in {"destroy", "retain"}:
        raise ValueError(
            "DATA_RETENTION_MODE must be 'destroy' or 'retain' (case-insensitive)"
        )


def load_search_config(environ: Mapping[str, str] | None = None) -> SearchStackConfig:
    """Build the stack configuration from environment variables.

    Unset or blank variables fall back to the defaults above. Invalid values
    raise ValueError naming the offending variable.
    """
    env = os.environ if environ is None else environ
    return SearchStackConfig(
        domain_name=_env(env, "SEARCH_DOMAIN_NAME") or DEFAULT_DOMAIN_NAME,
        user_pool_domain_prefix=(
            _env(env, "USER_POOL_DOMAIN_PREFIX") or DEFAULT_USER_POOL_DOMAIN_PREFIX
        ),
        data_node_instance_type=(
            _env(env, "SEARCH_DATA_NODE_INSTANCE_TYPE") or DEFAULT_DATA_NODE_INSTANCE_TYPE
        ),
        data_nodes=_env_int(env, "SEARCH_DATA_NODES", DEFAULT_DATA_NODES),
        ebs_volume_size_gib=_env_int(
            env, "SEARCH_EBS_VOLUME_SIZE_GIB", DEFAULT_EBS_VOLUME_SIZE_GIB
        ),
        data_retention_mode=(
            _env(env, "DATA_RETENTION_MODE") or DEFAULT_DATA_RETENTION_MODE
        ),
    )
