"""Shared configuration loader for satguard."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .model import Chain


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".satguard.yaml"
DEFAULT_ORD_URL = "http://127.0.0.1:80"
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class RPCConfig:
    """Configuration container for Bitcoin Core RPC connection details."""

    user: str
    password: str
    host: str = "127.0.0.1"
    port: int = 8332
    use_https: bool = False
    wallet: str | None = None

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}"


@dataclass
class SatguardConfig:
    """Everything a send needs to reach its collaborators."""

    rpc: RPCConfig
    ord_url: str = DEFAULT_ORD_URL
    chain: Chain = Chain.MAINNET


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with an 'rpc' section")
    return loaded


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_port(raw: Any, *, source: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid port in {source}: {raw}") from exc


def _coerce_chain(raw: Any, *, source: str) -> Chain | None:
    if raw is None:
        return None
    try:
        return Chain.parse(str(raw))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid chain in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _parse_endpoint(raw: str | None) -> tuple[str | None, int | None, bool | None]:
    if not raw:
        return None, None, None
    parsed = urlparse(raw)
    if not parsed.scheme and not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    host = parsed.hostname or None
    port = parsed.port
    use_https = parsed.scheme.lower() == "https" if parsed.scheme else None
    return host, port, use_https


def _resolve_path(config_path: str | Path | None) -> tuple[Path, bool]:
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )
    return path, explicit_path


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> SatguardConfig:
    """Load RPC, ord server, and chain settings.

    Precedence is ``overrides`` (CLI flags), then environment variables, then
    the YAML file, then built-in defaults. The RPC port defaults to the
    selected chain's standard port.
    """

    env_map = os.environ if env is None else env
    path, explicit_path = _resolve_path(config_path)
    file_config = _load_config_file(path, required=explicit_path)

    rpc_section = file_config.get("rpc") or {}
    if rpc_section and not isinstance(rpc_section, dict):
        raise ConfigurationError(f"Expected 'rpc' to be a mapping in {path}")
    ord_section = file_config.get("ord") or {}
    if ord_section and not isinstance(ord_section, dict):
        raise ConfigurationError(f"Expected 'ord' to be a mapping in {path}")

    override_map = dict(overrides or {})

    chain = _first_value(
        _coerce_chain(override_map.get("chain"), source="overrides"),
        _coerce_chain(env_map.get("SATGUARD_CHAIN"), source="environment"),
        _coerce_chain(file_config.get("chain"), source=f"{path} chain"),
        Chain.MAINNET,
    )

    env_port = _coerce_port(env_map.get("SATGUARD_RPC_PORT"), source="environment")
    env_use_https = _coerce_bool(env_map.get("SATGUARD_RPC_USE_HTTPS"))
    endpoint_host, endpoint_port, endpoint_use_https = _parse_endpoint(
        _first_value(
            override_map.get("endpoint"),
            env_map.get("SATGUARD_RPC_URL"),
            rpc_section.get("endpoint"),
        )
    )

    resolved_user = _first_value(
        override_map.get("user"), env_map.get("SATGUARD_RPC_USER"), rpc_section.get("user")
    )
    resolved_password = _first_value(
        override_map.get("password"),
        env_map.get("SATGUARD_RPC_PASSWORD"),
        rpc_section.get("password"),
    )
    if not resolved_user or not resolved_password:
        raise ConfigurationError(
            "RPC credentials must be provided via SATGUARD_RPC_* environment variables or a config file"
        )

    resolved_host = _first_value(
        override_map.get("host"),
        endpoint_host,
        env_map.get("SATGUARD_RPC_HOST"),
        rpc_section.get("host"),
        "127.0.0.1",
    )
    resolved_port = _first_value(
        _coerce_port(override_map.get("port"), source="overrides"),
        endpoint_port,
        env_port,
        _coerce_port(rpc_section.get("port"), source=f"{path} rpc.port"),
        chain.default_rpc_port,
    )
    resolved_use_https = _first_value(
        _coerce_bool(override_map.get("use_https")),
        endpoint_use_https,
        env_use_https,
        _coerce_bool(rpc_section.get("use_https")),
        False,
    )
    resolved_wallet = _first_value(
        override_map.get("wallet"), env_map.get("SATGUARD_RPC_WALLET"), rpc_section.get("wallet")
    )

    ord_url = _first_value(
        override_map.get("ord_url"),
        env_map.get("SATGUARD_ORD_URL"),
        ord_section.get("url"),
        DEFAULT_ORD_URL,
    )

    rpc = RPCConfig(
        user=str(resolved_user),
        password=str(resolved_password),
        host=resolved_host,
        port=resolved_port,
        use_https=bool(resolved_use_https),
        wallet=resolved_wallet,
    )
    return SatguardConfig(rpc=rpc, ord_url=str(ord_url).rstrip("/"), chain=chain)
