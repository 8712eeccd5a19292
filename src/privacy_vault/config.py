"""Settings loader for privacy-vault.

Supports a YAML file, a plain dict, and environment variables.  Values
from the environment win over the file.

Example YAML:

    privacy_vault:
      secret: change-me
      store:
        backend: sqlite          # "memory" or "sqlite"
        path: ~/.privacy-vault/tokens.db
      server:
        host: 127.0.0.1
        port: 3001
        max_body_bytes: 262144
      openai:
        model: gpt-4o-mini
        timeout: 60
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from .completion import CompletionClient, OpenAICompletionClient
from .errors import ConfigurationError
from .relay import SecureRelay
from .store import MemoryTokenStore, TokenStore
from .store_sqlite import SqliteTokenStore
from .tokenizer import Detokenizer, Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_DB = str(Path.home() / ".privacy-vault" / "tokens.db")


@dataclass(frozen=True)
class VaultSettings:
    secret: str = ""
    store_backend: str = "sqlite"
    db_path: str = DEFAULT_DB
    host: str = "127.0.0.1"
    port: int = 3001
    max_body_bytes: int = 256 * 1024
    openai_api_key: str | None = None
    openai_model: str | None = None
    completion_timeout: float = 60.0


def _value(section: Mapping[str, Any], key: str, default: Any) -> Any:
    """A key left blank in YAML (None) means "use the default"."""
    value = section.get(key)
    return default if value is None else value


def load_config(data: Mapping[str, Any]) -> VaultSettings:
    """Normalize a config dict (from YAML or inline)."""
    # Support nested under "privacy_vault" key or flat
    if "privacy_vault" in data:
        data = data["privacy_vault"] or {}

    store = data.get("store") or {}
    server = data.get("server") or {}
    openai_cfg = data.get("openai") or {}
    defaults = VaultSettings()

    settings = VaultSettings(
        secret=str(_value(data, "secret", defaults.secret)),
        store_backend=_value(store, "backend", defaults.store_backend),
        db_path=str(_value(store, "path", defaults.db_path)),
        host=_value(server, "host", defaults.host),
        port=int(_value(server, "port", defaults.port)),
        max_body_bytes=int(_value(server, "max_body_bytes", defaults.max_body_bytes)),
        openai_api_key=openai_cfg.get("api_key") or None,
        openai_model=openai_cfg.get("model") or None,
        completion_timeout=float(_value(openai_cfg, "timeout", defaults.completion_timeout)),
    )
    _validate(settings)
    return settings


def load_from_yaml(path: str | Path) -> VaultSettings:
    """Load settings from a YAML file."""
    import yaml
    with open(Path(path).expanduser(), encoding="utf-8") as f:
        return load_config(yaml.safe_load(f) or {})


def load_from_env(
    environ: Mapping[str, str] | None = None,
    base: VaultSettings | None = None,
) -> VaultSettings:
    """Overlay environment variables onto ``base`` (or the defaults)."""
    env = os.environ if environ is None else environ
    settings = base or VaultSettings()
    overrides: dict[str, Any] = {}

    if "VAULT_SECRET" in env:
        overrides["secret"] = env["VAULT_SECRET"]
    if env.get("VAULT_STORE"):
        overrides["store_backend"] = env["VAULT_STORE"]
    if env.get("VAULT_DB"):
        overrides["db_path"] = env["VAULT_DB"]
    if env.get("VAULT_HOST"):
        overrides["host"] = env["VAULT_HOST"]
    if env.get("PORT"):
        overrides["port"] = int(env["PORT"])
    if env.get("OPENAI_API_KEY"):
        overrides["openai_api_key"] = env["OPENAI_API_KEY"]
    if env.get("OPENAI_MODEL"):
        overrides["openai_model"] = env["OPENAI_MODEL"]
    if env.get("OPENAI_TIMEOUT"):
        overrides["completion_timeout"] = float(env["OPENAI_TIMEOUT"])

    settings = replace(settings, **overrides)
    _validate(settings)
    return settings


def load_settings(path: str | Path | None = None) -> VaultSettings:
    """YAML file (optional) overlaid with the process environment."""
    base = load_from_yaml(path) if path else None
    return load_from_env(base=base)


def _validate(settings: VaultSettings) -> None:
    if settings.store_backend not in ("sqlite", "memory"):
        raise ConfigurationError(f"unknown store backend: {settings.store_backend!r}")


def create_store(settings: VaultSettings) -> TokenStore:
    if settings.store_backend == "memory":
        return MemoryTokenStore()
    return SqliteTokenStore(settings.db_path)


def create_completion(
    settings: VaultSettings,
    api_key: str | None = None,
) -> OpenAICompletionClient:
    """Build the OpenAI adapter; ``api_key`` overrides the configured key."""
    return OpenAICompletionClient(
        api_key=api_key or settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.completion_timeout,
    )


def create_relay(
    settings: VaultSettings,
    store: TokenStore | None = None,
    completion: CompletionClient | None = None,
) -> SecureRelay:
    """Create a fully wired relay.  The completion client may be attached later."""
    if not settings.secret:
        logger.warning("VAULT_SECRET is empty; tokens are derived without a salt")
    store = store or create_store(settings)
    return SecureRelay(
        tokenizer=Tokenizer(store, settings.secret),
        detokenizer=Detokenizer(store),
        completion=completion,
    )
