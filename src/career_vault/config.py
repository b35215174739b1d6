"""Configuration loading and validation.

Loads ``settings.toml`` and validates all fields at startup, before the
vault store is opened or any provider call is made.  Every section is
optional; a missing section falls back to the defaults below, so an
empty file is a valid configuration.

The validated config is exposed as a :class:`Settings` dataclass with
typed fields for each section: ``ollama``, ``chroma``, ``audit``,
``vault``, and ``output``.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from career_vault.errors import ActionableError
from career_vault.vault.models import VaultCategory, parse_category

# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class OllamaConfig:
    """Ollama connection settings from ``[ollama]``."""

    base_url: str = "http://localhost:11434"
    llm_model: str = "mistral:7b"
    embed_model: str = "nomic-embed-text"
    timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass
class ChromaConfig:
    """ChromaDB settings from ``[chroma]``."""

    persist_dir: str = "./data/chroma_db"


@dataclass
class AuditConfig:
    """Audit cache settings from ``[audit]``."""

    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 256


@dataclass
class VaultConfig:
    """Vault behaviour settings from ``[vault]``."""

    answer_fallback_category: VaultCategory = VaultCategory.HIDDEN_COMPETENCY
    stale_after_months: int = 6


@dataclass
class OutputConfig:
    """Output settings from ``[output]``."""

    output_dir: str = "./output"


@dataclass
class Settings:
    """Top-level validated configuration."""

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    chroma: ChromaConfig = field(default_factory=ChromaConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


# ---------------------------------------------------------------------------
# Default settings path
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")


# ---------------------------------------------------------------------------
# Loading and validation
# ---------------------------------------------------------------------------


def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load and validate settings from a TOML file.

    Raises :class:`~career_vault.errors.ActionableError`:
      - CONFIG if the file is missing
      - VALIDATION if field values are out of range
      - PARSE if the TOML is malformed

    Returns a fully validated :class:`Settings` instance.
    """
    filepath = Path(path)
    if not filepath.exists():
        raise ActionableError.config(
            field_name="settings_path",
            reason=f"Settings file not found: {filepath}",
            suggestion=f"Create {filepath} or copy config/settings.toml from the repository",
        )

    raw_text = filepath.read_text(encoding="utf-8")
    try:
        data = tomllib.loads(raw_text)
    except tomllib.TOMLDecodeError as exc:
        raise ActionableError.parse(
            source="settings",
            location="TOML syntax",
            raw_error=str(exc),
            suggestion=f"Fix TOML syntax in {filepath}",
        ) from None

    return _validate(data)


def _validate(data: dict[str, object]) -> Settings:
    """Validate raw TOML data and return a Settings instance."""

    # -- ollama section ------------------------------------------------------
    ollama_data = _section(data, "ollama")

    base_url = str(ollama_data.get("base_url", "http://localhost:11434"))
    if not base_url.startswith(("http://", "https://")):
        raise ActionableError.validation(
            field_name="ollama.base_url",
            reason=f"'{base_url}' is missing a scheme (http:// or https://)",
            suggestion="Set [ollama].base_url to a URL starting with http:// or https://",
        )

    ollama = OllamaConfig(
        base_url=base_url,
        llm_model=str(ollama_data.get("llm_model", "mistral:7b")),
        embed_model=str(ollama_data.get("embed_model", "nomic-embed-text")),
        timeout_seconds=float(ollama_data.get("timeout_seconds", 30.0)),  # type: ignore[arg-type]
        max_retries=int(ollama_data.get("max_retries", 3)),  # type: ignore[call-overload]
    )
    if ollama.timeout_seconds <= 0:
        raise ActionableError.validation(
            field_name="ollama.timeout_seconds",
            reason=f"is {ollama.timeout_seconds} — must be > 0",
            suggestion="Set [ollama].timeout_seconds to a positive number of seconds",
        )
    if ollama.max_retries < 1:
        raise ActionableError.validation(
            field_name="ollama.max_retries",
            reason=f"is {ollama.max_retries} — must be >= 1",
            suggestion="Set [ollama].max_retries to 1 or more",
        )

    # -- chroma section ------------------------------------------------------
    chroma_data = _section(data, "chroma")
    chroma = ChromaConfig(
        persist_dir=str(chroma_data.get("persist_dir", "./data/chroma_db")),
    )

    # -- audit section -------------------------------------------------------
    audit_data = _section(data, "audit")
    audit = AuditConfig(
        cache_ttl_seconds=float(audit_data.get("cache_ttl_seconds", 300.0)),  # type: ignore[arg-type]
        cache_max_entries=int(audit_data.get("cache_max_entries", 256)),  # type: ignore[call-overload]
    )
    if audit.cache_ttl_seconds < 0:
        raise ActionableError.validation(
            field_name="audit.cache_ttl_seconds",
            reason=f"is {audit.cache_ttl_seconds} — must be >= 0",
            suggestion="Set [audit].cache_ttl_seconds to 0 (disabled) or a positive number",
        )
    if audit.cache_max_entries < 1:
        raise ActionableError.validation(
            field_name="audit.cache_max_entries",
            reason=f"is {audit.cache_max_entries} — must be >= 1",
            suggestion="Set [audit].cache_max_entries to 1 or more",
        )

    # -- vault section -------------------------------------------------------
    vault_data = _section(data, "vault")
    fallback_raw = str(vault_data.get("answer_fallback_category", VaultCategory.HIDDEN_COMPETENCY))
    fallback = parse_category(fallback_raw)
    if fallback is None:
        raise ActionableError.validation(
            field_name="vault.answer_fallback_category",
            reason=f"'{fallback_raw}' is not a vault category",
            suggestion="Use one of: " + ", ".join(c.value for c in VaultCategory),
        )
    vault = VaultConfig(
        answer_fallback_category=fallback,
        stale_after_months=int(vault_data.get("stale_after_months", 6)),  # type: ignore[call-overload]
    )
    if vault.stale_after_months < 1:
        raise ActionableError.validation(
            field_name="vault.stale_after_months",
            reason=f"is {vault.stale_after_months} — must be >= 1",
            suggestion="Set [vault].stale_after_months to a positive number of months",
        )

    # -- output section ------------------------------------------------------
    output_data = _section(data, "output")
    output = OutputConfig(
        output_dir=str(output_data.get("output_dir", "./output")),
    )

    return Settings(
        ollama=ollama,
        chroma=chroma,
        audit=audit,
        vault=vault,
        output=output,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _section(data: dict[str, object], name: str) -> dict[str, object]:
    """Return an optional top-level section, or raise CONFIG if it is not a table."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ActionableError.config(
            field_name=name,
            reason=f"[{name}] must be a table, not {type(section).__name__}",
            suggestion=f"Define [{name}] as a TOML table",
        )
    return section
