"""Actionable error hierarchy for the Career Vault engine.

Errors are classified by **recovery path**, not by origin.
Each error type carries structured guidance for three audiences:
  - The calling code (typed ``error_type`` for routing)
  - The human operator (``suggestion`` + ``troubleshooting`` steps)
  - An AI agent (``ai_guidance`` with concrete next actions)

The engine-level taxonomy maps onto these types as follows:

  - validation failures        → ``VALIDATION``
  - missing principal / owner  → ``AUTHORIZATION``
  - provider or store failures → ``CONNECTION`` / ``GENERATION`` / ``STORE``
  - aggregate count drift      → ``CONSISTENCY``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class ErrorType(StrEnum):
    """Recovery-path categories — what to *do*, not where it came from."""

    AUTHORIZATION = "authorization"
    CONFIG = "config"
    CONNECTION = "connection"
    GENERATION = "generation"
    STORE = "store"
    CONSISTENCY = "consistency"
    NOT_FOUND = "not_found"
    PARSE = "parse"
    VALIDATION = "validation"
    UNEXPECTED = "unexpected"

    @property
    def is_dependency_failure(self) -> bool:
        """True for failures of an external collaborator (provider or store)."""
        return self in (ErrorType.CONNECTION, ErrorType.GENERATION, ErrorType.STORE)


# ---------------------------------------------------------------------------
# Guidance dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AIGuidance:
    """Machine-readable guidance for an AI agent consuming this error."""

    action_required: str
    command: str | None = None
    discovery_tool: str | None = None
    checks: list[str] | None = None
    steps: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"action_required": self.action_required}
        if self.command is not None:
            result["command"] = self.command
        if self.discovery_tool is not None:
            result["discovery_tool"] = self.discovery_tool
        if self.checks is not None:
            result["checks"] = self.checks
        if self.steps is not None:
            result["steps"] = self.steps
        return result


@dataclass(frozen=True)
class Troubleshooting:
    """Sequential, human-readable recovery steps for the operator."""

    steps: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"steps": self.steps}


# ---------------------------------------------------------------------------
# Base actionable error
# ---------------------------------------------------------------------------


@dataclass
class ActionableError(Exception):
    """Structured error with embedded recovery guidance.

    Use the factory classmethods rather than constructing directly —
    they encode domain knowledge so callers don't have to.
    """

    error: str
    error_type: ErrorType
    service: str

    success: bool = field(default=False, init=False)
    suggestion: str | None = None
    ai_guidance: AIGuidance | None = None
    troubleshooting: Troubleshooting | None = None
    context: dict[str, Any] | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    # Make it work as a real exception
    def __post_init__(self) -> None:
        super().__init__(self.error)

    # -- serialisation -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Compact JSON-ready dict — ``None`` values are excluded."""
        result: dict[str, Any] = {
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type.value,
            "service": self.service,
            "timestamp": self.timestamp,
        }
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion
        if self.ai_guidance is not None:
            result["ai_guidance"] = self.ai_guidance.to_dict()
        if self.troubleshooting is not None:
            result["troubleshooting"] = self.troubleshooting.to_dict()
        if self.context is not None:
            result["context"] = self.context
        return result

    # -- factory methods -----------------------------------------------------

    @classmethod
    def authorization(
        cls,
        operation: str,
        *,
        reason: str = "no authenticated principal",
        suggestion: str | None = None,
    ) -> ActionableError:
        """Missing principal, or a principal acting on a vault it does not own."""
        return cls(
            error=f"Not authorized to {operation}: {reason}",
            error_type=ErrorType.AUTHORIZATION,
            service="auth",
            suggestion=suggestion or "Sign in as the vault owner and retry",
            ai_guidance=AIGuidance(
                action_required="Supply the authenticated user id of the vault owner",
                checks=[
                    "Is a principal being passed to the service call?",
                    "Does the principal own the vault being accessed?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Verify the session is authenticated",
                    "2. Verify the vault belongs to the signed-in user",
                    f"3. Retry the {operation} operation",
                ]
            ),
        )

    @classmethod
    def config(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Missing or invalid configuration in settings.toml."""
        return cls(
            error=f"Configuration error — {field_name}: {reason}",
            error_type=ErrorType.CONFIG,
            service="settings.toml",
            suggestion=suggestion or f"Fix '{field_name}' in config/settings.toml",
            ai_guidance=AIGuidance(
                action_required=f"Correct the '{field_name}' value in config/settings.toml",
                checks=[
                    "Verify config/settings.toml exists",
                    f"Verify '{field_name}' is present and valid",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Open config/settings.toml",
                    f"2. Locate the '{field_name}' setting",
                    f"3. Fix the issue: {reason}",
                    "4. Save and re-run",
                ]
            ),
        )

    @classmethod
    def connection(
        cls,
        service: str,
        url: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Service unreachable (Ollama, ChromaDB)."""
        return cls(
            error=f"Cannot connect to {service} at {url}: {raw_error}",
            error_type=ErrorType.CONNECTION,
            service=service,
            suggestion=suggestion or f"Verify {service} is running at {url}",
            ai_guidance=AIGuidance(
                action_required=f"Verify {service} is reachable",
                command=f"curl -s {url}",
                checks=[
                    f"Is {service} running?",
                    f"Is the URL {url} correct in settings.toml?",
                    "Is a VPN or firewall blocking the connection?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Verify {service} is running",
                    f"2. Test connectivity: curl -s {url}",
                    "3. Check the URL in config/settings.toml matches the running service",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def generation(
        cls,
        model: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Ollama embedding or text-generation failure after retries or timeout."""
        return cls(
            error=f"Provider call failed for model '{model}': {raw_error}",
            error_type=ErrorType.GENERATION,
            service="Ollama",
            suggestion=suggestion or f"Verify model '{model}' is pulled and Ollama is responsive",
            ai_guidance=AIGuidance(
                action_required="Verify Ollama model availability",
                command=f"ollama list | grep {model}",
                checks=[
                    "Is Ollama running?",
                    f"Is model '{model}' pulled? Run: ollama pull {model}",
                    "Is the configured timeout too short for this model?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Check Ollama is running: ollama list",
                    f"2. If model missing: ollama pull {model}",
                    "3. If calls time out: raise [ollama].timeout_seconds",
                    "4. Re-run the command",
                ]
            ),
        )

    @classmethod
    def store(
        cls,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """ChromaDB read or write failure."""
        return cls(
            error=f"Vault store failed during {operation}: {raw_error}",
            error_type=ErrorType.STORE,
            service="ChromaDB",
            suggestion=suggestion or "Check that the ChromaDB persist directory is writable",
            ai_guidance=AIGuidance(
                action_required=f"Diagnose the ChromaDB failure during {operation}",
                checks=[
                    "Is [chroma].persist_dir writable?",
                    "Is another process holding the database open?",
                ],
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    "1. Check disk space and permissions on the persist directory",
                    "2. Retry the operation",
                    "3. Run 'python -m career_vault reconcile' if counts look wrong",
                ]
            ),
        )

    @classmethod
    def consistency(
        cls,
        vault_id: str,
        mismatches: dict[str, tuple[int, int]],
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Stored aggregate counts diverge from the live item enumeration."""
        detail = ", ".join(
            f"{name}: stored={stored} live={live}"
            for name, (stored, live) in sorted(mismatches.items())
        )
        return cls(
            error=f"Aggregate counts for vault '{vault_id}' diverge from live rows ({detail})",
            error_type=ErrorType.CONSISTENCY,
            service="vault_counts",
            suggestion=suggestion or "Run 'python -m career_vault reconcile --repair'",
            ai_guidance=AIGuidance(
                action_required="Rewrite the aggregate counts from a live enumeration",
                command="python -m career_vault reconcile --repair",
            ),
            context={"vault_id": vault_id, "mismatches": {k: list(v) for k, v in mismatches.items()}},
        )

    @classmethod
    def not_found(
        cls,
        kind: str,
        key: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """A vault or vault item that the caller referenced does not exist."""
        return cls(
            error=f"No {kind} found for '{key}'",
            error_type=ErrorType.NOT_FOUND,
            service="vault_store",
            suggestion=suggestion or f"Verify the {kind} id and retry",
            ai_guidance=AIGuidance(
                action_required=f"Use a valid {kind} id",
                discovery_tool="python -m career_vault show --user <user_id>",
            ),
        )

    @classmethod
    def parse(
        cls,
        source: str,
        location: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Unparseable input — TOML settings or a provider payload."""
        return cls(
            error=f"Parse failure in {source} — {location}: {raw_error}",
            error_type=ErrorType.PARSE,
            service=source,
            suggestion=suggestion or f"Fix the syntax of {source}",
            ai_guidance=AIGuidance(
                action_required=f"Inspect {source} near {location}",
            ),
        )

    @classmethod
    def validation(
        cls,
        field_name: str,
        reason: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Input validation failure (category, content, requirement, settings)."""
        return cls(
            error=f"Validation error — {field_name}: {reason}",
            error_type=ErrorType.VALIDATION,
            service="validation",
            suggestion=suggestion or f"Fix '{field_name}': {reason}",
            ai_guidance=AIGuidance(
                action_required=f"Correct the value for '{field_name}'",
            ),
            troubleshooting=Troubleshooting(
                steps=[
                    f"1. Check the value of '{field_name}'",
                    f"2. Issue: {reason}",
                    "3. Correct and retry",
                ]
            ),
            context={"field": field_name},
        )

    @classmethod
    def unexpected(
        cls,
        service: str,
        operation: str,
        raw_error: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Catch-all for truly unexpected failures."""
        return cls(
            error=f"Unexpected error in {service} during {operation}: {raw_error}",
            error_type=ErrorType.UNEXPECTED,
            service=service,
            suggestion=suggestion or "This is an unexpected error — check logs for details",
            ai_guidance=AIGuidance(
                action_required="Analyze the error and escalate if needed",
                checks=[
                    "Check the full traceback in logs",
                    f"Is {service} in a known-good state?",
                ],
            ),
        )

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        service: str,
        operation: str,
        *,
        suggestion: str | None = None,
    ) -> ActionableError:
        """Auto-classify an exception by keyword patterns.

        A caller-supplied ``suggestion`` is always preserved — it carries
        context the generic classifier cannot infer.
        """
        error_str = str(error).lower()
        raw_error = str(error)

        if any(kw in error_str for kw in ("unauthorized", "401", "403", "forbidden")):
            return cls.authorization(operation, reason=raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("timeout", "timed out")):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("connection refused", "unreachable", "resolve")):
            return cls.connection(service, "", raw_error, suggestion=suggestion)

        if any(kw in error_str for kw in ("readonly", "read-only", "disk", "locked")):
            return cls.store(operation, raw_error, suggestion=suggestion)

        return cls.unexpected(service, operation, raw_error, suggestion=suggestion)
