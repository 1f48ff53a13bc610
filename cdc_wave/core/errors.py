"""Error taxonomy for wave planning and synchronization.

Every failure raised by the engine derives from :class:`WaveError` and
carries a ``context`` mapping (alias, database, schema, table, group index,
path, ...) that is rendered into the message, so a failed wave can be
diagnosed from the terminal output alone.

Usage:
    >>> raise MetadataError("no columns found", alias="crm", table="Orders")
    MetadataError: no columns found [alias=crm table=Orders]
"""

from __future__ import annotations


class WaveError(Exception):
    """Base class for all wave failures.

    Attributes:
        message: Human readable description of the failure.
        context: Diagnostic key/value pairs (alias, database, table, ...).
    """

    def __init__(self, message: str, **context: object) -> None:
        self.message = message
        self.context: dict[str, str] = {
            key: str(value) for key, value in context.items() if value is not None
        }
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.context:
            return self.message
        details = " ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} [{details}]"


class ConfigurationError(WaveError):
    """Malformed or incomplete wave configuration.

    Raised after a complete validation pass; ``problems`` lists every
    issue found, not only the first one.
    """

    def __init__(self, message: str, problems: list[str] | None = None, **context: object) -> None:
        self.problems: list[str] = list(problems or [])
        if self.problems:
            message = message + ":\n- " + "\n- ".join(self.problems)
        super().__init__(message, **context)


class EnvironmentMissingError(WaveError):
    """A required per-alias credential or host variable is absent."""

    def __init__(self, missing: list[str], **context: object) -> None:
        self.missing = list(missing)
        super().__init__(
            "missing environment variables:\n- " + "\n- ".join(self.missing),
            **context,
        )


class MetadataError(WaveError):
    """Column or row-count collection failed for a table."""


class LayoutError(WaveError):
    """A required root directory is absent in managed layout mode."""


class ManifestError(WaveError):
    """An existing kustomization document could not be parsed."""


class TemplateError(WaveError):
    """A manifest template is unknown or left placeholders unresolved."""


class SynchronizationError(WaveError):
    """A clone/fetch/checkout/pull/commit/push step failed."""
