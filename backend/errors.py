"""Router error taxonomy.

NoPersonaMatch and ModeAmbiguous are recovered locally (default persona,
deterministic tie-break) and only show up in telemetry, so they have no
exception class here.
"""

from typing import Iterable, Optional


class RouterError(Exception):
    """Base class for failures surfaced to the caller."""


class MalformedRegistry(RouterError):
    """The persona/mode registry cannot be loaded. Fatal at startup."""

    def __init__(self, detail: str, source: Optional[str] = None):
        self.detail = detail
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"Malformed registry{where}: {detail}")


class MissingSectionContent(RouterError):
    """The content collaborator produced nothing for one or more required sections."""

    def __init__(self, sections: Iterable[str], reason: str = ""):
        self.sections = list(sections)
        self.reason = reason
        msg = f"Missing content for required section(s): {', '.join(self.sections)}"
        if reason:
            msg += f" [{reason}]"
        super().__init__(msg)


class ValidationFailure(RouterError):
    """Assembled response still violates rules after the bounded regeneration loop."""

    def __init__(self, violations: list, attempts: int):
        self.violations = list(violations)
        self.attempts = attempts
        super().__init__(
            f"Validation failed after {attempts} regeneration attempt(s): "
            f"{', '.join(self.rule_ids)}"
        )

    @property
    def rule_ids(self) -> list[str]:
        return [v.rule_id for v in self.violations]
