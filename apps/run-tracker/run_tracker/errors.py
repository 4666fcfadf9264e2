"""Error taxonomy surfaced by run-tracker operations."""

from __future__ import annotations

from pydantic import ValidationError as SchemaValidationError


class TrackerError(Exception):
    """Base class for failures reported back to the caller."""

    code = "tracker_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_payload(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(TrackerError):
    """Tool parameters rejected before any storage access."""

    code = "validation_error"


class NotInitializedError(TrackerError):
    code = "not_initialized"

    def __init__(self) -> None:
        super().__init__("Project not initialized. Run initProject first.")


class ProjectAlreadyInitializedError(TrackerError):
    code = "already_initialized"

    def __init__(self) -> None:
        super().__init__(
            "Project already initialized. Use a different directory or remove the existing project folder."
        )


class ScenarioNotFoundError(TrackerError):
    code = "scenario_not_found"

    def __init__(self, slug: str, detail: str = "does not exist") -> None:
        super().__init__(f'Scenario "{slug}" {detail}.')
        self.slug = slug


class InvalidScenarioMetaError(TrackerError):
    """meta.yaml exists but its stats or definition fields do not validate."""

    code = "invalid_meta"

    def __init__(self, slug: str, detail: str) -> None:
        super().__init__(f'Scenario "{slug}" has an invalid meta.yaml: {detail}')
        self.slug = slug

    @classmethod
    def from_validation(cls, slug: str, exc: SchemaValidationError) -> InvalidScenarioMetaError:
        """Build from a pydantic validation error, one ``loc: msg`` entry per problem."""

        problems = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
        return cls(slug, "; ".join(problems))


class RunNotFoundError(TrackerError):
    code = "run_not_found"

    def __init__(self, run_id: str) -> None:
        super().__init__(f'Run "{run_id}" does not exist.')
        self.run_id = run_id


class RunAlreadyCompletedError(TrackerError):
    code = "run_already_completed"

    def __init__(self, run_id: str, action: str | None = None) -> None:
        message = f'Run "{run_id}" is already completed.'
        if action:
            message = f"{message} Cannot {action}."
        super().__init__(message)
        self.run_id = run_id


class EvidencePathError(TrackerError):
    """Screenshot data is not an absolute path or cannot be read."""

    code = "evidence_path_error"
