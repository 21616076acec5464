"""
Domain errors for the weekly-event engine.

Services raise these; the API layer maps them to HTTP responses. Every error
here is recoverable by the administrator (fix the week, answer the question,
reload the draft) so each one carries enough detail to say what to fix.
"""


class PoolsideError(Exception):
    """Base class for every engine error."""


class NotFoundError(PoolsideError):
    pass


class ConfigurationError(PoolsideError):
    """Scoring configuration is inconsistent (duplicate or missing rules).

    Never raised out of a points computation; the rule table logs it and
    falls back deterministically.
    """


class MissingRuleWarning(UserWarning):
    """No active rule exists for a (category, subcategory) pair; 0 points used."""


class ValidationError(PoolsideError):
    """A ceremony precondition is violated. Recoverable by further edits."""

    def __init__(self, message: str, issues: list | None = None):
        super().__init__(message)
        self.issues = list(issues or [])


class IncompleteWeekError(ValidationError):
    """Submit was attempted while one or more ceremony steps are unmet."""

    def __init__(self, week_number: int, issues: list):
        steps = ", ".join(sorted({i.step for i in issues}))
        super().__init__(f"Week {week_number} is incomplete: {steps}", issues)
        self.week_number = week_number


class ConstraintViolation(PoolsideError):
    """A write would break a record or pool-wide invariant. Nothing is persisted."""

    def __init__(self, message: str, issues: list | None = None):
        super().__init__(message)
        self.issues = list(issues or [])


class JuryPhaseConflict(ConstraintViolation):
    def __init__(self, week_number: int, existing_week: int):
        super().__init__(
            f"Jury phase already starts in week {existing_week}; "
            f"week {week_number} cannot also start it"
        )
        self.week_number = week_number
        self.existing_week = existing_week


class StaleWeekError(ConstraintViolation):
    def __init__(self, week_number: int, expected: int, actual: int):
        super().__init__(
            f"Week {week_number} was changed by someone else "
            f"(you had version {expected}, current is {actual}). Reload and retry."
        )
        self.expected = expected
        self.actual = actual


class SeasonLockedError(ConstraintViolation):
    def __init__(self, pool_id: int):
        super().__init__(f"Season for pool {pool_id} is complete; weeks can no longer be edited")
        self.pool_id = pool_id


class IncompleteSeasonError(PoolsideError):
    """The season-completion checklist is not fully satisfied."""

    def __init__(self, failing_checks: list):
        labels = ", ".join(c.label for c in failing_checks)
        super().__init__(f"Season cannot be completed yet: {labels}")
        self.failing_checks = list(failing_checks)
