"""
Validation Models

Result types returned by sample, model and configuration checks. Blocking
issues and non-blocking warnings are kept apart so callers can accept input
that only carries warnings.
"""

from dataclasses import dataclass, field
from typing import Optional, List
from enum import Enum

from heirloom.models.error import ValidationError


class ValidationStatus(Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


@dataclass
class ValidationIssue:
    """
    One finding of a check.

    Attributes:
        field: Input the finding refers to, e.g. ``samples[1]`` or ``ai.temperature``
        message: Text suitable for showing to the user
        code: Stable identifier for programmatic handling
        severity: INVALID for blocking issues, WARNING otherwise
    """
    field: str
    message: str
    code: str
    severity: ValidationStatus = ValidationStatus.INVALID


@dataclass
class ValidationResult:
    """
    Outcome of a check.

    Attributes:
        is_valid: False when at least one blocking issue was found
        status: VALID, WARNING (valid with warnings) or INVALID
        issues: Blocking findings, first one first
        warnings: Non-blocking findings
        summary: One-line description, the first issue's message for single-issue failures
    """
    is_valid: bool
    status: ValidationStatus
    issues: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    summary: Optional[str] = None

    def __post_init__(self):
        if self.summary is not None:
            return
        if not self.is_valid:
            self.summary = f"Validation failed with {len(self.issues)} error(s)"
        elif self.warnings:
            self.summary = f"Validation passed with {len(self.warnings)} warning(s)"
        else:
            self.summary = "Validation passed successfully"

    @classmethod
    def from_issues(cls, issues: List[ValidationIssue],
                    warnings: Optional[List[ValidationIssue]] = None) -> 'ValidationResult':
        """Build a result whose status follows from what was found."""
        warnings = warnings or []
        if issues:
            status = ValidationStatus.INVALID
        elif warnings:
            status = ValidationStatus.WARNING
        else:
            status = ValidationStatus.VALID
        return cls(is_valid=not issues, status=status, issues=list(issues), warnings=list(warnings))

    @classmethod
    def valid(cls, warnings: Optional[List[ValidationIssue]] = None) -> 'ValidationResult':
        return cls.from_issues([], warnings)

    @classmethod
    def invalid(cls, field: str, message: str, code: str) -> 'ValidationResult':
        """A failed result carrying a single issue."""
        result = cls.from_issues([ValidationIssue(field=field, message=message, code=code)])
        result.summary = message
        return result

    def raise_if_invalid(self) -> None:
        """
        Raise the first blocking issue.

        Raises:
            ValidationError: If the result is not valid
        """
        if self.is_valid:
            return
        if not self.issues:
            raise ValidationError(self.summary or "Validation failed")
        first = self.issues[0]
        raise ValidationError(first.message, field=first.field, code=first.code)
