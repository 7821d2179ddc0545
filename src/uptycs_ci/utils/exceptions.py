"""Exception hierarchy for the CI image scanner.

Every error here is build-failing: the CLI maps any ``UptycsCIError`` to
exit status 1.
"""

from typing import Optional, Dict, Any

from .formatting import format_score


class UptycsCIError(Exception):
    """Base exception for all scanner errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None
    ):
        """
        Initialize exception with context.

        Args:
            message: Error message
            details: Additional error details
            suggestion: Suggested fix for the user
        """
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format complete error message."""
        parts = [self.message]

        if self.details:
            parts.append("\nDetails:")
            for key, value in self.details.items():
                parts.append(f"  {key}: {value}")

        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")

        return "\n".join(parts)


# Configuration errors
class ConfigError(UptycsCIError):
    """Configuration-related error."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration value."""
    pass


class MissingRequiredInputError(ConfigError):
    """A required input was supplied neither as a flag nor in the environment."""

    def __init__(self, field: str, env_var: Optional[str] = None, flag: Optional[str] = None):
        self.field = field
        self.env_var = env_var
        self.flag = flag

        sources = [s for s in (flag, env_var) if s]
        suggestion = f"Provide it with {' or '.join(sources)}" if sources else None
        super().__init__(f"Missing required input: {field}", suggestion=suggestion)


class UnknownCiRunnerError(ConfigError):
    """CI runner type is not one of the supported platforms."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"Unknown CI runner type: {value!r}",
            suggestion="Use one of: github, gitlab"
        )


class UnrecognizedParameterError(ConfigError):
    """Command line contained a flag the scanner does not understand."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unrecognized parameter: {value}")


# Scan errors
class ScanError(UptycsCIError):
    """Error while running the scanner binary."""
    pass


class ScannerNotFoundError(ScanError):
    """Scanner binary is missing or not executable."""
    pass


class MalformedResultsError(ScanError):
    """Scanner output could not be interpreted as a findings array."""
    pass


# Gate errors
class GateError(UptycsCIError):
    """Build gate rejected the scan outcome."""
    pass


class ThresholdExceededError(GateError):
    """At least one finding met the fatal CVSS score."""

    def __init__(self, threshold: float, fatal_count: int):
        self.threshold = threshold
        self.fatal_count = fatal_count
        super().__init__(
            f"{fatal_count} vulnerabilities found with CVSS score >= {format_score(threshold)}"
        )
