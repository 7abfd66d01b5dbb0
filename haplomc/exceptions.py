"""
Exception types for fatal conditions.

Rejected proposals are a normal outcome of the samplers and are reported as
booleans; the classes below are only raised for conditions that should stop a
run.
"""


class HaploMCError(Exception):
    """Base class for all fatal haplomc errors."""


class InvariantViolation(HaploMCError):
    """A precondition or internal invariant of the estimation engine does not hold."""


class DataValidationError(HaploMCError, ValueError):
    """Input data (genotype likelihoods, reference panel) failed validation."""

    def __init__(self, message, path=None, line=None):
        location = ""
        if path is not None:
            location = f"[{path}"
            if line is not None:
                location += f":{line}"
            location += "] "
        super().__init__(f"{location}{message}")
        self.path = path
        self.line = line
