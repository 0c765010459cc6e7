"""
Exception types raised by the reporting pipeline.

Each error is raised at the stage boundary where the violated invariant is
first detected, so a run fails before any downstream artifact is produced.
"""


class DEReportError(Exception):
    """Base class for all classified pipeline errors."""


class SchemaError(DEReportError):
    """Malformed or incomplete long-format input (missing cells, bad types)."""


class IdentifierAmbiguityError(DEReportError):
    """A row key maps to more than one stable gene identifier."""


class EmptyGroupError(DEReportError):
    """One of the two sample groups has no members after assignment."""


class InvalidParameterError(DEReportError, ValueError):
    """An argument or configuration value is outside its accepted domain."""


class ReportWriteError(DEReportError, OSError):
    """
    One or more artifacts could not be written.

    Parameters
    ----------
    failures : dict
        Mapping of artifact suffix to the exception raised while writing it.
    """

    def __init__(self, failures):
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"failed to write {len(self.failures)} artifact(s): {names}")
