"""Error taxonomy for conversation report generation.

Every error here is terminal for the current attempt. The pipeline records the
message on the run row and re-raises; retrying means calling generation again,
which creates a fresh run.
"""


class ReportError(Exception):
    """Base class for report pipeline failures."""


class ConfigurationError(ReportError):
    pass


class NotFoundError(ReportError):
    """Conversation or person missing."""


class EmptyTranscriptError(ReportError):
    pass


class SummarizationRequestError(ReportError):
    """Network or HTTP failure talking to the LLM provider."""


class SummarizationParseError(ReportError):
    """LLM answered, but the body was empty or not JSON."""


class PersistenceError(ReportError):
    """Any store read/write or blob upload failure."""


class ReportInProgressError(ReportError):
    """Another attempt for the same conversation is still processing."""
