"""Exception hierarchy. Nothing here is fatal: callers catch, log and degrade."""


class SignalAnalyzerError(Exception):
    """Base class for all signal analyzer errors."""


class DataSourceError(SignalAnalyzerError):
    """An external data source was unreachable or returned malformed data."""


class HistoricalDataError(DataSourceError):
    """Historical bar data (CSV upload or endpoint) could not be parsed."""


class SignalImportError(DataSourceError):
    """A manual JSON signal import could not be parsed."""


class MissingInputError(SignalAnalyzerError):
    """A required input is missing, so the evaluator is never invoked."""


class UnsupportedSignalShapeError(SignalAnalyzerError):
    """A raw signal record does not match any known source shape."""


class InsightError(SignalAnalyzerError):
    """An insight generator backend failed."""
