from signal_analyzer.config.settings import (
    AnalysisConfig,
    FeedConfig,
    InsightBackend,
    InsightsConfig,
    Settings,
    SheetSource,
    get_settings,
)

__all__ = [
    "AnalysisConfig",
    "FeedConfig",
    "InsightBackend",
    "InsightsConfig",
    "Settings",
    "SheetSource",
    "get_settings",
]
