from signal_analyzer.feeds.client import SignalFeedClient
from signal_analyzer.feeds.sheet_writer import SheetWriter, build_sheet_updates
from signal_analyzer.feeds.sheets import parse_gviz_response

__all__ = ["SheetWriter", "SignalFeedClient", "build_sheet_updates", "parse_gviz_response"]
