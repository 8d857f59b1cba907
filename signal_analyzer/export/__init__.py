from signal_analyzer.export.csv_export import (
    export_filename,
    export_results_csv,
    parse_results_csv,
)

__all__ = ["export_filename", "export_results_csv", "parse_results_csv"]
