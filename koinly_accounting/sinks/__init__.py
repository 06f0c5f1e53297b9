"""Record sinks: local CSV files and monthly Google Sheets in a Drive folder."""
__all__ = [
    "base",
    "csv_sink",
    "google_drive",
]
