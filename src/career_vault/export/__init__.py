"""Export layer — CSV and Markdown vault and match reports."""

from career_vault.export.csv_export import CSVExporter
from career_vault.export.markdown import MarkdownExporter

__all__ = ["CSVExporter", "MarkdownExporter"]
