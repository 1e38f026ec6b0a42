"""Output module for weekly roster reports and PDFs."""

from jollyplanner.output.pdf_generator import PDFGenerator
from jollyplanner.output.report_generator import RosterReportGenerator

__all__ = ["PDFGenerator", "RosterReportGenerator"]
