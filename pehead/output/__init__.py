"""
Pehead Output
==============

Rich console rendering and JSON reports for decoded headers.
"""

from pehead.output.console import HeaderConsoleOutput
from pehead.output.report import HeaderReportGenerator

__all__ = ["HeaderConsoleOutput", "HeaderReportGenerator"]
