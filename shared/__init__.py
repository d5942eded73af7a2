"""
Pehead Shared Module
=====================

Configuration, structured logging and console presentation shared by the
pehead reader, its engine and its command line.
"""

from shared.config import PeheadConfig
from shared.console import PeheadConsole
from shared.logger import PeheadLogger

__all__ = ["PeheadConfig", "PeheadConsole", "PeheadLogger"]
