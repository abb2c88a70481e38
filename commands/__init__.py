"""
Commands package for the samplechain CLI.

This package contains modular command implementations for better organization
and maintainability of the CLI interface.
"""

from . import common
from . import configuration
from . import generate
from . import monitoring

__all__ = ["common", "configuration", "generate", "monitoring"]
