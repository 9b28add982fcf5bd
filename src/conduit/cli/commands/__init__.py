# conduit/cli/commands: Command modules for Conduit CLI.
#
# Each module in this package provides one CLI command.

from .extract import extract
from .run import run
from .status import status

__all__ = [
    "extract",
    "run",
    "status",
]
