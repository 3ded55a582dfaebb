"""Read-only tool handlers whose results are memoized in the tool cache."""

from .base import ToolOutput, parse_arguments
from .grep_files import grep_files
from .list_dir import list_dir
from .read_file import read_file

__all__ = [
    "ToolOutput",
    "grep_files",
    "list_dir",
    "parse_arguments",
    "read_file",
]
