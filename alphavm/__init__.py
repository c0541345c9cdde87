"""A stack-based virtual machine that loads and runs alpha language bytecode files."""

__version__ = "0.1.0"
__all__ = ["errors", "instructions", "memcell", "loader", "machine", "library", "cli"]