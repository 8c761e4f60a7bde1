"""lhex: extract libhoudini from the Windows Subsystem for Android package."""

__version__ = "0.1.0"
