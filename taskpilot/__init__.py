# START OF FILE taskpilot/__init__.py
"""TaskPilot tool execution and fault-recovery pipeline."""

__version__ = "0.1.0"
