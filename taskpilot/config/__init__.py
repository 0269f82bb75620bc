# START OF FILE taskpilot/config/__init__.py
