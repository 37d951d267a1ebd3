"""
Sandbox Module

Safe execution environment for untrusted submitted code.

This module provides:
- Subprocess-based isolated execution host
- Loop/recursion counter injection and an external watchdog
- A closed, validated message protocol between supervisor and host
- Import restrictions and allowlisting
- Best-effort security (documented limitations)

WARNING: This sandbox is NOT cryptographically secure. It provides best-effort
isolation suitable for teaching tools, not hostile multi-tenant use.
"""

__version__ = "0.1.0"
