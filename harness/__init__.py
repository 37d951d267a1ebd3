"""
Harness Module

Configuration, test-case catalog and CLI around the sandbox.

This module provides:
- YAML-based runner configuration
- Test case loading and sequential suite execution
- Reference solution runs for expected-output step logs
- Failure classification
"""

__version__ = "0.1.0"
