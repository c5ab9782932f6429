"""
Test suite for deploy-archive.

This package contains tests for the archive pipeline, covering source
enumeration, the archive writers, orchestration, reporting, settings and the CLI.

Test Categories:
- Unit tests: Test individual components against in-memory fakes
- Integration tests: Build real archives from temporary directory trees
- Edge case tests: Missing sources, duplicates, corrupt archives and aborts
"""
