"""
Wren: a compatibility harness for database client libraries.

Wren runs an ORM's or driver's own test suite against a build of the target
database and reconciles the outcome with the recorded expectations for that
version: expected failures, regressions, newly fixed tests and skipped tests.

License: MIT
"""

__version__ = "0.1.0"
