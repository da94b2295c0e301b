"""
Error taxonomy for the harness.

Part of the Wren compatibility harness. Licensed under MIT.
"""


class WrenError(Exception):
    """Base class for every error the harness raises on purpose."""


class ConfigurationError(WrenError):
    """Suite, connection or expectation configuration is unusable."""


class TagDiscoveryError(WrenError):
    """The latest release tag of a client library could not be determined."""


class DuplicateTestNameError(WrenError):
    """Discovery reported the same test name more than once."""

    def __init__(self, names):
        self.names = sorted(set(names))
        super().__init__(f"Duplicate test name(s) discovered: {', '.join(self.names)}")


class SelectionInconsistencyError(WrenError):
    """A discovered, non-ignored test has no outcome."""

    def __init__(self, names):
        self.names = list(names)
        preview = ", ".join(self.names[:10])
        more = f" (+{len(self.names) - 10} more)" if len(self.names) > 10 else ""
        super().__init__(f"No outcome for non-ignored test(s): {preview}{more}")


class RunCancelledError(WrenError):
    """The external test run was cancelled or timed out before completing."""


class RunnerOutputError(WrenError):
    """The runner's report could not be parsed."""


class CollaboratorError(WrenError):
    """Provisioning, database start, clone or discovery failed."""


class ReportError(WrenError):
    """A report or suggested blocklist could not be written."""
