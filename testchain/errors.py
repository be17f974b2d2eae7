class TestchainError(Exception):
    """Base class for supervisor-level failures."""


class ConfigValidationError(TestchainError, ValueError):
    """Start request carried malformed options; no engine call was made."""


class DuplicateStartError(TestchainError):
    """Start requested while the node is already starting or running."""


class EngineStartError(TestchainError):
    """The engine failed to initialize or to bind its RPC port."""


class EngineOperationError(TestchainError):
    """A post-start engine call failed, timed out, or had no engine to run on."""
