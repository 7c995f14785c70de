"""
Exception hierarchy for the build orchestrator.
"""


class PackforgeError(Exception):
    """Base class for all build errors"""


class ConfigurationError(PackforgeError):
    """Invalid or missing build configuration. Raised before any build starts."""


class TransformError(PackforgeError):
    """A single file could not be transformed into the staging directory"""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class BundlerError(PackforgeError):
    """The external script bundler failed"""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        super().__init__(f"{message}\n{stderr}".rstrip())


class PublishError(PackforgeError):
    """Copying a staging directory to a target directory failed"""


class ArchiveError(PackforgeError):
    """Writing an archive file failed"""


class BuildSystemClosedError(PackforgeError):
    """Operation attempted on a closed BuildSystem"""


class BuildCancelledError(Exception):
    """
    A build attempt was aborted because a newer change superseded it.
    Not a PackforgeError: it never counts as a build failure.
    """
