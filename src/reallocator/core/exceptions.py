class ReallocatorError(Exception):
    """Base exception for Reallocator."""

    pass


class ReconcileError(ReallocatorError):
    """Raised when a reconciliation stage fails. Carries the stage description."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}, {cause}")


class ProvisionerDecodeError(ReallocatorError):
    """Raised when a Provisioner object cannot be decoded."""

    pass


class CloudProviderError(ReallocatorError):
    """Raised when the cloud provider fails to terminate an instance."""

    pass
