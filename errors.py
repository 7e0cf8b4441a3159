from enum import Enum


class ErrorKind(Enum):
    NOT_MOUNTED = "not mounted"
    ALREADY_MOUNTED = "already mounted"
    INVALID_ARGUMENT = "invalid argument"
    NOT_FOUND = "not found"
    ALREADY_EXISTS = "already exists"
    RESOURCE_EXHAUSTED = "resource exhausted"
    IO_FAILURE = "I/O failure"
    CORRUPT_METADATA = "corrupt metadata"
    INVALID_VOLUME = "invalid volume"


class VolumeError(OSError):
    """Base class for every error raised by the volume"""

    kind = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.kind is None:
            return message
        return f"{self.kind.value}: {message}" if message else self.kind.value


class NotMountedError(VolumeError):
    kind = ErrorKind.NOT_MOUNTED


class AlreadyMountedError(VolumeError):
    kind = ErrorKind.ALREADY_MOUNTED


class InvalidArgumentError(VolumeError, ValueError):
    kind = ErrorKind.INVALID_ARGUMENT


class FileTooLargeError(InvalidArgumentError):
    pass


class NotFoundError(VolumeError, FileNotFoundError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(VolumeError, FileExistsError):
    kind = ErrorKind.ALREADY_EXISTS


class ResourceExhaustedError(VolumeError):
    kind = ErrorKind.RESOURCE_EXHAUSTED


class NoFreeInodeError(ResourceExhaustedError):
    pass


class InsufficientSpaceError(ResourceExhaustedError):
    pass


class IOFailureError(VolumeError):
    kind = ErrorKind.IO_FAILURE


class CorruptMetadataError(VolumeError):
    kind = ErrorKind.CORRUPT_METADATA


class InvalidVolumeError(VolumeError):
    kind = ErrorKind.INVALID_VOLUME
