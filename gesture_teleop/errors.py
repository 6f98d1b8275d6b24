"""
Error types raised by the perception-to-command pipeline.

None of these are fatal: the pipeline catches them at its seams and
degrades to "no command this frame".
"""


class TeleopError(Exception):
    """Base class for pipeline errors."""


class PoseUnavailable(TeleopError):
    """No usable hand pose could be computed for the current frame."""


class InvalidIntrinsics(PoseUnavailable):
    """Camera intrinsics are missing, zero or non-finite."""


class CommandEncodeError(TeleopError):
    """A command could not be serialized for transmission."""


class InvalidRotation(ValueError):
    """A matrix is not a proper rotation (orthonormal, det = +1)."""
