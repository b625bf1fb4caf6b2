"""Exception types raised across gapwatch."""


class GapwatchError(Exception):
    """Base class for gapwatch errors."""


class DeviceUnavailable(GapwatchError):
    """No audio input device, or permission to use it was refused."""


class DeviceNotFound(GapwatchError):
    """Headband discovery/pairing did not produce a device.

    ``user_cancelled`` separates a deliberately dismissed pairing prompt from
    genuine hardware absence; callers should not show an error for the former.
    """

    def __init__(self, message: str = "No biosignal device found", user_cancelled: bool = False):
        super().__init__(message)
        self.user_cancelled = user_cancelled


class PairingCancelled(GapwatchError):
    """Raised by a transport when the user dismisses the pairing prompt."""


class ConnectionLost(GapwatchError):
    """The wireless link dropped after it had been established."""


class InsufficientSamples(GapwatchError, ValueError):
    """An epoch shorter than the estimator's required length was supplied."""


class InvalidWindowDuration(GapwatchError, ValueError):
    """A recent-window request with a non-positive duration."""


class CollaboratorError(GapwatchError):
    """An external judgment service call failed."""
