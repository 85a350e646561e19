"""Domain-specific errors for gattseq."""


class GattseqError(Exception):
    """Base error for gattseq."""


class ProfileValidationError(GattseqError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(GattseqError):
    """Raised when loading profile sources fails."""


class InvalidHexError(GattseqError):
    """Raised when a command string is not an even-length run of hex pairs."""


class DeviceSelectionError(GattseqError):
    """Raised when the operator's choice cannot resolve a single peripheral."""


class OutOfRangeError(DeviceSelectionError):
    """Raised when a 1-based device index is outside the registry."""


class SelectionParseError(DeviceSelectionError):
    """Raised when operator input is not a device number."""


class SessionStateError(GattseqError):
    """Raised when an operation is requested in the wrong session state."""


class NoActiveCharacteristicError(GattseqError):
    """Raised when a write is attempted without a resolved write characteristic."""


class TransportError(GattseqError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class DiscoveryError(TransportError):
    """Raised when service or characteristic discovery fails."""

