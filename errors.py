"""Exceptions raised by the pass pipeline."""


class PassAssetError(RuntimeError):
    """Template or font missing/unreadable. Fatal: nothing can be rendered."""


class StorageError(RuntimeError):
    """Object storage rejected an upload or could not be reached."""


class StoreError(RuntimeError):
    """The team/member data store returned an error."""


class TeamNotFoundError(LookupError):
    pass


class MemberNotFoundError(LookupError):
    pass


class InvalidPayloadError(ValueError):
    """A scanned QR payload is not valid pass JSON."""
