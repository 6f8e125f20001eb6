"""Identity directory factory."""

from marketplace.identity.directory.fake_adapter import FakeIdentityDirectory
from marketplace.identity.directory.port import IdentityDirectory

_current_directory: IdentityDirectory | None = None


def get_directory() -> IdentityDirectory:
    """Return the current identity directory. Defaults to FakeIdentityDirectory."""
    global _current_directory
    if _current_directory is None:
        _current_directory = FakeIdentityDirectory()
    return _current_directory


def set_directory(directory: IdentityDirectory) -> None:
    global _current_directory
    _current_directory = directory


def reset_directory() -> None:
    global _current_directory
    _current_directory = None
