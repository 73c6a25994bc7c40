"""
Name safety checks for shares and items.

Share names are restricted to [A-Za-z0-9_-] so a share can never address
anything outside its own directory or key prefix. Item names are only
required to be non-empty and not hidden; backends additionally normalise them
with clean_item_name() before building a path or an object key.
"""
import posixpath
import re

from sharebox.storage.exceptions import InvalidItemNameError, InvalidShareNameError

SHARE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def is_share_name_safe(name: str) -> bool:
    """Return True if name is a non-empty string of [A-Za-z0-9_-]."""
    return bool(name) and SHARE_NAME_PATTERN.fullmatch(name) is not None


def is_item_name_safe(name: str) -> bool:
    """Return True if name is non-empty and does not start with a dot."""
    return bool(name) and not name.startswith(".")


def validate_share_name(name: str) -> None:
    if not is_share_name_safe(name):
        raise InvalidShareNameError(name)


def validate_item_name(name: str) -> None:
    if not is_item_name_safe(name):
        raise InvalidItemNameError(name)


def clean_item_name(name: str) -> str:
    """
    Normalise an item name to a single path component.

    The name is resolved as a rooted POSIX path so that ".." segments can
    never climb above the share. Items are stored flat, so anything that
    still contains a separator after normalisation is rejected.

    Args:
        name: Item name as received from the caller

    Returns:
        The normalised item name

    Raises:
        InvalidItemNameError: If the name is unsafe or nested

    Examples:
        >>> clean_item_name("report.pdf")
        'report.pdf'
        >>> clean_item_name("../report.pdf")
        'report.pdf'
    """
    validate_item_name(name)

    cleaned = posixpath.normpath("/" + name).lstrip("/")
    if not cleaned or "/" in cleaned or cleaned.startswith("."):
        raise InvalidItemNameError(name)

    return cleaned
