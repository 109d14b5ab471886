import datetime
import hashlib
from typing import Optional, Union

# Digits used for the compact base-36 rendering of times and sizes
DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def base36(number: int) -> str:
    """Render a non-negative integer in base 36, lowercase."""
    if number < 0:
        return "-" + base36(-number)
    if number == 0:
        return "0"

    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(DIGITS[remainder])
    return "".join(reversed(digits))


def timestamp(modify: Optional[str]) -> Optional[int]:
    """Turn an MLSD/LIST ``modify`` fact (``YYYYMMDDHHMMSS[.sss]``) into epoch seconds.

    Returns None when the server did not report a usable time, so callers can
    fall back to the path based validator.
    """
    if not modify:
        return None

    try:
        moment = datetime.datetime.strptime(modify[:14], "%Y%m%d%H%M%S")
    except ValueError:
        return None

    return int(moment.replace(tzinfo=datetime.timezone.utc).timestamp())


def calculate(path: str, time: Optional[int], size: Union[int, str]) -> str:
    """Compute the entity tag for a remote resource.

    The tag depends only on the modification time and size when the time is
    known. Without a time the path stands in for it, which still changes
    whenever the size does. Tags are quoted like HTTP strong validators.

    Args:
        path: Remote path of the resource
        time: Modification time in epoch seconds, or None when unknown
        size: Size in bytes as reported by the listing

    Returns:
        str: Quoted validator string
    """
    size = int(size or 0)
    if time is not None:
        return f'"{base36(time)}-{base36(size)}"'

    digest = hashlib.md5(f"{path}{size}".encode("utf-8")).hexdigest()
    return f'"{digest}"'
