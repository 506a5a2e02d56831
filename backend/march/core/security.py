import base64
import binascii

from march.core.config import Archive


def parse_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """
    Split ``<scheme> <base64(username:password)>`` into username and password.

    The scheme is not inspected. Returns None for any malformed value.
    """
    if not authorization:
        return None

    parts = authorization.split(" ")
    if len(parts) != 2:
        return None

    try:
        decoded = base64.b64decode(parts[1], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def is_authorized(authorization: str | None, archive: Archive | None) -> bool:
    if archive is None:
        return False

    credentials = parse_basic_credentials(authorization)
    if credentials is None:
        return False

    # 明文比较，与配置文件中的用户逐个对比
    username, password = credentials
    for user, pw in archive.users:
        if user == username and pw == password:
            return True
    return False
