
import re
from urllib.parse import urlencode

_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")


def build_url_with_params(url, params):
    """Append enabled, non-empty-key params to url as a query string.

    `params` is an iterable of objects with key, value and enabled
    attributes (see models.KeyValue).
    """
    pairs = [(p.key, p.value) for p in params if p.enabled and p.key]
    if not pairs:
        return url

    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode(pairs)}"


def sanitize_filename(name: str) -> str:
    """Replace every non-alphanumeric character with '-'"""
    return "".join(c if c.isalnum() else "-" for c in name)


def sanitize_rename(name: str) -> str:
    # %XX leftovers from pasted urls, then separators
    cleaned = _PERCENT_ESCAPE.sub("", name)
    for ch in ("%", "/", "\\"):
        cleaned = cleaned.replace(ch, "")
    return cleaned.strip()
