"""
Text utilities for spreadsheet cell values.

Catalog exports from crawler tools put image references into cells either
as bare URLs or as HTML `<img>` snippets; these helpers recognise and unwrap
them.
"""

import re
from typing import Any

_IMG_SRC_RE = re.compile(r"""src=["']?([^"'\s>]+)["']?""", re.IGNORECASE)
_HTTP_URL_RE = re.compile(r"""(https?://[^\s"'<>]+)""", re.IGNORECASE)


def is_image_reference(value: Any) -> bool:
    """
    True when a cell holds an image reference rather than literal text.

    "http://img/1.png" -> True
    '<img src="http://img/1.png">' -> True
    "Widget" -> False
    """
    if not isinstance(value, str):
        return False
    return value.startswith("http") or "<img" in value


def extract_url(value: Any) -> str:
    """
    Pull an image URL out of a cell value.

    Tries the `src` attribute of an HTML tag first, then the first http(s)
    URL anywhere in the text, and finally falls back to the trimmed text.

    Args:
        value: Raw cell value (string, number, dict with hyperlink/text, None)

    Returns:
        URL string, or "" when the value is empty
    """
    if value is None or value == "":
        return ""

    if isinstance(value, dict):
        text = value.get("hyperlink") or value.get("text") or ""
    else:
        text = str(value)

    if not text:
        return ""

    match = _IMG_SRC_RE.search(text)
    if match:
        return match.group(1)

    match = _HTTP_URL_RE.search(text)
    if match:
        return match.group(1)

    return text.strip()


def strip_quotes(text: Any) -> str:
    """Remove ASCII and CJK quote marks and surrounding whitespace."""
    return re.sub(r"""["'“”]""", "", str(text or "")).strip()
