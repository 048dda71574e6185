"""
Open and click tracking for outgoing HTML email.
"""
import base64
import binascii
import re
from typing import Optional
from urllib.parse import quote

from ispecia.core.config import settings

TRACK_PATH = f"{settings.API_V1_PREFIX}/track"

LINK_PATTERN = re.compile(r"""<a([^>]*)\shref=["']([^"']+)["']([^>]*)>""", re.IGNORECASE)
SKIPPED_SCHEMES = ("mailto:", "tel:", "#")

# 1x1 transparent PNG
TRACKING_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def _base_url() -> str:
    return settings.API_URL.rstrip("/")


def encode_tracking_id(message_id: str) -> str:
    return base64.urlsafe_b64encode(message_id.encode("utf-8")).decode("ascii").rstrip("=")


def decode_tracking_id(tracking_id: str) -> Optional[str]:
    """Message id carried by a click-tracking id, or None if it cannot be decoded."""
    padded = tracking_id + "=" * (-len(tracking_id) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not decoded or not decoded.isalnum():
        return None
    return decoded


def inject_tracking_pixel(html: str, message_id: str) -> str:
    pixel_url = f"{_base_url()}{TRACK_PATH}/pixel/{message_id}"
    pixel = f'<img src="{pixel_url}" width="1" height="1" style="display:none;border:0" alt="" />'
    if "</body>" in html:
        return html.replace("</body>", f"{pixel}</body>", 1)
    return html + pixel


def wrap_links_with_tracking(html: str, message_id: str) -> str:
    tracking_id = encode_tracking_id(message_id)
    click_base = f"{_base_url()}{TRACK_PATH}/click/{tracking_id}"

    def replace(match: re.Match) -> str:
        before, url, after = match.groups()
        if "/track/click/" in url or url.startswith(SKIPPED_SCHEMES):
            return match.group(0)
        return f'<a{before} href="{click_base}?url={quote(url, safe="")}"{after}>'

    return LINK_PATTERN.sub(replace, html)


def add_email_tracking(html: str, message_id: str) -> str:
    """Wrap links, then append the open-tracking pixel."""
    return inject_tracking_pixel(wrap_links_with_tracking(html, message_id), message_id)
