"""Pairing code generation and presentation helpers."""

from __future__ import annotations

import io
import secrets
import string
from urllib.parse import urlencode

import qrcode
import qrcode.constants
from qrcode.image.svg import SvgPathImage

CODE_ALPHABET = string.digits + string.ascii_uppercase
LINK_PATH = "/dashboard/devices/link"


def generate_code(length: int = 6) -> str:
    """Return a random code of ``length`` characters drawn from ``[0-9A-Z]``."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def build_link_url(base_url: str, code: str) -> str:
    """Return the dashboard URL an operator opens to claim ``code``."""
    return f"{base_url.rstrip('/')}{LINK_PATH}?{urlencode({'code': code})}"


def render_qr_svg(data: str, *, box_size: int = 10, border: int = 2) -> str:
    """Render ``data`` as a standalone SVG document."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
        image_factory=SvgPathImage,
    )
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image()
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue().decode("utf-8")


__all__ = ["CODE_ALPHABET", "build_link_url", "generate_code", "render_qr_svg"]
