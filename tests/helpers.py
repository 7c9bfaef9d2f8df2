"""Payload and image builders shared by the test modules."""

from __future__ import annotations

import io

from PIL import Image

from contacts_bridge.services.contacts.interface import ContactRecord


def make_record(**wire) -> ContactRecord:
    """Write payload from wire-shaped keyword arguments."""
    return ContactRecord.from_dict(wire)


def make_photo(width: int = 200, height: int = 120, color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()
