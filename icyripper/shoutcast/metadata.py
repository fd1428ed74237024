"""Parsing of ICY metadata frames."""

import re
import logging

from ..models.stream import Metadata

logger = logging.getLogger(__name__)

# A value ends at "';" only when another key or the end of the block follows,
# so titles like "Guns N' Roses" survive.
_FIELD = re.compile(r"(\w+)='(.*?)'(?:;(?=\s*\w+='|\s*$)|\s*$)", re.DOTALL)


def decode_block(block: bytes) -> str:
    """Decode a metadata block, stripping the NUL padding."""
    raw = block.rstrip(b"\x00")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def parse_metadata(block: bytes) -> Metadata:
    """Parse a ``key='value';`` metadata block into a Metadata value."""
    text = decode_block(block).strip()
    fields = tuple((m.group(1), m.group(2)) for m in _FIELD.finditer(text))
    if text and not fields:
        logger.debug(f"Unrecognised metadata block: {text!r}")

    values = dict(fields)
    return Metadata(
        title=values.get("StreamTitle", ""),
        url=values.get("StreamUrl") or None,
        fields=fields,
    )
