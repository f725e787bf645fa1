"""Lenient JSON extraction from model output.

Models are asked for bare JSON but regularly wrap it in markdown fences
or add a sentence before/after. We scan for the first substring that
decodes as a JSON array or object and ignore everything around it.
"""

import json
from typing import Any, Optional

from licitaradar.core.exceptions import ParsingError

_decoder = json.JSONDecoder()


def extract_json(text: Optional[str], expect: Optional[type] = None) -> Any:
    """Return the first well-formed JSON array/object found in ``text``.

    Args:
        text: Raw model output
        expect: ``list`` or ``dict`` to only accept that container type

    Returns:
        Decoded JSON value

    Raises:
        ParsingError: If no decodable array/object is present
    """
    if not text or not text.strip():
        raise ParsingError("Resposta da IA vazia", raw_output=text)

    if expect is list:
        openers = "["
    elif expect is dict:
        openers = "{"
    else:
        openers = "[{"

    for index, char in enumerate(text):
        if char not in openers:
            continue
        try:
            value, _ = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        return value

    raise ParsingError(
        "Resposta da IA não contém JSON válido",
        raw_output=text,
        expected_schema=getattr(expect, "__name__", "array|object"),
    )
