# Overview: Fits the serialized item list into size-limited payment metadata fields.

"""
Chunked metadata codec.

The payment processor caps each metadata value at 500 characters. The item
list travels in metadata from checkout to the webhook, so when its JSON
form is longer than that it is split into 490-character chunks stored as
order_items_0 .. order_items_<n-1>, with order_items_chunks = n.

encode_chunked/decode_chunked are the pure string codec; the *_metadata
functions add the key layout on top.
"""

from __future__ import annotations

import json

from ..errors import PayloadError


METADATA_VALUE_LIMIT = 500
CHUNK_SIZE = 490

ITEMS_KEY = "order_items"
CHUNK_COUNT_KEY = "order_items_chunks"


def chunk_key(index: int) -> str:
    return f"{ITEMS_KEY}_{index}"


def serialize_items(items: list[dict]) -> str:
    return json.dumps(items, separators=(",", ":"), ensure_ascii=False)


def encode_chunked(serialized: str, limit: int = CHUNK_SIZE) -> list[str]:
    if limit <= 0:
        raise ValueError("limit must be positive")
    return [serialized[i:i + limit] for i in range(0, len(serialized), limit)] or [""]


def decode_chunked(chunks: list[str]) -> str:
    return "".join(chunks)


def encode_items_metadata(items: list[dict]) -> dict[str, str]:
    serialized = serialize_items(items)
    if len(serialized) <= METADATA_VALUE_LIMIT:
        return {ITEMS_KEY: serialized}

    chunks = encode_chunked(serialized, CHUNK_SIZE)
    metadata = {chunk_key(i): chunk for i, chunk in enumerate(chunks)}
    metadata[CHUNK_COUNT_KEY] = str(len(chunks))
    return metadata


def decode_items_metadata(metadata: dict) -> list[dict]:
    """
    Rebuild the item list from payment metadata.

    Raises:
        PayloadError: bad chunk count, a missing chunk, or JSON that is not a list
    """
    metadata = metadata or {}

    if metadata.get(CHUNK_COUNT_KEY):
        try:
            count = int(metadata[CHUNK_COUNT_KEY])
        except (TypeError, ValueError):
            raise PayloadError(f"Invalid {CHUNK_COUNT_KEY}: {metadata[CHUNK_COUNT_KEY]!r}")
        if count <= 0:
            raise PayloadError(f"Invalid {CHUNK_COUNT_KEY}: {count}")

        chunks = []
        for index in range(count):
            chunk = metadata.get(chunk_key(index))
            if not isinstance(chunk, str) or not chunk:
                raise PayloadError(f"Missing metadata chunk {chunk_key(index)}")
            chunks.append(chunk)
        serialized = decode_chunked(chunks)
    else:
        serialized = metadata.get(ITEMS_KEY) or "[]"

    try:
        items = json.loads(serialized)
    except ValueError:
        raise PayloadError("Order items metadata is not valid JSON")
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise PayloadError("Order items metadata must be a list of objects")
    return items
