"""Byte encoding of RDF terms and index keys.

Each term is encoded as a one-byte kind tag followed by length-prefixed
UTF-8 fields. Encodings are prefix-free, so the concatenation of several
encoded terms can always be split back into its parts.

Index keys are built from fixed-length hashes of the encoded terms, which
keeps them well under the LMDB key size limit however long a literal is.
The full encodings are only ever stored as values.
"""

import hashlib
import struct
from typing import TypeAlias

from rdflib import BNode, Literal, URIRef

from triple_index.errors import CodecError

# Type alias for RDF terms
RDFTerm: TypeAlias = URIRef | Literal | BNode
Triple: TypeAlias = tuple[RDFTerm, RDFTerm, RDFTerm]

TAG_URI = b"U"
TAG_BNODE = b"B"
TAG_LITERAL = b"L"

_LENGTH = struct.Struct(">I")
_ORDINAL = struct.Struct(">Q")

ORDINAL_SIZE = _ORDINAL.size
KEY_HASH_ALGO = "sha256"
MAX_COUNTER = 2**64 - 1


def _field(text: str) -> bytes:
    try:
        data = text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise CodecError(f"Cannot encode {text!r} as UTF-8") from e
    return _LENGTH.pack(len(data)) + data


def _read_field(data: bytes, offset: int) -> tuple[str, int]:
    end = offset + _LENGTH.size
    if end > len(data):
        msg = f"Truncated field length at offset {offset}"
        raise CodecError(msg)
    (length,) = _LENGTH.unpack_from(data, offset)
    stop = end + length
    if stop > len(data):
        msg = f"Truncated field at offset {offset}: need {length} bytes"
        raise CodecError(msg)
    try:
        return data[end:stop].decode("utf-8"), stop
    except UnicodeDecodeError as e:
        raise CodecError(f"Invalid UTF-8 in field at offset {offset}") from e


def encode(term: RDFTerm) -> bytes:
    """Encode an RDF term as bytes.

    Args:
        term: URIRef, BNode or Literal

    Returns:
        Prefix-free byte encoding of the term

    Raises:
        CodecError: If the term type is not supported
    """
    # Literal and URIRef are both str subclasses, check the specific types
    if isinstance(term, Literal):
        language = term.language or ""
        datatype = str(term.datatype) if term.datatype is not None and not language else ""
        return TAG_LITERAL + _field(str(term)) + _field(language) + _field(datatype)
    if isinstance(term, URIRef):
        return TAG_URI + _field(str(term))
    if isinstance(term, BNode):
        return TAG_BNODE + _field(str(term))
    msg = f"Unsupported term type: {type(term).__name__}"
    raise CodecError(msg)


def decode_from(data: bytes, offset: int = 0) -> tuple[RDFTerm, int]:
    """Decode one term starting at ``offset``.

    Returns:
        Tuple of (term, offset just past the term)
    """
    tag = data[offset : offset + 1]
    offset += 1
    if tag == TAG_URI:
        value, offset = _read_field(data, offset)
        return URIRef(value), offset
    if tag == TAG_BNODE:
        value, offset = _read_field(data, offset)
        return BNode(value), offset
    if tag == TAG_LITERAL:
        lexical, offset = _read_field(data, offset)
        language, offset = _read_field(data, offset)
        datatype, offset = _read_field(data, offset)
        if language:
            return Literal(lexical, lang=language), offset
        if datatype:
            return Literal(lexical, datatype=URIRef(datatype)), offset
        return Literal(lexical), offset
    msg = f"Unknown term tag {tag!r} at offset {offset - 1}"
    raise CodecError(msg)


def decode(data: bytes) -> RDFTerm:
    """Decode bytes produced by :func:`encode` back into a term.

    Raises:
        CodecError: If the bytes are malformed or hold more than one term
    """
    term, offset = decode_from(data)
    if offset != len(data):
        msg = f"{len(data) - offset} trailing bytes after term"
        raise CodecError(msg)
    return term


def decode_many(data: bytes) -> list[RDFTerm]:
    """Split a concatenation of encoded terms into its terms."""
    terms: list[RDFTerm] = []
    offset = 0
    while offset < len(data):
        term, offset = decode_from(data, offset)
        terms.append(term)
    return terms


def encode_terms(*terms: RDFTerm) -> bytes:
    """Concatenate the encodings of several terms."""
    return b"".join(encode(t) for t in terms)


def hash_encoded(encoded: bytes) -> bytes:
    """Fixed-length key part for an already encoded term."""
    return hashlib.new(KEY_HASH_ALGO, encoded).digest()


def term_hash(term: RDFTerm) -> bytes:
    """Fixed-length key part for a term."""
    return hash_encoded(encode(term))


def index_key(first: RDFTerm, second: RDFTerm) -> bytes:
    """Build the two-term key of a permutation index."""
    return term_hash(first) + term_hash(second)


def triple_key(subject: RDFTerm, predicate: RDFTerm, obj: RDFTerm) -> bytes:
    """Build the full spo key of the existence index."""
    return term_hash(subject) + term_hash(predicate) + term_hash(obj)


def ordinal_key(prefix: bytes, ordinal: int) -> bytes:
    """Append a big-endian 8-byte ordinal to an index key."""
    if not 0 <= ordinal <= MAX_COUNTER:
        msg = f"Ordinal out of range: {ordinal}"
        raise CodecError(msg)
    return prefix + _ORDINAL.pack(ordinal)


def encode_counter(value: int) -> bytes:
    """Encode a counter value as 8 big-endian bytes."""
    return _ORDINAL.pack(value)


def decode_counter(data: bytes) -> int:
    """Decode an 8-byte big-endian counter value."""
    if len(data) != ORDINAL_SIZE:
        msg = f"Counter must be {ORDINAL_SIZE} bytes, got {len(data)}"
        raise CodecError(msg)
    return _ORDINAL.unpack(data)[0]
