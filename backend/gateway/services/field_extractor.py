"""
Multipart field extraction.

Turns a raw request body into UploadField values. The multipart framing is
handled by python-multipart; this module only collects its callbacks into
parts and applies the gateway's rules for field names and text content.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional, Union

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

MULTIPART_FORM_DATA = b"multipart/form-data"

# Characters that would let a field name escape the data folder
FORBIDDEN_NAME_CHARS = ("/", "\\", "\x00")


class BoundaryError(ValueError):
    """The Content-Type header is missing or carries no usable boundary."""


class MultipartReadError(ValueError):
    """The multipart body itself is malformed or truncated."""


class FieldParseError(ValueError):
    """One field could not be converted into an upload."""


@dataclass(frozen=True)
class UploadField:
    """One named file taken from the multipart body."""
    name: str
    content: bytes


@dataclass
class RawPart:
    """Headers and bytes of a single multipart part, before validation."""
    headers: Dict[bytes, bytes] = field(default_factory=dict)
    data: bytes = b""


def extract_boundary(content_type: Optional[str]) -> str:
    """
    Extract the multipart boundary from a Content-Type header value.

    Raises:
        BoundaryError: With the message returned to the client
    """
    if content_type is None:
        raise BoundaryError('Header "Content-Type" not found.')

    if not content_type.isascii():
        raise BoundaryError('Header "Content-Type" not convertible to string.')

    ctype, options = parse_options_header(content_type)
    boundary = options.get(b"boundary", b"")

    if ctype != MULTIPART_FORM_DATA or not boundary:
        raise BoundaryError('Could not extract the boundary from header "Content-Type"')

    return boundary.decode("latin-1")


def validate_field_name(name: str) -> str:
    """
    Reject names that are not a plain file name.

    Raises:
        FieldParseError: If the name is empty, a dot entry, or contains a separator
    """
    if not name or name in (".", ".."):
        raise FieldParseError(f'Invalid field name "{name}"')
    if any(char in name for char in FORBIDDEN_NAME_CHARS):
        raise FieldParseError(f'Invalid field name "{name}"')
    return name


def extract_field(part: RawPart) -> UploadField:
    """
    Convert one raw part into an UploadField.

    Raises:
        FieldParseError: If the name is missing/invalid or the content is not text
    """
    _, options = parse_options_header(part.headers.get(b"content-disposition"))
    raw_name = options.get(b"name")
    if raw_name is None:
        raise FieldParseError("Failed to read field name")

    try:
        name = raw_name.decode("utf-8")
    except UnicodeDecodeError:
        raise FieldParseError("Failed to read field name")

    try:
        part.data.decode("utf-8")
    except UnicodeDecodeError:
        raise FieldParseError(f'Failed to read field text of "{name}"')

    return UploadField(name=validate_field_name(name), content=part.data)


class MultipartFieldReader:
    """
    Sequential access to the parts of a buffered multipart body.

    The body is parsed up front. Parts that were complete before a framing
    error are still returned in order; the error is raised by the call to
    next_part() that would have returned the part after them.
    """

    def __init__(self, body: bytes, boundary: Union[str, bytes]):
        self._parts: Deque[RawPart] = deque()
        self._error: Optional[MultipartReadError] = None
        self._parse(body, boundary)

    def _parse(self, body: bytes, boundary: Union[str, bytes]) -> None:
        current: Optional[RawPart] = None
        chunks: list = []
        header_field = bytearray()
        header_value = bytearray()

        def on_part_begin():
            nonlocal current
            current = RawPart()
            chunks.clear()

        def on_header_field(data, start, end):
            header_field.extend(data[start:end])

        def on_header_value(data, start, end):
            header_value.extend(data[start:end])

        def on_header_end():
            current.headers[bytes(header_field).lower()] = bytes(header_value)
            header_field.clear()
            header_value.clear()

        def on_part_data(data, start, end):
            chunks.append(data[start:end])

        def on_part_end():
            nonlocal current
            current.data = b"".join(chunks)
            self._parts.append(current)
            current = None

        parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": on_part_begin,
                "on_header_field": on_header_field,
                "on_header_value": on_header_value,
                "on_header_end": on_header_end,
                "on_part_data": on_part_data,
                "on_part_end": on_part_end,
            },
        )

        try:
            parser.write(body)
            parser.finalize()
        except MultipartParseError as e:
            self._error = MultipartReadError(str(e))
            return

        if current is not None:
            self._error = MultipartReadError("Incomplete multipart body")

    def next_part(self) -> Optional[RawPart]:
        """
        Return the next complete part, or None at the end of the body.

        Raises:
            MultipartReadError: Once all parts before a framing error are consumed
        """
        if self._parts:
            return self._parts.popleft()
        if self._error is not None:
            raise self._error
        return None
