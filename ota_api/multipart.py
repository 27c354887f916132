"""multipart/mixed writer for expo-updates responses.

The expo-updates client reads each part's name from its Content-Disposition
header, so parts are laid out the way the form-data encoder writes them:

    --<boundary>\r\n
    Content-Disposition: form-data; name="manifest"\r\n
    Content-Type: application/json; charset=utf-8\r\n
    expo-signature: keyid="main", sig="..."\r\n
    \r\n
    <body>\r\n
    --<boundary>--\r\n
"""

import secrets
from typing import Dict, List, Optional, Tuple, Union

CRLF = b"\r\n"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def generate_boundary() -> str:
    digits = "".join(str(secrets.randbelow(10)) for _ in range(24))
    return "-" * 26 + digits


class MultipartWriter:
    """Accumulates named parts and renders a multipart/mixed body."""

    def __init__(self, boundary: Optional[str] = None):
        self.boundary = boundary or generate_boundary()
        self._parts: List[Tuple[str, bytes, Dict[str, str]]] = []

    @property
    def content_type(self) -> str:
        return f"multipart/mixed; boundary={self.boundary}"

    def append(
        self,
        name: str,
        body: Union[str, bytes],
        content_type: str = JSON_CONTENT_TYPE,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Add a part.

        Args:
            name: Part name (manifest, directive, extensions)
            body: Part body; str is encoded as UTF-8
            content_type: Content-Type of the part
            headers: Extra part headers such as expo-signature
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        part_headers = {"Content-Type": content_type}
        part_headers.update(headers or {})
        self._parts.append((name, body, part_headers))

    def to_bytes(self) -> bytes:
        delimiter = f"--{self.boundary}".encode("ascii")
        chunks = []
        for name, body, headers in self._parts:
            chunks.append(delimiter + CRLF)
            chunks.append(f'Content-Disposition: form-data; name="{name}"'.encode("ascii") + CRLF)
            for header, value in headers.items():
                chunks.append(f"{header}: {value}".encode("latin-1") + CRLF)
            chunks.append(CRLF)
            chunks.append(body + CRLF)
        chunks.append(delimiter + b"--" + CRLF)
        return b"".join(chunks)
