"""Conformance tests for the multipart/mixed writer.

The expected bodies mirror the byte layout the form-data encoder produces
for expo-updates responses, which the client parses part by part.
"""

import re

from ota_api.multipart import MultipartWriter, generate_boundary

BOUNDARY = "--------------------------123456789012345678901234"


class TestMultipartWriter:
    """Tests for MultipartWriter."""

    def test_manifest_and_extensions_layout(self):
        writer = MultipartWriter(BOUNDARY)
        writer.append("manifest", '{"id":"x"}', headers={"expo-signature": 'keyid="main", sig="c2ln"'})
        writer.append("extensions", '{"assetRequestHeaders":{}}')

        expected = (
            f"--{BOUNDARY}\r\n"
            'Content-Disposition: form-data; name="manifest"\r\n'
            "Content-Type: application/json; charset=utf-8\r\n"
            'expo-signature: keyid="main", sig="c2ln"\r\n'
            "\r\n"
            '{"id":"x"}\r\n'
            f"--{BOUNDARY}\r\n"
            'Content-Disposition: form-data; name="extensions"\r\n'
            "Content-Type: application/json; charset=utf-8\r\n"
            "\r\n"
            '{"assetRequestHeaders":{}}\r\n'
            f"--{BOUNDARY}--\r\n"
        ).encode("ascii")
        assert writer.to_bytes() == expected

    def test_directive_layout(self):
        writer = MultipartWriter(BOUNDARY)
        writer.append("directive", '{"type":"noUpdateAvailable"}')

        expected = (
            f"--{BOUNDARY}\r\n"
            'Content-Disposition: form-data; name="directive"\r\n'
            "Content-Type: application/json; charset=utf-8\r\n"
            "\r\n"
            '{"type":"noUpdateAvailable"}\r\n'
            f"--{BOUNDARY}--\r\n"
        ).encode("ascii")
        assert writer.to_bytes() == expected

    def test_content_type(self):
        assert MultipartWriter(BOUNDARY).content_type == f"multipart/mixed; boundary={BOUNDARY}"

    def test_utf8_body(self):
        writer = MultipartWriter(BOUNDARY)
        writer.append("manifest", '{"name":"café"}')

        assert '{"name":"café"}'.encode("utf-8") in writer.to_bytes()

    def test_generated_boundary(self):
        boundary = generate_boundary()

        assert re.fullmatch(r"-{26}\d{24}", boundary)
        assert MultipartWriter().boundary != MultipartWriter().boundary
