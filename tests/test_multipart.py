"""Tests for multipart/form-data encoding."""

import asyncio
import io
import threading

import pytest

from restclient.errors import UploadError
from restclient.http.multipart import (
    OCTET_STREAM,
    HttpFile,
    MultipartEncoder,
    new_boundary,
    stream_length,
)
from restclient.http.parameters import ParameterMap
from tests.conftest import CountingStream, FailingStream

BOUNDARY = "----------testboundary"


@pytest.fixture
def fields():
    return ParameterMap().set("title", "Report").set("owner", "Ama")


class TestMultipartEncoder:
    def test_parts_in_order_and_length_matches(self, fields):
        stream = CountingStream(b"file-content")
        upload = HttpFile(stream, "doc", "report.txt", "text/plain")
        encoder = MultipartEncoder(fields, [upload], boundary=BOUNDARY)

        body = encoder.to_bytes()

        assert len(encoder.parts) == 3
        assert encoder.content_length == len(body)
        assert body == (
            b'------------testboundary\r\n'
            b'Content-Disposition: form-data; name="title"\r\n\r\n'
            b'Report\r\n'
            b'------------testboundary\r\n'
            b'Content-Disposition: form-data; name="owner"\r\n\r\n'
            b'Ama\r\n'
            b'------------testboundary\r\n'
            b'Content-Disposition: form-data; name="doc"; filename="report.txt"\r\n'
            b'Content-Type: text/plain\r\n\r\n'
            b'file-content\r\n'
            b'------------testboundary--\r\n'
        )
        assert stream.close_calls == 1

    def test_content_type_carries_boundary(self):
        encoder = MultipartEncoder(boundary=BOUNDARY)
        assert encoder.content_type == f"multipart/form-data; boundary={BOUNDARY}"

    def test_blank_field_names_are_numbered(self):
        uploads = [
            HttpFile(io.BytesIO(b"a"), None, "a.bin"),
            HttpFile(io.BytesIO(b"b"), "named", "b.bin"),
            HttpFile(io.BytesIO(b"c"), "  ", "c.bin"),
        ]
        encoder = MultipartEncoder(files=uploads, boundary=BOUNDARY)
        assert [part.name for part in encoder.parts] == ["file0", "named", "file1"]
        encoder.close()

    def test_only_footer_without_parts(self):
        encoder = MultipartEncoder(boundary=BOUNDARY)
        assert encoder.to_bytes() == b"------------testboundary--\r\n"
        assert encoder.content_length == len(b"------------testboundary--\r\n")

    def test_length_counts_remaining_bytes_only(self):
        stream = io.BytesIO(b"0123456789")
        stream.seek(4)
        assert stream_length(stream) == 6
        encoder = MultipartEncoder(files=[HttpFile(stream, "f", "f.bin")], boundary=BOUNDARY)
        assert encoder.content_length == len(encoder.to_bytes())

    def test_async_write_matches_sync_write(self, fields):
        class Sink:
            def __init__(self):
                self.data = bytearray()

            async def write(self, data):
                self.data.extend(data)

        expected = MultipartEncoder(
            fields, [HttpFile(io.BytesIO(b"xyz"), "f", "f.bin")], boundary=BOUNDARY
        ).to_bytes()

        stream = CountingStream(b"xyz")
        encoder = MultipartEncoder(fields, [HttpFile(stream, "f", "f.bin")], boundary=BOUNDARY)
        sink = Sink()
        written = asyncio.run(encoder.write_to_async(sink))

        assert bytes(sink.data) == expected
        assert written == encoder.content_length
        assert stream.close_calls == 1

    def test_async_file_reads_leave_the_event_loop(self):
        class ThreadRecordingStream(io.BytesIO):
            def __init__(self, data):
                super().__init__(data)
                self.read_threads = set()

            def read(self, size=-1):
                self.read_threads.add(threading.get_ident())
                return super().read(size)

        class Sink:
            async def write(self, data):
                pass

        stream = ThreadRecordingStream(b"payload")
        encoder = MultipartEncoder(files=[HttpFile(stream, "f", "f.bin")], boundary=BOUNDARY)

        async def run():
            loop_thread = threading.get_ident()
            await encoder.write_to_async(Sink())
            return loop_thread

        loop_thread = asyncio.run(run())

        assert stream.read_threads
        assert loop_thread not in stream.read_threads

    def test_async_read_failure_raises_upload_error(self):
        class Sink:
            async def write(self, data):
                pass

        bad = FailingStream()
        encoder = MultipartEncoder(files=[HttpFile(bad, "b", "b.bin")], boundary=BOUNDARY)

        with pytest.raises(UploadError):
            asyncio.run(encoder.write_to_async(Sink()))
        assert bad.close_calls == 1

    def test_read_failure_raises_upload_error_and_closes_streams(self):
        good = CountingStream(b"fine")
        bad = FailingStream()
        encoder = MultipartEncoder(
            files=[HttpFile(good, "a", "a.bin"), HttpFile(bad, "b", "b.bin")],
            boundary=BOUNDARY,
        )
        with pytest.raises(UploadError):
            encoder.to_bytes()
        assert good.close_calls == 1
        assert bad.close_calls == 1

    def test_close_is_idempotent(self):
        stream = CountingStream(b"data")
        encoder = MultipartEncoder(files=[HttpFile(stream, "f", "f.bin")], boundary=BOUNDARY)
        encoder.close()
        encoder.close()
        assert stream.close_calls == 1

    def test_boundaries_have_expected_shape(self):
        boundary = new_boundary()
        assert boundary.startswith("----------")
        int(boundary[10:], 16)


class TestHttpFile:
    def test_open_guesses_content_type(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        upload = HttpFile.open(path)
        try:
            assert upload.file_name == "notes.txt"
            assert upload.content_type == "text/plain"
            assert upload.field_name is None
            assert upload.data.read() == b"hello"
        finally:
            upload.data.close()

    def test_open_unknown_extension_is_octet_stream(self, tmp_path):
        path = tmp_path / "blob.unknownext"
        path.write_bytes(b"\x00\x01")
        upload = HttpFile.open(path, field_name="blob")
        try:
            assert upload.content_type == OCTET_STREAM
            assert stream_length(upload.data) == 2
        finally:
            upload.data.close()
