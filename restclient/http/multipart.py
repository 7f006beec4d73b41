"""
multipart/form-data encoding for file uploads.

The whole body length is computed before anything is written so the request
can carry a definite Content-Length.
"""

import asyncio
import io
import mimetypes
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Sequence, Union

from restclient.errors import UploadError
from restclient.http.parameters import ParameterMap

OCTET_STREAM = "application/octet-stream"
CRLF = b"\r\n"
BUFFER_SIZE = 8192


@dataclass
class HttpFile:
    """A file to upload.

    Attributes:
        data: Binary stream with the file content; closed once uploaded
        field_name: Form field name; "file0", "file1", ... when blank
        file_name: File name sent to the server
        content_type: MIME type of the content
    """

    data: BinaryIO
    field_name: Optional[str] = None
    file_name: str = ""
    content_type: str = OCTET_STREAM

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        field_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> "HttpFile":
        """Open a file from disk for upload."""
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or OCTET_STREAM
        return cls(open(path, "rb"), field_name, path.name, content_type)


def stream_length(stream: BinaryIO) -> int:
    """Number of bytes left between the current position and the end of a stream."""
    if isinstance(stream, io.BytesIO):
        return len(stream.getbuffer()) - stream.tell()
    try:
        return os.fstat(stream.fileno()).st_size - stream.tell()
    except (AttributeError, OSError, io.UnsupportedOperation):
        position = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(position)
        return end - position


class MimePart:
    """One part of a multipart body."""

    def __init__(self, data: BinaryIO, name: str) -> None:
        self.headers: dict[str, str] = {}
        self.data = data
        self.name = name
        self.header = b""
        self.closed = False

    def generate_header_footer_data(self, boundary: str) -> int:
        """Render the part header for boundary.

        Returns:
            Total bytes this part contributes: header, content and trailing CRLF
        """
        lines = [f"--{boundary}\r\n"]
        for key, value in self.headers.items():
            lines.append(f"{key}: {value}\r\n")
        lines.append("\r\n")
        self.header = "".join(lines).encode("utf-8")
        return len(self.header) + stream_length(self.data) + len(CRLF)

    def read_chunk(self) -> bytes:
        """Read the next buffer-sized piece; empty at the end of the content."""
        try:
            return self.data.read(BUFFER_SIZE)
        except OSError as e:
            raise UploadError(e) from e

    def chunks(self) -> Iterator[bytes]:
        """Yield the content in buffer-sized pieces."""
        while True:
            chunk = self.read_chunk()
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.data.close()


class StringMimePart(MimePart):
    """Scalar form field."""

    def __init__(self, name: str, value: str) -> None:
        super().__init__(io.BytesIO(value.encode("utf-8")), name)
        self.headers["Content-Disposition"] = f'form-data; name="{name}"'


class StreamMimePart(MimePart):
    """File form field."""

    def __init__(self, upload: HttpFile, field_name: str) -> None:
        super().__init__(upload.data, field_name)
        self.headers["Content-Disposition"] = (
            f'form-data; name="{field_name}"; filename="{upload.file_name}"'
        )
        self.headers["Content-Type"] = upload.content_type


def new_boundary() -> str:
    # 100ns clock ticks, unique per call
    return "----------" + format(time.time_ns() // 100, "x")


class MultipartEncoder:
    """Builds a multipart/form-data body from form fields and files.

    Fields come first in map order, then files in list order, then the
    closing boundary. Every file stream is closed exactly once, whether the
    body was written completely or not.
    """

    def __init__(
        self,
        fields: Optional[ParameterMap] = None,
        files: Sequence[HttpFile] = (),
        boundary: Optional[str] = None,
    ) -> None:
        self.boundary = boundary or new_boundary()
        self.parts: List[MimePart] = []
        try:
            for key, value in (fields or ParameterMap()).to_form_fields():
                self.parts.append(StringMimePart(key, value))

            name_index = 0
            for upload in files:
                field_name = upload.field_name
                if not field_name or not field_name.strip():
                    field_name = f"file{name_index}"
                    name_index += 1
                self.parts.append(StreamMimePart(upload, field_name))

            self.footer = f"--{self.boundary}--\r\n".encode("utf-8")
            self.content_length = (
                sum(part.generate_header_footer_data(self.boundary) for part in self.parts)
                + len(self.footer)
            )
        except OSError as e:
            self._close_all(files)
            raise UploadError(e) from e
        except Exception:
            self._close_all(files)
            raise

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def write_to(self, stream) -> int:
        """Write the body to a blocking stream. Returns the bytes written."""
        written = 0
        try:
            for part in self.parts:
                stream.write(part.header)
                written += len(part.header)
                for chunk in part.chunks():
                    stream.write(chunk)
                    written += len(chunk)
                part.close()
                stream.write(CRLF)
                written += len(CRLF)
            stream.write(self.footer)
            written += len(self.footer)
        finally:
            self.close()
        return written

    async def write_to_async(self, stream) -> int:
        """Write the body to a non-blocking stream. Returns the bytes written.

        File reads run in a worker thread so the event loop is never blocked.
        """
        written = 0
        try:
            for part in self.parts:
                await stream.write(part.header)
                written += len(part.header)
                while True:
                    chunk = await asyncio.to_thread(part.read_chunk)
                    if not chunk:
                        break
                    await stream.write(chunk)
                    written += len(chunk)
                part.close()
                await stream.write(CRLF)
                written += len(CRLF)
            await stream.write(self.footer)
            written += len(self.footer)
        finally:
            self.close()
        return written

    def to_bytes(self) -> bytes:
        """Render the whole body in memory, consuming the file streams."""
        buffer = io.BytesIO()
        self.write_to(buffer)
        return buffer.getvalue()

    def close(self) -> None:
        """Close every part stream that is still open."""
        for part in self.parts:
            part.close()

    def _close_all(self, files: Sequence[HttpFile]) -> None:
        self.close()
        for upload in files:
            if not upload.data.closed:
                upload.data.close()
