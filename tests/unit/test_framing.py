"""
Unit tests for the newline frame reader.
"""

import pytest

from currencyserver.core.errors import ConnectionIOError, FrameTooLargeError, IOErrorKind
from currencyserver.protocol.framing import Frame, FrameReader


def read_all_frames(reader: FrameReader):
    frames = []
    while True:
        frame = reader.read_frame()
        frames.append(frame)
        if frame.eof:
            return frames


class TestFrameReader:
    """Tests for FrameReader."""

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 4096])
    def test_chunk_size_does_not_change_frames(self, chunked_source, chunk_size):
        """The same bytes give the same frames however recv() cuts them."""
        data = b"GET USD\nGET 'Costa Rica'\n\nGET eur\n"
        reader = FrameReader(chunked_source(data, chunk_size=chunk_size))

        frames = read_all_frames(reader)

        assert [f.data for f in frames] == [b"GET USD", b"GET 'Costa Rica'", b"", b"GET eur", b""]
        assert frames[-1].eof
        assert not any(f.eof for f in frames[:-1])

    def test_bytes_after_delimiter_start_next_frame(self, chunked_source):
        source = chunked_source(chunks=[b"GET USD\nGET E", b"UR\n"])
        reader = FrameReader(source)

        assert reader.read_frame() == Frame(b"GET USD")
        assert reader.buffered == len(b"GET E")
        assert reader.read_frame() == Frame(b"GET EUR")

    def test_pipelined_frames_need_one_read(self, chunked_source):
        """Both frames come out of a single chunk without another recv()."""
        source = chunked_source(chunks=[b"GET USD\nGET EUR\n"])
        reader = FrameReader(source)

        assert reader.read_frame().data == b"GET USD"
        assert reader.read_frame().data == b"GET EUR"
        assert source.reads == 1

    def test_empty_frame(self, chunked_source):
        reader = FrameReader(chunked_source(b"\n"))

        frame = reader.read_frame()
        assert frame.data == b""
        assert not frame.eof

    def test_partial_frame_at_eof(self, chunked_source):
        reader = FrameReader(chunked_source(b"GET US"))

        frame = reader.read_frame()
        assert frame == Frame(b"GET US", eof=True)
        assert reader.buffered == 0

    def test_eof_on_empty_buffer(self, chunked_source):
        reader = FrameReader(chunked_source(b""))

        assert reader.read_frame() == Frame(b"", eof=True)

    def test_frame_too_large(self, chunked_source):
        reader = FrameReader(chunked_source(b"x" * 100, chunk_size=10), max_frame_size=32)

        with pytest.raises(FrameTooLargeError) as exc_info:
            reader.read_frame()

        assert exc_info.value.limit == 32
        assert exc_info.value.size > 32

    def test_frame_at_limit_is_accepted(self, chunked_source):
        reader = FrameReader(chunked_source(b"x" * 32 + b"\n", chunk_size=8), max_frame_size=32)

        assert reader.read_frame().data == b"x" * 32

    def test_non_eof_errors_propagate(self):
        class FailingSource:
            def recv_chunk(self):
                raise ConnectionIOError(IOErrorKind.TIMEOUT, "read failed: deadline exceeded")

        reader = FrameReader(FailingSource())

        with pytest.raises(ConnectionIOError) as exc_info:
            reader.read_frame()
        assert exc_info.value.kind == IOErrorKind.TIMEOUT

    def test_multibyte_delimiter(self, chunked_source):
        reader = FrameReader(chunked_source(b"a\r\nb\r\n", chunk_size=1), delimiter=b"\r\n")

        assert reader.read_frame().data == b"a"
        assert reader.read_frame().data == b"b"

    def test_empty_delimiter_rejected(self, chunked_source):
        with pytest.raises(ValueError):
            FrameReader(chunked_source(b""), delimiter=b"")

    def test_frame_text_replaces_bad_utf8(self):
        assert Frame(b"GET \xff").text == "GET �"
