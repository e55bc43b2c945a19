"""Buffered readers and writers with pluggable encoders, decoders and EOF checks."""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Optional

from .convert import _default as _json_default
from .eof import DEFAULT_EOF_CHECKER, DefaultEofChecker, EofChecker

DEFAULT_BUFFER_SIZE = 4096
_CHUNK_SIZE = 512
_JSON_WHITESPACE = b" \t\r\n"
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class NoDecoderError(RuntimeError):
    """Raised when decoding with a reader that has no decoder."""

    def __init__(self) -> None:
        super().__init__("no decoder was provided")


class NoEncoderError(RuntimeError):
    """Raised when encoding with a writer that has no encoder."""

    def __init__(self) -> None:
        super().__init__("no encoder was provided")


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"expected bytes or str, not {type(data).__name__}")


def _resolve(target: Any, names: tuple[str, ...], role: str) -> Callable:
    for name in names:
        method = getattr(target, name, None)
        if callable(method):
            return method
    raise TypeError(f"{type(target).__name__} cannot be used as a {role}")


class DefaultEncoder:
    """Writes bytes and strings unchanged; rejects anything else."""

    def __init__(self, writer: "Writer") -> None:
        self._writer = writer

    def reset(self, writer: "Writer") -> None:
        self._writer = writer

    def encode(self, value: Any) -> None:
        if not isinstance(value, (str, bytes, bytearray, memoryview)):
            raise TypeError(f"cannot encode value of type {type(value).__name__}")
        self._writer.write(value)


class DefaultDecoder:
    """Reads everything the reader has and returns it as bytes."""

    def __init__(self, reader: "Reader") -> None:
        self._reader = reader

    def reset(self, reader: "Reader") -> None:
        self._reader = reader

    def decode(self) -> bytes:
        return self._reader.read_all()


class JsonEncoder:
    """Writes each value as compact JSON followed by a newline."""

    def __init__(self, writer: "Writer") -> None:
        self._writer = writer

    def encode(self, value: Any) -> None:
        text = json.dumps(
            value, default=_json_default, separators=(",", ":"), ensure_ascii=False
        )
        for char, escaped in _HTML_ESCAPES.items():
            text = text.replace(char, escaped)
        self._writer.write((text + "\n").encode("utf-8"))


class JsonDecoder:
    """Reads one JSON value at a time from a stream of values."""

    def __init__(self, reader: "Reader") -> None:
        self._reader = reader
        self._pending = b""
        self._json = json.JSONDecoder()

    def _try_parse(self, body: bytes, eof: bool) -> Optional[tuple[Any, bytes]]:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            if not eof and exc.reason == "unexpected end of data":
                return None
            raise ValueError(f"invalid UTF-8 in JSON stream: {exc}") from exc
        try:
            value, end = self._json.raw_decode(text)
        except json.JSONDecodeError:
            if eof:
                raise
            return None
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        if is_number and end == len(text) and not eof:
            return None
        return value, text[end:].encode("utf-8")

    def decode(self) -> Any:
        data = self._pending
        eof = False
        while True:
            body = data.lstrip(_JSON_WHITESPACE)
            if not body and eof:
                self._pending = b""
                raise EOFError("no JSON value left to decode")
            if body:
                parsed = self._try_parse(body, eof)
                if parsed is not None:
                    value, self._pending = parsed
                    return value
            chunk = self._reader.read(_CHUNK_SIZE)
            if chunk:
                data += chunk
            else:
                eof = True


ReaderOption = Callable[["Reader"], None]
WriterOption = Callable[["Writer"], None]


def set_json_encoder() -> WriterOption:
    """Option that makes a writer encode values as JSON."""

    def apply(writer: Writer) -> None:
        writer.encoder = JsonEncoder(writer)

    return apply


def set_default_encoder() -> WriterOption:
    """Option that makes a writer pass bytes and strings through unchanged."""

    def apply(writer: Writer) -> None:
        writer.encoder = DefaultEncoder(writer)

    return apply


def set_eof_checker(checker: EofChecker) -> ReaderOption:
    """Option that installs ``checker`` on a reader."""

    def apply(reader: Reader) -> None:
        reader.eof_checker = checker

    return apply


def set_default_eof_checker() -> ReaderOption:
    """Option that installs a fresh DefaultEofChecker on a reader."""

    def apply(reader: Reader) -> None:
        reader.eof_checker = DefaultEofChecker()

    return apply


def set_json_decoder() -> ReaderOption:
    """Option that makes a reader decode JSON values."""

    def apply(reader: Reader) -> None:
        reader.decoder = JsonDecoder(reader)

    return apply


class Reader:
    """A buffered reader over any object with ``read`` (or ``recv``)."""

    def __init__(self, source: Any, *options: Optional[ReaderOption]) -> None:
        self._size = DEFAULT_BUFFER_SIZE
        self._buf = bytearray()
        self._raw: Optional[Callable] = None
        self.decoder: Any = None
        self.eof_checker: Optional[EofChecker] = None
        self._attach(source)
        self.apply_options(*options)

    def _attach(self, source: Any) -> None:
        self._source = source
        self._raw = None if source is None else _resolve(source, ("read", "recv"), "source")

    def apply_options(self, *options: Optional[ReaderOption]) -> None:
        """Apply options, then fill in the default EOF checker and decoder."""
        for option in options:
            if option is not None:
                option(self)
        if self.eof_checker is None:
            self.eof_checker = DEFAULT_EOF_CHECKER
        if self.decoder is None:
            self.decoder = DefaultDecoder(self)

    def reset(self, source: Any, *options: Optional[ReaderOption]) -> None:
        """Discard buffered data and read from ``source`` from now on."""
        self._buf.clear()
        self._attach(source)
        reset = getattr(self.decoder, "reset", None)
        if callable(reset):
            reset(self)
        else:
            self.decoder = None
        self.eof_checker = None
        if source is not None:
            self.apply_options(*options)

    def _raw_read(self, size: int) -> bytes:
        if self._raw is None:
            raise ValueError("reader has no source")
        chunk = self._raw(size)
        return b"" if chunk is None else bytes(chunk)

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes from at most one read of the source; b"" at end."""
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            return b""
        if not self._buf:
            if size >= self._size:
                return self._raw_read(size)
            chunk = self._raw_read(self._size)
            if not chunk:
                return b""
            self._buf += chunk
        out = bytes(self._buf[:size])
        del self._buf[:size]
        return out

    def read_until(self, delim: bytes | int) -> bytes:
        """Return data up to and including ``delim``, or whatever is left at the end."""
        marker = bytes([delim]) if isinstance(delim, int) else bytes(delim)
        if not marker:
            raise ValueError("delimiter must not be empty")
        while True:
            index = self._buf.find(marker)
            if index >= 0:
                stop = index + len(marker)
                out = bytes(self._buf[:stop])
                del self._buf[:stop]
                return out
            chunk = self._raw_read(self._size)
            if not chunk:
                out = bytes(self._buf)
                self._buf.clear()
                return out
            self._buf += chunk

    def read_all(self) -> bytes:
        """Read until the EOF checker says the data is complete."""
        checker = self.eof_checker or DEFAULT_EOF_CHECKER
        data = bytearray()
        while True:
            error: Optional[BaseException]
            try:
                chunk = self.read(self._size)
                error = None if chunk else EOFError()
            except Exception as exc:
                chunk, error = b"", exc
            data += chunk
            if checker.check(bytes(data), error):
                return bytes(data)

    def decode(self) -> Any:
        """Decode the next value with the reader's decoder."""
        if self.decoder is None:
            raise NoDecoderError()
        return self.decoder.decode()

    def peek(self, size: int) -> bytes:
        """Return the next ``size`` bytes without consuming them (fewer at the end)."""
        if size < 0:
            raise ValueError("size must not be negative")
        if size > self._size:
            raise ValueError(f"cannot peek more than {self._size} bytes")
        while len(self._buf) < size:
            chunk = self._raw_read(self._size)
            if not chunk:
                break
            self._buf += chunk
        return bytes(self._buf[:size])

    def buffered(self) -> int:
        """Number of bytes that can be read without touching the source."""
        return len(self._buf)


class Writer:
    """A buffered writer over any object with ``write``, ``sendall`` or ``update``."""

    def __init__(self, sink: Any, *options: Optional[WriterOption]) -> None:
        self._size = DEFAULT_BUFFER_SIZE
        self._buf = bytearray()
        self._emit_fn: Optional[Callable] = None
        self.encoder: Any = None
        self._attach(sink)
        self.apply_options(*options)

    def _attach(self, sink: Any) -> None:
        self._sink = sink
        self._emit_fn = (
            None if sink is None else _resolve(sink, ("write", "sendall", "update"), "sink")
        )

    def apply_options(self, *options: Optional[WriterOption]) -> None:
        """Apply options, then fill in the default encoder."""
        for option in options:
            if option is not None:
                option(self)
        if self.encoder is None:
            self.encoder = DefaultEncoder(self)

    def reset(self, sink: Any, *options: Optional[WriterOption]) -> None:
        """Discard buffered data and write to ``sink`` from now on."""
        self._buf.clear()
        self._attach(sink)
        reset = getattr(self.encoder, "reset", None)
        if callable(reset):
            reset(self)
        else:
            self.encoder = None
        if sink is not None:
            self.apply_options(*options)

    def _emit(self, data: bytes | memoryview) -> None:
        if self._emit_fn is None:
            raise ValueError("writer has no sink")
        view = memoryview(data)
        while view:
            written = self._emit_fn(view)
            if not isinstance(written, int) or written >= len(view):
                return
            if written <= 0:
                raise OSError("sink accepted no data")
            view = view[written:]

    def write(self, data: bytes | str) -> int:
        """Buffer ``data``, passing full buffers on to the sink; return its length."""
        payload = _as_bytes(data)
        view = memoryview(payload)
        while len(view) > self._size - len(self._buf):
            if not self._buf:
                self._emit(view)
                return len(payload)
            room = self._size - len(self._buf)
            self._buf += view[:room]
            view = view[room:]
            self._emit(bytes(self._buf))
            self._buf.clear()
        self._buf += view
        return len(payload)

    def flush(self) -> None:
        """Pass buffered data to the sink and flush the sink if it can be."""
        if self._buf:
            self._emit(bytes(self._buf))
            self._buf.clear()
        if self._sink is not None:
            sink_flush = getattr(self._sink, "flush", None)
            if callable(sink_flush):
                sink_flush()

    def write_flush(self, data: bytes | str) -> int:
        """Write ``data`` and flush at once."""
        written = self.write(data)
        self.flush()
        return written

    def buffered(self) -> int:
        """Number of bytes waiting in the buffer."""
        return len(self._buf)

    def encode(self, value: Any) -> None:
        """Encode ``value`` into the buffer with the writer's encoder."""
        if self.encoder is None:
            raise NoEncoderError()
        self.encoder.encode(value)

    def encode_flush(self, value: Any) -> None:
        """Encode ``value`` and flush at once."""
        self.encode(value)
        self.flush()


class ReadWriter:
    """A Reader and a Writer used together for request/response exchanges."""

    def __init__(self, reader: Reader, writer: Writer) -> None:
        self.reader = reader
        self.writer = writer

    def request(self, data: bytes | str) -> bytes:
        """Send ``data`` and return the complete reply."""
        self.writer.write_flush(data)
        return self.reader.read_all()

    def request_encoded(self, value: Any) -> bytes:
        """Encode and send ``value`` and return the complete reply."""
        self.writer.encode_flush(value)
        return self.reader.read_all()


_pool_lock = threading.Lock()
_reader_pool: list[Reader] = []
_writer_pool: list[Writer] = []
_read_writer_pool: list[ReadWriter] = []


def _take(pool: list) -> Any:
    with _pool_lock:
        return pool.pop() if pool else None


def _give(pool: list, item: Any) -> None:
    with _pool_lock:
        pool.append(item)


def get_reader(source: Any, *options: Optional[ReaderOption]) -> Reader:
    """Take a Reader from the pool, or create one, reading from ``source``."""
    reader = _take(_reader_pool)
    if reader is None:
        return Reader(source, *options)
    reader.reset(source, *options)
    return reader


def put_reader(reader: Reader) -> None:
    """Detach ``reader`` from its source and return it to the pool."""
    reader.reset(None)
    _give(_reader_pool, reader)


def get_writer(sink: Any, *options: Optional[WriterOption]) -> Writer:
    """Take a Writer from the pool, or create one, writing to ``sink``."""
    writer = _take(_writer_pool)
    if writer is None:
        return Writer(sink, *options)
    writer.reset(sink, *options)
    return writer


def put_writer(writer: Writer) -> None:
    """Detach ``writer`` from its sink and return it to the pool."""
    writer.reset(None)
    _give(_writer_pool, writer)


def get_read_writer(source: Any, sink: Any) -> ReadWriter:
    """Take a ReadWriter from the pool, or create one, over ``source`` and ``sink``."""
    read_writer = _take(_read_writer_pool)
    if read_writer is None:
        return ReadWriter(get_reader(source), get_writer(sink))
    read_writer.reader.reset(source)
    read_writer.writer.reset(sink)
    return read_writer


def put_read_writer(read_writer: ReadWriter) -> None:
    """Detach ``read_writer`` and return it to the pool."""
    read_writer.reader.reset(None)
    read_writer.writer.reset(None)
    _give(_read_writer_pool, read_writer)