import io
import json
from dataclasses import dataclass, field

import pytest

from sikit.eof import DefaultEofChecker, EofChecker
from sikit.streams import (
    DefaultDecoder,
    DefaultEncoder,
    NoDecoderError,
    NoEncoderError,
    Reader,
    ReadWriter,
    Writer,
    get_read_writer,
    get_reader,
    get_writer,
    put_read_writer,
    put_reader,
    put_writer,
    set_default_encoder,
    set_default_eof_checker,
    set_eof_checker,
    set_json_decoder,
    set_json_encoder,
)

TEST_DATA = '{"name":"wonk","age":20,"email":"wonk@example.com"}\n'
TEST_DATA_2 = '{"name":"mink","age":40,"email":"mink@example.com"}\n'


@dataclass
class Person:
    name: str = field(metadata={"json": "name"})
    age: int = field(metadata={"json": "age"})
    email: str = field(metadata={"json": "email"})
    gender: str = field(metadata={"json": "gender"})
    marriage_status: str = field(metadata={"json": "marriage_status"})
    num_children: int = field(metadata={"json": "num_children"})


class ChunkedSource:
    def __init__(self, chunks):
        self.chunks = list(chunks)

    def read(self, size):
        if not self.chunks:
            raise AssertionError("read past the last chunk")
        return self.chunks.pop(0)


class LengthPrefixChecker(EofChecker):
    def check(self, data, error):
        if error is None or isinstance(error, EOFError):
            length = int(data[:7])
            if length == len(data):
                return True
            if isinstance(error, EOFError):
                raise ValueError("not received all but EOF")
            return False
        raise error


class Collector:
    def __init__(self):
        self.data = b""

    def update(self, chunk):
        self.data += bytes(chunk)


def write_file(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_set_json_encoder_installs_json_encoder():
    sink = io.BytesIO()
    writer = Writer(sink, set_json_encoder())
    writer.encode_flush({"a": 1})
    assert sink.getvalue() == b'{"a":1}\n'


def test_set_default_encoder_installs_default_encoder():
    sink = io.BytesIO()
    writer = Writer(sink, set_json_encoder(), set_default_encoder())
    writer.encode_flush("abc")
    assert sink.getvalue() == b"abc"


def test_set_eof_checker_installs_given_checker():
    checker = DefaultEofChecker()
    reader = Reader(None, set_eof_checker(checker))
    assert reader.eof_checker is checker


def test_set_default_eof_checker():
    reader = Reader(io.BytesIO(b"abc"), set_default_eof_checker())
    assert reader.eof_checker.check(b"", EOFError()) is True
    assert reader.read_all() == b"abc"


def test_set_json_decoder_installs_json_decoder():
    reader = Reader(io.BytesIO(b'{"a": 1}'), set_json_decoder())
    assert reader.decode() == {"a": 1}


def test_writer_reset_keeps_default_encoder():
    writer = Writer(io.BytesIO())
    encoder = writer.encoder
    writer.reset(None)
    assert writer.encoder is encoder


def test_get_writer_reset_cycle():
    buf = io.BytesIO()
    writer = get_writer(buf, set_json_encoder())
    first = writer.encoder
    put_writer(writer)
    assert writer.encoder is None

    writer = get_writer(buf, set_json_encoder())
    assert writer.encoder is not first
    put_writer(writer)
    assert writer.encoder is None

    writer = get_writer(buf)
    assert isinstance(writer.encoder, DefaultEncoder)
    writer.encode_flush(b"test message")
    assert buf.getvalue() == b"test message"
    put_writer(writer)

    buf2 = io.BytesIO()
    writer2 = get_writer(buf2)
    writer2.encode_flush("test message 2")
    assert buf2.getvalue() == b"test message 2"
    put_writer(writer2)


def test_reader_reset_cycle():
    reader = get_reader(io.BytesIO(b"test message"))
    assert reader.decode() == b"test message"
    put_reader(reader)

    reader2 = get_reader(io.BytesIO(b"test message2"))
    assert reader2.decode() == b"test message2"
    put_reader(reader2)


def test_reader_keeps_default_decoder_on_reset():
    reader = Reader(io.BytesIO(b"x"))
    decoder = reader.decoder
    reader.reset(None)
    assert reader.decoder is decoder
    assert isinstance(decoder, DefaultDecoder)


def test_reader_without_decoder_raises():
    reader = Reader(io.BytesIO(b"{}"), set_json_decoder())
    reader.reset(None)
    with pytest.raises(NoDecoderError):
        reader.decode()


def test_writer_without_encoder_raises():
    writer = Writer(io.BytesIO(), set_json_encoder())
    writer.reset(None)
    with pytest.raises(NoEncoderError):
        writer.encode(b"data")


def test_buffer_read():
    reader = get_reader(io.BytesIO(TEST_DATA.encode()))
    chunk = reader.read(10)
    put_reader(reader)
    assert chunk == TEST_DATA[:10].encode()
    assert len(chunk) == 10


def test_buffer_read_all():
    reader = get_reader(io.BytesIO(TEST_DATA.encode()))
    data = reader.read_all()
    put_reader(reader)
    assert data == TEST_DATA.encode()


def test_file_read_and_reset(tmp_path):
    first = write_file(tmp_path / "read.txt", TEST_DATA)
    second = write_file(tmp_path / "read2.txt", TEST_DATA_2)
    with open(first, "rb") as f1, open(second, "rb") as f2:
        reader = get_reader(f1)
        assert reader.read(10) == TEST_DATA[:10].encode()
        reader.reset(f2, set_default_eof_checker())
        assert reader.read(10) == TEST_DATA_2[:10].encode()
        put_reader(reader)


def test_file_read_all(tmp_path):
    path = write_file(tmp_path / "all.txt", TEST_DATA)
    with open(path, "rb") as f:
        reader = get_reader(f)
        data = reader.read_all()
        put_reader(reader)
    assert data.decode().replace("\r\n", "\n") == TEST_DATA


def test_file_read_small(tmp_path):
    path = write_file(tmp_path / "small.txt", TEST_DATA)
    with open(path, "rb") as f:
        reader = get_reader(f)
        assert reader.read(1) == b"{"
        put_reader(reader)


def test_file_read_zero(tmp_path):
    path = write_file(tmp_path / "zero.txt", TEST_DATA)
    with open(path, "rb") as f:
        reader = get_reader(f)
        assert reader.read(0) == b""
        assert reader.read(1) == b"{"
        put_reader(reader)


def test_file_decode_json(tmp_path):
    path = write_file(tmp_path / "decode.txt", TEST_DATA)
    with open(path, "rb") as f:
        reader = get_reader(f, set_json_decoder())
        value = reader.decode()
        put_reader(reader)
    assert value == {"name": "wonk", "age": 20, "email": "wonk@example.com"}


def test_json_decoder_reads_successive_values():
    reader = Reader(io.BytesIO(b'{"a":1}\n[2, 3] 12 34'), set_json_decoder())
    assert reader.decode() == {"a": 1}
    assert reader.decode() == [2, 3]
    assert reader.decode() == 12
    assert reader.decode() == 34
    with pytest.raises(EOFError):
        reader.decode()


def test_json_decoder_number_split_across_reads():
    reader = Reader(ChunkedSource([b"1", b"23", b""]), set_json_decoder())
    assert reader.decode() == 123


def test_json_decoder_invalid_input():
    reader = Reader(io.BytesIO(b"{not json"), set_json_decoder())
    with pytest.raises(ValueError):
        reader.decode()


def test_file_write(tmp_path):
    path = tmp_path / "write.txt"
    with open(path, "wb") as f:
        writer = get_writer(f)
        n = writer.write(TEST_DATA.encode())
        writer.flush()
        put_writer(writer)
    assert n == len(TEST_DATA)
    assert path.read_text() == TEST_DATA


def test_file_write_many(tmp_path):
    path = tmp_path / "many.txt"
    payload = TEST_DATA.encode() * 1000
    with open(path, "wb") as f:
        writer = get_writer(f)
        n = writer.write(payload)
        writer.flush()
        put_writer(writer)
    assert n == len(TEST_DATA) * 1000
    assert path.read_bytes() == payload


def test_file_encode_default_bytes_and_str(tmp_path):
    text = '{"name":"wonk","age":20,"gender":"M"}'
    path = tmp_path / "enc.txt"
    with open(path, "wb") as f:
        writer = get_writer(f, set_default_encoder())
        writer.encode(text.encode())
        writer.flush()
        writer.encode(text)
        writer.flush()
        put_writer(writer)
    assert path.read_text() == text * 2


def test_file_encode_json_struct(tmp_path):
    path = tmp_path / "struct.txt"
    person = Person("wonk", 20, "wonk@example.com", "M", "Yes", 10)
    with open(path, "wb") as f:
        writer = get_writer(f, set_json_encoder())
        writer.encode(person)
        writer.flush()
        put_writer(writer)
    expected = (
        '{"name":"wonk","age":20,"email":"wonk@example.com","gender":"M",'
        '"marriage_status":"Yes","num_children":10}\n'
    )
    assert path.read_text() == expected


def test_default_encoder_rejects_struct(tmp_path):
    path = tmp_path / "fail.txt"
    person = Person("wonk", 20, "wonk@example.com", "M", "Yes", 10)
    with open(path, "wb") as f:
        writer = Writer(f)
        with pytest.raises(TypeError):
            writer.encode(person)
        writer.flush()
    assert path.read_bytes() == b""


def test_json_encoder_escapes_html():
    sink = io.BytesIO()
    Writer(sink, set_json_encoder()).encode_flush("<a&b>")
    assert sink.getvalue() == b'"\\u003ca\\u0026b\\u003e"\n'


def test_writer_buffers_until_flush():
    sink = io.BytesIO()
    writer = Writer(sink)
    writer.write(b"hello")
    assert writer.buffered() == 5
    assert sink.getvalue() == b""
    writer.flush()
    assert writer.buffered() == 0
    assert sink.getvalue() == b"hello"


def test_writer_large_write_goes_straight_to_sink():
    sink = io.BytesIO()
    writer = Writer(sink)
    payload = b"x" * 10000
    assert writer.write(payload) == 10000
    assert writer.buffered() == 0
    assert sink.getvalue() == payload


def test_writer_to_update_sink():
    sink = Collector()
    writer = Writer(sink)
    assert writer.write_flush(b"my message") == 10
    assert sink.data == b"my message"


def test_peek_does_not_consume():
    reader = Reader(io.BytesIO(b"abcdef"))
    assert reader.peek(3) == b"abc"
    assert reader.buffered() == 6
    assert reader.read(3) == b"abc"
    assert reader.read(10) == b"def"


def test_read_until():
    reader = Reader(io.BytesIO(b"a,b,c"))
    assert reader.read_until(b",") == b"a,"
    assert reader.read_until(ord(",")) == b"b,"
    assert reader.read_until(b",") == b"c"


def test_read_all_stops_when_checker_is_satisfied():
    source = ChunkedSource([b"0000017aaa", b"aaaaaaa"])
    reader = Reader(source, set_eof_checker(LengthPrefixChecker()))
    assert reader.read_all() == b"0000017aaaaaaaaaa"


def test_read_all_incomplete_at_eof_raises():
    reader = Reader(io.BytesIO(b"0000020aaa"), set_eof_checker(LengthPrefixChecker()))
    with pytest.raises(ValueError):
        reader.read_all()


def test_read_all_propagates_source_error():
    class Broken:
        def read(self, size):
            raise OSError("broken pipe")

    reader = Reader(Broken())
    with pytest.raises(OSError):
        reader.read_all()


def test_read_writer_request():
    sink = io.BytesIO()
    rw = get_read_writer(io.BytesIO(b"response"), sink)
    reply = rw.request(b"ping")
    put_read_writer(rw)
    assert reply == b"response"
    assert sink.getvalue() == b"ping"


def test_read_writer_request_encoded():
    sink = io.BytesIO()
    rw = ReadWriter(Reader(io.BytesIO(b"ok")), Writer(sink, set_json_encoder()))
    assert rw.request_encoded({"id": 1}) == b"ok"
    assert json.loads(sink.getvalue()) == {"id": 1}


def test_put_read_writer_detaches():
    rw = get_read_writer(io.BytesIO(b"data"), io.BytesIO())
    put_read_writer(rw)
    with pytest.raises(ValueError):
        rw.reader.read(1)
    assert rw.reader.eof_checker is None