# sikit

A small toolkit of building blocks:

- **Streams** (`sikit.streams`): a buffered `Reader`, `Writer` and
  `ReadWriter`. Encoders (`DefaultEncoder`, `JsonEncoder`), decoders
  (`DefaultDecoder`, `JsonDecoder`) and end-of-stream checkers can be
  swapped in. Options are `set_json_encoder`, `set_default_encoder`,
  `set_json_decoder`, `set_eof_checker` and `set_default_eof_checker`. The
  pooled helpers are `get_reader` / `put_reader`, `get_writer` /
  `put_writer` and `get_read_writer` / `put_read_writer`. A `Reader` reads
  from anything with `read` or `recv`. A `Writer` writes to anything with
  `write`, `sendall` or `update`, so an HMAC object can be a sink.
- **End of stream** (`sikit.eof`): the abstract `EofChecker` decides when
  `Reader.read_all` has received everything. `DefaultEofChecker` stops at
  the end of the stream and re-raises any other error.
- **Row scanning** (`sikit.rowscan`): `RowScanner` turns the rows of an
  executed DB-API cursor into dicts (`scan_maps`), dataclass instances
  (`scan_structs`, `scan_struct`) or a single value (`scan_primary`).
  A column matches a field through the field's metadata under the tag key
  (default `"si"`, changed with `with_tag_key`), or else through
  `to_snake(field_name)`. Nested dataclass fields are filled in as well.
  `with_sql_column_type` forces a column's values to a `SqlColType`.
  `scan_struct` and `scan_primary` raise `NoRowsError` when there is no
  row.
- **Column types** (`sikit.sqltypes`): `SqlColType`, `SqlColumn` and
  `converter_for`, which returns the converter for a column type.
- **Workers** (`sikit.workers`): `WorkerPool` runs `WorkerJob`s on a fixed
  number of threads that take them from a bounded queue. It can also collect
  results and errors.
- **Hashing** (`sikit.hashing`): `hmac_sha256` and `hmac_sha256_hex`, plus
  `get_hmac_sha256_hash` / `put_hmac_sha256_hash`, which keep a pool of
  reusable hashers for each secret.
- **Conversion** (`sikit.convert`): `decode_any(value, target)` serializes a
  value to JSON and decodes it as `target`, such as a dataclass or a generic
  alias.

## Installation

```
pip install .
```

## Examples

Writing through a pooled buffered writer:

```python
import io
from sikit.streams import get_writer, put_writer

sink = io.BytesIO()
writer = get_writer(sink)
writer.encode_flush("test message")
put_writer(writer)
assert sink.getvalue() == b"test message"
```

Scanning query results into dataclasses with `sqlite3`:

```python
import sqlite3
from dataclasses import dataclass, field
from sikit.rowscan import RowScanner, with_tag_key

@dataclass
class Student:
    id: int = field(default=0, metadata={"json": "id"})
    name: str = field(default="", metadata={"json": "name"})

conn = sqlite3.connect(":memory:")
cursor = conn.execute("select 1 as id, 'wonk' as name")
students = RowScanner(with_tag_key("json")).scan_structs(cursor, Student)
assert students == [Student(id=1, name="wonk")]
```

Computing an HMAC:

```python
from sikit.hashing import hmac_sha256_hex

assert hmac_sha256_hex(b"my message", b"1234") == (
    "34420f26f2612cb4e0a812c5e39f656390e4f6c91699d44303425e37bb979d0a"
)
```

Running jobs on a worker pool:

```python
from sikit.workers import WorkerJob, WorkerPool

class Job(WorkerJob):
    def execute(self):
        return "done"

pool = WorkerPool(5, 128)
pool.start()
for _ in range(10):
    pool.queue(Job())
pool.finish()
pool.wait()
```

## What it does not do

- The package opens no database connections and has no connection or
  transaction wrapper. You run queries with your own DB-API connection and
  give the executed cursor to `RowScanner`.
- The package has no TCP client or connection pool. A `Reader`, `Writer` or
  `ReadWriter` can sit on top of a socket you open yourself, but the package
  sets no timeouts and keeps no pool of connections.

## Running the tests

```
pip install .[test]
pytest
```