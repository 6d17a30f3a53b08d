# minibase

minibase holds the core pieces of a small relational database, in plain Python with no runtime dependencies.

- `minibase.keys`: the `ColType` enum (`INT`, `FLOAT`, `STRING`), storage constants such as `PAGE_SIZE`, and `encode_key`, `decode_key` and `compare_keys` for fixed-width raw column values.
- `minibase.ix_node`: `Rid`, `Iid`, the `FileHeader` and `PageHeader` records with `pack`/`unpack`, and `Node`, which is one B+ tree node laid out in a page buffer. A node supports binary-search `lower_bound`/`upper_bound`, `leaf_lookup`, `internal_lookup`, `insert`, `remove` and pair-level edits.
- `minibase.btree`: `IndexHandle`, a B+ tree over an index file, and `IndexScan`, which walks the leaf chain. `IndexHandle` provides `insert_entry`, `delete_entry`, `get_value`, `lower_bound`, `upper_bound`, `leaf_begin`, `leaf_end`, `get_rid`, `flush` and `close`. It also works as a context manager.
- `minibase.ix_manager`: `IndexManager`, which creates, opens, closes and destroys index files named `<table>.<index_no>.idx` in one directory. It raises `InvalidColLengthError` for a column that cannot be indexed.
- `minibase.conditions`: `TabCol`, `ColMeta`, `Value`, `CompOp`, `Condition` and `SetClause`, and the helpers `find_column`, `infer_column`, `pop_conds`, `orient_conditions`, `record_to_dict`, `evaluate_condition` and `evaluate_conditions`, which work on raw record bytes.
- `minibase.rwlatch`: `ReaderWriterLatch`. Once a writer is waiting, new readers wait behind it. The latch has `r_lock`/`r_unlock`, `w_lock`/`w_unlock`, and the context managers `read_locked()` and `write_locked()`.
- `minibase.logger`: `LogLevel`, `format_log_header` and `emit`. `emit` writes lines of the form `YYYY-mm-dd HH:MM:SS [file:line:func] LEVEL - message` when the level is at or above the threshold (`DEBUG`).
- `minibase.client`: an interactive SQL client, installed as the `minibase-client` command.

## Installing

```sh
pip install .
```

## Using the B+ tree index

```python
from minibase.btree import IndexScan
from minibase.ix_manager import IndexManager
from minibase.ix_node import Rid
from minibase.keys import ColType

manager = IndexManager(".")
manager.create_index("table1", 0, ColType.INT, 4)

with manager.open_index("table1", 0) as index:
    for k in range(1, 11):
        index.insert_entry(k, Rid(0, k))      # plain values are encoded for the column

    print(index.get_value(5))                 # [Rid(page_no=0, slot_no=5)]
    index.delete_entry(3)

    for rid in IndexScan(index, index.leaf_begin(), index.leaf_end()):
        print(rid)
```

Keys may be given as Python values or as raw bytes of the column's length. Each key holds one entry, so `insert_entry` returns `False` for a key that is already present. `delete_entry` returns `False` for a key that is absent.

The handle reads pages on demand and keeps them in memory. `flush()` or `close()` writes the header and the loaded pages back to the file. A single tree-wide latch guards every operation, so one handle can be shared between threads.

## Evaluating conditions

```python
from minibase.conditions import ColMeta, CompOp, Condition, TabCol, Value, evaluate_condition
from minibase.keys import ColType, encode_key

cols = [ColMeta("t", "id", ColType.INT, 4, 0), ColMeta("t", "name", ColType.STRING, 8, 4)]
record = encode_key(7, ColType.INT, 4) + encode_key("bob", ColType.STRING, 8)
cond = Condition(TabCol("t", "id"), CompOp.GT, rhs_val=Value.of_int(5))
print(evaluate_condition(cols, cond, record))   # True
```

## Using the client

Start a server that listens on port 8765, then run:

```sh
minibase-client                  # connect to 127.0.0.1:8765
minibase-client -h dbhost -p 9000
minibase-client -s /tmp/db.sock  # connect through a Unix socket
```

At the `Rucbase> ` prompt, type a command. The client sends each non-empty line to the server, followed by a NUL byte, and prints the reply up to the first NUL byte. Enter `exit`, `exit;`, `bye` or `bye;` to leave, or press end-of-file.

## What the package does not do

- The package has no SQL server and no SQL parser or executor. The client needs a separate server to talk to.
- It has no table or record storage, no catalog and no transactions. `minibase.conditions` evaluates conditions on record bytes that you supply.
- It has no buffer pool with eviction. An open index keeps every page it has touched in memory until it is closed.
- Deleted index pages are not reused. Deleting the last key leaves an empty leaf root in place.

## Running the tests

```sh
pip install .[test]
pytest
```