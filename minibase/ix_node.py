"""On-page layout of B+ tree index nodes and the search and edit operations inside one node."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Iterable, Sequence

from minibase.keys import INVALID_PAGE_ID, PAGE_SIZE, ColType, compare_keys, decode_key

IX_NO_PAGE = -1
IX_FILE_HDR_PAGE = 0
IX_LEAF_HEADER_PAGE = 1
IX_INIT_ROOT_PAGE = 2
IX_INIT_NUM_PAGES = 3
IX_MAX_COL_LEN = 512

_RID = struct.Struct("<ii")
RID_SIZE = _RID.size


@dataclass(frozen=True)
class Rid:
    """Location of a record: page number and slot number."""

    page_no: int
    slot_no: int


@dataclass(frozen=True)
class Iid:
    """Location of an entry inside the index: leaf page number and slot number."""

    page_no: int
    slot_no: int


@dataclass
class FileHeader:
    """Header stored in the first page of an index file."""

    first_free_page_no: int
    num_pages: int
    root_page: int
    col_type: ColType
    col_len: int
    btree_order: int
    keys_size: int
    first_leaf: int
    last_leaf: int

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<9i")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        """Serialise the header to its on-disk bytes."""
        return self._STRUCT.pack(
            self.first_free_page_no,
            self.num_pages,
            self.root_page,
            int(self.col_type),
            self.col_len,
            self.btree_order,
            self.keys_size,
            self.first_leaf,
            self.last_leaf,
        )

    @classmethod
    def unpack(cls, data) -> FileHeader:
        """Read a header from the start of ``data``."""
        fields = list(cls._STRUCT.unpack_from(data))
        fields[3] = ColType(fields[3])
        return cls(*fields)


@dataclass
class PageHeader:
    """Header at the start of every node page."""

    next_free_page_no: int
    parent: int
    num_key: int
    is_leaf: bool
    prev_leaf: int
    next_leaf: int

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<iii?3xii")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        """Serialise the header to its on-disk bytes."""
        return self._STRUCT.pack(
            self.next_free_page_no,
            self.parent,
            self.num_key,
            bool(self.is_leaf),
            self.prev_leaf,
            self.next_leaf,
        )

    @classmethod
    def unpack(cls, data) -> PageHeader:
        """Read a header from the start of ``data``."""
        return cls(*cls._STRUCT.unpack_from(data))


_I32 = struct.Struct("<i")
_BOOL = struct.Struct("<?")
_OFF_NEXT_FREE = 0
_OFF_PARENT = 4
_OFF_NUM_KEY = 8
_OFF_IS_LEAF = 12
_OFF_PREV_LEAF = 16
_OFF_NEXT_LEAF = 20


def _int_field(offset: int, doc: str) -> property:
    def fget(self: Node) -> int:
        return _I32.unpack_from(self.data, offset)[0]

    def fset(self: Node, value: int) -> None:
        _I32.pack_into(self.data, offset, value)

    return property(fget, fset, doc=doc)


class Node:
    """A B+ tree node laid out in a page buffer.

    The page holds a ``PageHeader``, then ``keys_size`` bytes of fixed-width
    keys, then the rids. In an inner node the rid's ``page_no`` is the child.
    """

    def __init__(self, file_hdr: FileHeader, page_no: int, data=None) -> None:
        self.file_hdr = file_hdr
        self.page_no = page_no
        fresh = data is None
        if fresh:
            data = bytearray(PAGE_SIZE)
        elif not isinstance(data, bytearray):
            data = bytearray(data)
        needed = PageHeader.SIZE + file_hdr.keys_size + self.capacity * RID_SIZE
        if len(data) < needed:
            raise ValueError(f"page of {len(data)} bytes cannot hold a node needing {needed}")
        self.data = data
        if fresh:
            self.header = PageHeader(IX_NO_PAGE, IX_NO_PAGE, 0, False, IX_NO_PAGE, IX_NO_PAGE)

    next_free_page_no = _int_field(_OFF_NEXT_FREE, "Next page in the free list.")
    parent = _int_field(_OFF_PARENT, "Page number of the parent node.")
    size = _int_field(_OFF_NUM_KEY, "Number of key/rid pairs stored.")
    prev_leaf = _int_field(_OFF_PREV_LEAF, "Previous leaf in the leaf chain.")
    next_leaf = _int_field(_OFF_NEXT_LEAF, "Next leaf in the leaf chain.")

    @property
    def is_leaf(self) -> bool:
        """Whether this node is a leaf."""
        return _BOOL.unpack_from(self.data, _OFF_IS_LEAF)[0]

    @is_leaf.setter
    def is_leaf(self, value: bool) -> None:
        _BOOL.pack_into(self.data, _OFF_IS_LEAF, bool(value))

    @property
    def header(self) -> PageHeader:
        """The page header as a value."""
        return PageHeader.unpack(self.data)

    @header.setter
    def header(self, hdr: PageHeader) -> None:
        self.data[: PageHeader.SIZE] = hdr.pack()

    @property
    def is_root(self) -> bool:
        return self.parent == INVALID_PAGE_ID

    @property
    def capacity(self) -> int:
        """Number of key slots the page has room for."""
        return self.file_hdr.keys_size // self.file_hdr.col_len

    @property
    def max_size(self) -> int:
        return self.file_hdr.btree_order + 1

    @property
    def min_size(self) -> int:
        return self.max_size // 2

    def __len__(self) -> int:
        return self.size

    def _key_offset(self, index: int) -> int:
        return PageHeader.SIZE + index * self.file_hdr.col_len

    def _rid_offset(self, index: int) -> int:
        return PageHeader.SIZE + self.file_hdr.keys_size + index * RID_SIZE

    def _check_slot(self, index: int) -> None:
        if not 0 <= index < self.capacity:
            raise IndexError(f"slot {index} out of range for a node of {self.capacity} slots")

    def _key_bytes(self, key) -> bytes:
        key = bytes(key)
        if len(key) != self.file_hdr.col_len:
            raise ValueError(f"key of {len(key)} bytes, expected {self.file_hdr.col_len}")
        return key

    def _compare(self, a: bytes, b: bytes) -> int:
        return compare_keys(a, b, self.file_hdr.col_type, self.file_hdr.col_len)

    def get_key(self, index: int) -> bytes:
        """Raw bytes of the key in slot ``index``."""
        self._check_slot(index)
        start = self._key_offset(index)
        return bytes(self.data[start : start + self.file_hdr.col_len])

    def set_key(self, index: int, key) -> None:
        """Overwrite the key in slot ``index``."""
        self._check_slot(index)
        key = self._key_bytes(key)
        start = self._key_offset(index)
        self.data[start : start + len(key)] = key

    def get_rid(self, index: int) -> Rid:
        """Rid stored in slot ``index``."""
        self._check_slot(index)
        return Rid(*_RID.unpack_from(self.data, self._rid_offset(index)))

    def set_rid(self, index: int, rid: Rid) -> None:
        """Overwrite the rid in slot ``index``."""
        self._check_slot(index)
        _RID.pack_into(self.data, self._rid_offset(index), rid.page_no, rid.slot_no)

    def key_at(self, index: int):
        """Decoded value of the key in slot ``index``."""
        return decode_key(self.get_key(index), self.file_hdr.col_type)

    def value_at(self, index: int) -> int:
        """Child page number stored in slot ``index``."""
        return self.get_rid(index).page_no

    def lower_bound(self, target) -> int:
        """Index of the first key >= ``target``; ``size`` if there is none."""
        target = self._key_bytes(target)
        lo, hi = 0, self.size
        while lo < hi:
            mid = (lo + hi) // 2
            if self._compare(self.get_key(mid), target) < 0:
                lo = mid + 1
            else:
                hi = mid
        return lo

    def upper_bound(self, target) -> int:
        """Index of the first key > ``target``, searching from slot 1; ``size`` if there is none."""
        target = self._key_bytes(target)
        size = self.size
        lo, hi = min(1, size), size
        while lo < hi:
            mid = (lo + hi) // 2
            if self._compare(target, self.get_key(mid)) < 0:
                hi = mid
            else:
                lo = mid + 1
        return lo

    def leaf_lookup(self, key) -> Rid | None:
        """Rid stored under ``key`` in this leaf, or None."""
        key = self._key_bytes(key)
        pos = self.lower_bound(key)
        if pos < self.size and self._compare(self.get_key(pos), key) == 0:
            return self.get_rid(pos)
        return None

    def internal_lookup(self, key) -> int:
        """Page number of the child subtree that may hold ``key``."""
        return self.value_at(self.upper_bound(key) - 1)

    def insert_pairs(self, pos: int, keys: Sequence, rids: Iterable[Rid]) -> None:
        """Insert consecutive key/rid pairs so that the first lands at ``pos``."""
        keys = [self._key_bytes(k) for k in keys]
        rids = list(rids)
        if len(keys) != len(rids):
            raise ValueError(f"{len(keys)} keys but {len(rids)} rids")
        size = self.size
        if not 0 <= pos <= size:
            raise IndexError(f"insert position {pos} outside 0..{size}")
        n = len(keys)
        if size + n > self.capacity:
            raise ValueError(f"node has room for {self.capacity} pairs, not {size + n}")
        ko, ro, data = self._key_offset, self._rid_offset, self.data
        data[ko(pos + n) : ko(size + n)] = data[ko(pos) : ko(size)]
        data[ko(pos) : ko(pos + n)] = b"".join(keys)
        data[ro(pos + n) : ro(size + n)] = data[ro(pos) : ro(size)]
        data[ro(pos) : ro(pos + n)] = b"".join(_RID.pack(r.page_no, r.slot_no) for r in rids)
        self.size = size + n

    def insert_pair(self, pos: int, key, rid: Rid) -> None:
        """Insert a single key/rid pair at ``pos``."""
        self.insert_pairs(pos, [key], [rid])

    def insert(self, key, rid: Rid) -> int:
        """Insert in key order unless the key is present; return the new size."""
        key = self._key_bytes(key)
        pos = self.lower_bound(key)
        if pos < self.size and self._compare(self.get_key(pos), key) == 0:
            return self.size
        self.insert_pair(pos, key, rid)
        return self.size

    def erase_pair(self, pos: int) -> None:
        """Remove the pair at ``pos``."""
        size = self.size
        if not 0 <= pos < size:
            raise IndexError(f"erase position {pos} outside 0..{size - 1}")
        ko, ro, data = self._key_offset, self._rid_offset, self.data
        data[ko(pos) : ko(size - 1)] = data[ko(pos + 1) : ko(size)]
        data[ro(pos) : ro(size - 1)] = data[ro(pos + 1) : ro(size)]
        self.size = size - 1

    def remove(self, key) -> int:
        """Remove the pair holding ``key`` if present; return the new size."""
        key = self._key_bytes(key)
        pos = self.lower_bound(key)
        if pos < self.size and self._compare(self.get_key(pos), key) == 0:
            self.erase_pair(pos)
        return self.size

    def find_child(self, child: Node) -> int:
        """Slot of ``child`` among this node's children."""
        for index in range(self.size):
            if self.value_at(index) == child.page_no:
                return index
        raise ValueError(f"page {child.page_no} is not a child of page {self.page_no}")

    def remove_and_return_only_child(self) -> int:
        """Drop the single remaining pair of an inner node and return its child page."""
        if self.size != 1:
            raise ValueError(f"node holds {self.size} pairs, expected exactly one")
        child = self.value_at(0)
        self.erase_pair(0)
        return child