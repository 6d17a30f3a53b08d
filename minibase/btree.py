"""B+ tree index stored in a paged file, with a scan over its leaf chain."""

from __future__ import annotations

import enum
import os
import threading
from typing import Iterator

from minibase.ix_node import (
    IX_FILE_HDR_PAGE,
    IX_INIT_NUM_PAGES,
    IX_NO_PAGE,
    FileHeader,
    Iid,
    Node,
    Rid,
)
from minibase.keys import PAGE_SIZE, encode_key


class Operation(enum.Enum):
    """What a leaf is looked up for."""

    FIND = 0
    INSERT = 1
    DELETE = 2


class IndexEntryNotFoundError(LookupError):
    """Raised when an index position holds no entry."""

    def __init__(self, iid: Iid | None = None) -> None:
        message = "index entry not found" if iid is None else f"index entry not found at {iid}"
        super().__init__(message)
        self.iid = iid


class IndexHandle:
    """An open B+ tree index file.

    Pages are read on demand and kept in memory; ``flush`` writes the file
    header and every loaded page back. All public operations hold one
    tree-wide latch, so the handle may be shared between threads.
    """

    def __init__(self, path) -> None:
        self.path = os.fspath(path)
        self._file = open(self.path, "r+b")
        try:
            raw = self._file.read(FileHeader.SIZE)
            if len(raw) < FileHeader.SIZE:
                raise ValueError(f"{self.path} is too short to be an index file")
            self.file_hdr = FileHeader.unpack(raw)
            file_size = self._file.seek(0, os.SEEK_END)
        except BaseException:
            self._file.close()
            raise
        self._next_page_no = max(-(-file_size // PAGE_SIZE), IX_INIT_NUM_PAGES, self.file_hdr.num_pages)
        self._pages: dict[int, bytearray] = {}
        self._latch = threading.RLock()
        self.closed = False

    def __enter__(self) -> IndexHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- storage -----------------------------------------------------------

    def _page(self, page_no: int) -> bytearray:
        page = self._pages.get(page_no)
        if page is None:
            if page_no <= IX_FILE_HDR_PAGE:
                raise ValueError(f"page {page_no} is not a node page")
            self._file.seek(page_no * PAGE_SIZE)
            page = bytearray(self._file.read(PAGE_SIZE).ljust(PAGE_SIZE, b"\0"))
            self._pages[page_no] = page
        return page

    def fetch_node(self, page_no: int) -> Node:
        """Node stored in page ``page_no``."""
        with self._latch:
            return Node(self.file_hdr, page_no, self._page(page_no))

    def create_node(self) -> Node:
        """Allocate a fresh, empty node page."""
        with self._latch:
            self.file_hdr.num_pages += 1
            page_no = self._next_page_no
            self._next_page_no += 1
            node = Node(self.file_hdr, page_no)
            self._pages[page_no] = node.data
            return node

    def _release_node(self, node: Node) -> None:
        self.file_hdr.num_pages -= 1

    def flush(self) -> None:
        """Write the header and all loaded pages to the file."""
        with self._latch:
            self._file.seek(IX_FILE_HDR_PAGE * PAGE_SIZE)
            self._file.write(self.file_hdr.pack())
            for page_no, page in sorted(self._pages.items()):
                self._file.seek(page_no * PAGE_SIZE)
                self._file.write(page)
            self._file.flush()

    def close(self) -> None:
        """Flush and close the file; closing twice is harmless."""
        if self.closed:
            return
        self.flush()
        self._file.close()
        self.closed = True

    def _raw(self, key) -> bytes:
        if isinstance(key, (bytes, bytearray, memoryview)):
            data = bytes(key)
        else:
            data = encode_key(key, self.file_hdr.col_type, self.file_hdr.col_len)
        if len(data) != self.file_hdr.col_len:
            raise ValueError(f"key of {len(data)} bytes, expected {self.file_hdr.col_len}")
        return data

    # -- search ------------------------------------------------------------

    def find_leaf(self, key, operation: Operation = Operation.FIND) -> Node:
        """Leaf that holds, or would hold, ``key``."""
        key = self._raw(key)
        with self._latch:
            node = self.fetch_node(self.file_hdr.root_page)
            while not node.is_leaf:
                node = self.fetch_node(node.internal_lookup(key))
            return node

    def get_value(self, key) -> list[Rid]:
        """Rids stored under ``key``: one, or none if the key is absent."""
        key = self._raw(key)
        with self._latch:
            rid = self.find_leaf(key, Operation.FIND).leaf_lookup(key)
            return [] if rid is None else [rid]

    # -- insert ------------------------------------------------------------

    def insert_entry(self, key, rid: Rid) -> bool:
        """Insert ``key`` -> ``rid``; return False if the key is already present."""
        key = self._raw(key)
        with self._latch:
            leaf = self.find_leaf(key, Operation.INSERT)
            before = leaf.size
            if leaf.insert(key, rid) == before:
                return False
            self.maintain_parent(leaf)
            if leaf.size >= leaf.max_size:
                new_leaf = self.split(leaf)
                if self.file_hdr.last_leaf == leaf.page_no:
                    self.file_hdr.last_leaf = new_leaf.page_no
                self.insert_into_parent(leaf, new_leaf.get_key(0), new_leaf)
            return True

    def split(self, node: Node) -> Node:
        """Move the upper half of ``node`` into a new right sibling and return it."""
        with self._latch:
            new_node = self.create_node()
            new_node.is_leaf = node.is_leaf
            new_node.parent = node.parent
            size = node.size
            mid = size // 2
            moved = range(mid, size)
            new_node.insert_pairs(0, [node.get_key(i) for i in moved], [node.get_rid(i) for i in moved])
            node.size = mid
            if node.is_leaf:
                new_node.prev_leaf = node.page_no
                new_node.next_leaf = node.next_leaf
                self.fetch_node(node.next_leaf).prev_leaf = new_node.page_no
                node.next_leaf = new_node.page_no
            else:
                for index in range(new_node.size):
                    self.maintain_child(new_node, index)
            return new_node

    def insert_into_parent(self, old_node: Node, key, new_node: Node) -> None:
        """Link ``new_node`` into the parent of ``old_node`` under ``key``, splitting upward as needed."""
        key = self._raw(key)
        with self._latch:
            if old_node.is_root:
                root = self.create_node()
                root.is_leaf = False
                root.parent = IX_NO_PAGE
                root.insert_pair(0, old_node.get_key(0), Rid(old_node.page_no, -1))
                root.insert_pair(1, key, Rid(new_node.page_no, -1))
                old_node.parent = root.page_no
                new_node.parent = root.page_no
                self.file_hdr.root_page = root.page_no
                return
            parent = self.fetch_node(old_node.parent)
            rank = parent.find_child(old_node)
            parent.insert_pair(rank + 1, key, Rid(new_node.page_no, -1))
            new_node.parent = parent.page_no
            if parent.size >= parent.max_size:
                new_parent = self.split(parent)
                self.insert_into_parent(parent, new_parent.get_key(0), new_parent)

    # -- delete ------------------------------------------------------------

    def delete_entry(self, key) -> bool:
        """Remove ``key``; return False if it was not present."""
        key = self._raw(key)
        with self._latch:
            leaf = self.find_leaf(key, Operation.DELETE)
            before = leaf.size
            if leaf.remove(key) == before:
                return False
            self.maintain_parent(leaf)
            self.coalesce_or_redistribute(leaf)
            return True

    def coalesce_or_redistribute(self, node: Node) -> bool:
        """Rebalance ``node`` after a removal; return whether ``node`` was deleted."""
        with self._latch:
            if node.is_root:
                return self.adjust_root(node)
            if node.size >= node.min_size:
                return False
            parent = self.fetch_node(node.parent)
            index = parent.find_child(node)
            neighbor = self.fetch_node(parent.value_at(index - 1 if index > 0 else 1))
            if node.size + neighbor.size >= 2 * node.min_size:
                self.redistribute(neighbor, node, parent, index)
                return False
            self.coalesce(neighbor, node, parent, index)
            return True

    def adjust_root(self, old_root: Node) -> bool:
        """Collapse an inner root with one child; return whether the old root was deleted.

        An empty leaf root is kept so that the tree stays usable.
        """
        with self._latch:
            if not old_root.is_leaf and old_root.size == 1:
                child = self.fetch_node(old_root.remove_and_return_only_child())
                child.parent = IX_NO_PAGE
                self.file_hdr.root_page = child.page_no
                self._release_node(old_root)
                return True
            return False

    def redistribute(self, neighbor: Node, node: Node, parent: Node, index: int) -> None:
        """Move one pair from ``neighbor`` into ``node``.

        With ``index == 0`` the neighbor is the right sibling and gives its
        first pair; otherwise it is the left sibling and gives its last.
        """
        with self._latch:
            if index == 0:
                node.insert_pair(node.size, neighbor.get_key(0), neighbor.get_rid(0))
                neighbor.erase_pair(0)
                self.maintain_child(node, node.size - 1)
                self.maintain_parent(neighbor)
            else:
                last = neighbor.size - 1
                node.insert_pair(0, neighbor.get_key(last), neighbor.get_rid(last))
                neighbor.erase_pair(last)
                self.maintain_child(node, 0)
                self.maintain_parent(node)

    def coalesce(self, neighbor: Node, node: Node, parent: Node, index: int) -> bool:
        """Merge the right one of ``node`` and ``neighbor`` into the left one.

        Returns whether the parent was deleted by the rebalancing that follows.
        """
        with self._latch:
            if index == 0:
                neighbor, node = node, neighbor
            start = neighbor.size
            pairs = range(node.size)
            neighbor.insert_pairs(start, [node.get_key(i) for i in pairs], [node.get_rid(i) for i in pairs])
            for child_idx in range(start, neighbor.size):
                self.maintain_child(neighbor, child_idx)
            if node.is_leaf:
                if self.file_hdr.last_leaf == node.page_no:
                    self.file_hdr.last_leaf = neighbor.page_no
                self.erase_leaf(node)
            self._release_node(node)
            parent.erase_pair(parent.find_child(node))
            self.maintain_parent(neighbor)
            return self.coalesce_or_redistribute(parent)

    # -- structure upkeep --------------------------------------------------

    def maintain_parent(self, node: Node) -> None:
        """Copy each node's first key into its parent, walking up while it changes."""
        with self._latch:
            curr = node
            while curr.parent != IX_NO_PAGE and curr.size > 0:
                parent = self.fetch_node(curr.parent)
                rank = parent.find_child(curr)
                first = curr.get_key(0)
                if parent.get_key(rank) == first:
                    break
                parent.set_key(rank, first)
                curr = parent

    def erase_leaf(self, leaf: Node) -> None:
        """Unlink ``leaf`` from the leaf chain."""
        if not leaf.is_leaf:
            raise ValueError(f"page {leaf.page_no} is not a leaf")
        with self._latch:
            self.fetch_node(leaf.prev_leaf).next_leaf = leaf.next_leaf
            self.fetch_node(leaf.next_leaf).prev_leaf = leaf.prev_leaf

    def maintain_child(self, node: Node, child_idx: int) -> None:
        """Point the parent of ``node``'s child in ``child_idx`` back at ``node``."""
        if node.is_leaf:
            return
        with self._latch:
            self.fetch_node(node.value_at(child_idx)).parent = node.page_no

    # -- positions ---------------------------------------------------------

    def _position(self, leaf: Node, slot: int) -> Iid:
        if slot >= leaf.size and leaf.page_no != self.file_hdr.last_leaf:
            return Iid(leaf.next_leaf, 0)
        return Iid(leaf.page_no, slot)

    def lower_bound(self, key) -> Iid:
        """Position of the first entry whose key is >= ``key``."""
        key = self._raw(key)
        with self._latch:
            leaf = self.find_leaf(key, Operation.FIND)
            return self._position(leaf, leaf.lower_bound(key))

    def upper_bound(self, key) -> Iid:
        """Position of the first entry whose key is > ``key``."""
        key = self._raw(key)
        with self._latch:
            leaf = self.find_leaf(key, Operation.FIND)
            slot = leaf.lower_bound(key)
            if slot < leaf.size and leaf.get_key(slot) == key:
                slot += 1
            return self._position(leaf, slot)

    def leaf_begin(self) -> Iid:
        """Position of the first entry of the first leaf."""
        return Iid(self.file_hdr.first_leaf, 0)

    def leaf_end(self) -> Iid:
        """Position just past the last entry of the last leaf."""
        with self._latch:
            last = self.file_hdr.last_leaf
            return Iid(last, self.fetch_node(last).size)

    def get_rid(self, iid: Iid) -> Rid:
        """Rid stored at ``iid``."""
        with self._latch:
            node = self.fetch_node(iid.page_no)
            if not 0 <= iid.slot_no < node.size:
                raise IndexEntryNotFoundError(iid)
            return node.get_rid(iid.slot_no)


class IndexScan:
    """Walks the leaf chain from ``lower`` up to, not including, ``upper``."""

    def __init__(self, handle: IndexHandle, lower: Iid, upper: Iid) -> None:
        self._handle = handle
        self._iid = lower
        self._end = upper

    @property
    def iid(self) -> Iid:
        """Current position."""
        return self._iid

    def is_end(self) -> bool:
        """Whether the scan has reached its upper position."""
        return self._iid == self._end

    def next(self) -> None:
        """Advance to the next entry, moving on to the next leaf when one is used up."""
        if self.is_end():
            raise IndexError("scan is already at its end")
        node = self._handle.fetch_node(self._iid.page_no)
        if not node.is_leaf:
            raise ValueError(f"scan position {self._iid} is not in a leaf")
        if self._iid.slot_no >= node.size:
            raise IndexEntryNotFoundError(self._iid)
        slot = self._iid.slot_no + 1
        if self._iid.page_no != self._handle.file_hdr.last_leaf and slot == node.size:
            self._iid = Iid(node.next_leaf, 0)
        else:
            self._iid = Iid(self._iid.page_no, slot)

    def rid(self) -> Rid:
        """Rid at the current position."""
        return self._handle.get_rid(self._iid)

    def __iter__(self) -> Iterator[Rid]:
        while not self.is_end():
            yield self.rid()
            self.next()