"""Creation, opening and removal of index files in a directory."""

from __future__ import annotations

import os
from pathlib import Path

from minibase.btree import IndexHandle
from minibase.ix_node import (
    IX_INIT_NUM_PAGES,
    IX_INIT_ROOT_PAGE,
    IX_LEAF_HEADER_PAGE,
    IX_MAX_COL_LEN,
    IX_NO_PAGE,
    RID_SIZE,
    FileHeader,
    PageHeader,
)
from minibase.keys import PAGE_SIZE, ColType


class InvalidColLengthError(ValueError):
    """Raised when a column is too long (or not long enough) to be indexed."""

    def __init__(self, col_len: int) -> None:
        super().__init__(f"invalid column length: {col_len}")
        self.col_len = col_len


class IndexManager:
    """Index files named ``<table>.<index_no>.idx`` inside one directory."""

    def __init__(self, directory=".") -> None:
        self.directory = Path(directory)

    def get_index_name(self, filename: str, index_no: int) -> str:
        """File name of index ``index_no`` of ``filename``."""
        return f"{filename}.{index_no}.idx"

    def _path(self, filename: str, index_no: int) -> Path:
        return self.directory / self.get_index_name(filename, index_no)

    def exists(self, filename: str, index_no: int) -> bool:
        """Whether the index file exists."""
        return self._path(filename, index_no).is_file()

    def create_index(self, filename: str, index_no: int, col_type, col_len: int) -> None:
        """Create an empty index file: header, leaf-list header and an empty root leaf."""
        if index_no < 0:
            raise ValueError(f"index number must not be negative, got {index_no}")
        col_type = ColType(col_type)
        if not 0 < col_len <= IX_MAX_COL_LEN:
            raise InvalidColLengthError(col_len)
        # One slot beyond the order is kept free for inserting before a split.
        btree_order = (PAGE_SIZE - PageHeader.SIZE) // (col_len + RID_SIZE) - 1
        if btree_order <= 2:
            raise InvalidColLengthError(col_len)
        header = FileHeader(
            first_free_page_no=IX_NO_PAGE,
            num_pages=IX_INIT_NUM_PAGES,
            root_page=IX_INIT_ROOT_PAGE,
            col_type=col_type,
            col_len=col_len,
            btree_order=btree_order,
            keys_size=(btree_order + 1) * col_len,
            first_leaf=IX_INIT_ROOT_PAGE,
            last_leaf=IX_INIT_ROOT_PAGE,
        )
        leaf_list = PageHeader(IX_NO_PAGE, IX_NO_PAGE, 0, True, IX_INIT_ROOT_PAGE, IX_INIT_ROOT_PAGE)
        root = PageHeader(IX_NO_PAGE, IX_NO_PAGE, 0, True, IX_LEAF_HEADER_PAGE, IX_LEAF_HEADER_PAGE)
        with open(self._path(filename, index_no), "xb") as file:
            for block in (header.pack(), leaf_list.pack(), root.pack()):
                file.write(block.ljust(PAGE_SIZE, b"\0"))

    def destroy_index(self, filename: str, index_no: int) -> None:
        """Delete the index file."""
        os.remove(self._path(filename, index_no))

    def open_index(self, filename: str, index_no: int) -> IndexHandle:
        """Open the index file and return a handle on it."""
        return IndexHandle(self._path(filename, index_no))

    def close_index(self, handle: IndexHandle) -> None:
        """Write the handle's header and pages back and close it."""
        handle.close()