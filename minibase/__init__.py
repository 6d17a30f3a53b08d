"""Small database core: key encoding, a file-backed B+ tree index, condition evaluation, a latch, a logger and a SQL client."""

__version__ = "0.1.0"