"""Shared J3D table helpers: name tables, offset-derived sizes, dedup tables."""

import struct


def hash_name(name):
    """J3D name hash: h = h * 3 + c, truncated to 16 bits."""
    value = 0
    for ch in name:
        value = (value * 3 + ord(ch)) & 0xFFFF
    return value


def read_string_table(data, offset):
    """Parse a J3D name table.

    Format:
        2 bytes: name count
        2 bytes: 0xFFFF
        count * 4 bytes: (hash:u16, offset:u16), offset relative to table start
        NUL-terminated names

    Args:
        data: bytes/memoryview of the whole file
        offset: absolute offset of the table

    Returns:
        list of str
    """
    count = struct.unpack_from(">H", data, offset)[0]
    names = []
    for i in range(count):
        name_offset = struct.unpack_from(">H", data, offset + 6 + i * 4)[0]
        start = offset + name_offset
        end = bytes(data[start:start + 0x10000]).find(b"\0")
        raw = bytes(data[start:start + end]) if end >= 0 else bytes(data[start:])
        names.append(raw.decode("shift_jis", errors="replace"))
    return names


def build_string_table(names):
    """Serialize a J3D name table (inverse of read_string_table)."""
    encoded = [name.encode("shift_jis") + b"\0" for name in names]
    buf = bytearray(struct.pack(">HH", len(names), 0xFFFF))
    cursor = 4 + 4 * len(names)
    for name, raw in zip(names, encoded):
        buf += struct.pack(">HH", hash_name(name), cursor)
        cursor += len(raw)
    for raw in encoded:
        buf += raw
    return bytes(buf)


def compute_table_sizes(offsets, section_size):
    """Byte size of each sub-table from its offset.

    A zero offset means the table is absent (size 0). Otherwise the table
    runs to the next nonzero offset in header order, or to the end of the
    section for the last one.
    """
    sizes = []
    for i, start in enumerate(offsets):
        if start == 0:
            sizes.append(0)
            continue
        end = section_size
        for later in offsets[i + 1:]:
            if later != 0:
                end = later
                break
        sizes.append(end - start)
    return sizes


class IndexedTable:
    """Insertion-ordered list with structural-equality find-or-insert.

    Values must be hashable; equal values share one slot.
    """

    __slots__ = ('items', '_lookup')

    def __init__(self, seed=()):
        self.items = []
        self._lookup = {}
        for value in seed:
            self.add(value)

    def add(self, value):
        """Return the index of value, appending it on first use."""
        index = self._lookup.get(value)
        if index is None:
            index = len(self.items)
            self.items.append(value)
            self._lookup[value] = index
        return index

    def __len__(self):
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __repr__(self):
        return f"IndexedTable({len(self.items)} items)"
