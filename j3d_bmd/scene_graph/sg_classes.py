"""Scene graph (INF1) for J3D models.

INF1 stores the hierarchy as a flat pre-order token stream of
(type:u16, index:u16) pairs:

    Joint 0, Open, Material 0, Open, Shape 0, Close, Close, End

Joint/Material/Shape tokens name an entry in JNT1/MAT3/SHP1. Open and
Close bracket the children of the previous node. The tree is kept as an
arena: nodes live in SceneGraph.nodes and refer to each other by handle.
"""

import struct
import logging

from ..bmd_format.bmd_constants import (
    MAGIC_INF1, NODE_END, NODE_OPEN, NODE_CLOSE,
    NODE_JOINT, NODE_MATERIAL, NODE_SHAPE, NODE_TYPE_NAMES,
)
from ..bmd_format.bmd_header import read_section_header, begin_section, finish_section

_log = logging.getLogger("bmd_scene")

INF1_HEADER_SIZE = 0x18


class SceneNode:
    """One Joint/Material/Shape entry in the hierarchy."""

    __slots__ = ('handle', 'node_type', 'index', 'parent', 'children')

    def __init__(self, handle, node_type, index, parent=-1):
        self.handle = handle
        self.node_type = node_type
        self.index = index
        self.parent = parent    # handle, -1 for the root
        self.children = []      # handles, in file order

    @property
    def type_name(self):
        return NODE_TYPE_NAMES.get(self.node_type, f"0x{self.node_type:02x}")

    def __repr__(self):
        return f"SceneNode({self.type_name} {self.index}, children={len(self.children)})"


class SceneGraph:
    """Hierarchy rebuilt from INF1, plus the header fields around it."""

    def __init__(self):
        self.nodes = []
        self.root = -1
        self.load_flags = 0
        # Header counts as found on disk; recomputed by the writer
        self.packet_count = 0
        self.vertex_count = 0

    # -- construction ---------------------------------------------------

    def add_node(self, node_type, index, parent=-1):
        """Append a node under parent (or as the root) and return its handle."""
        handle = len(self.nodes)
        node = SceneNode(handle, node_type, index, parent)
        self.nodes.append(node)
        if parent >= 0:
            self.nodes[parent].children.append(handle)
        elif self.root < 0:
            self.root = handle
        return handle

    def node(self, handle):
        return self.nodes[handle]

    # -- queries --------------------------------------------------------

    def walk(self, visitor, handle=None, depth=0):
        """Call visitor(node, depth) for every node in depth-first order."""
        if handle is None:
            handle = self.root
        if handle < 0:
            return
        node = self.nodes[handle]
        visitor(node, depth)
        for child in node.children:
            self.walk(visitor, child, depth + 1)

    def nodes_of_type(self, node_type):
        found = []
        self.walk(lambda n, d: found.append(n) if n.node_type == node_type else None)
        return found

    def find_node(self, node_type, index):
        """First node with the given type and index, in depth-first order."""
        for node in self.nodes_of_type(node_type):
            if node.index == index:
                return node
        return None

    def find_ancestor_index(self, node_type, index, ancestor_type):
        """Index of the parent of (node_type, index) if it is an ancestor_type node.

        This is how a shape's material is recovered: SHP1 does not store
        it, but every Shape node sits under the Material node that draws it.

        Returns:
            the parent's table index, or -1 when the node is missing,
            is the root, or its parent has a different type
        """
        node = self.find_node(node_type, index)
        if node is None or node.parent < 0:
            return -1
        parent = self.nodes[node.parent]
        if parent.node_type != ancestor_type:
            return -1
        return parent.index

    def count(self, node_type):
        return len(self.nodes_of_type(node_type))

    # -- INF1 codec -----------------------------------------------------

    @classmethod
    def read(cls, data, offset):
        """Parse an INF1 section starting at offset.

        Returns:
            (SceneGraph, section size)
        """
        size = read_section_header(data, offset, MAGIC_INF1)
        graph = cls()
        (graph.load_flags, graph.packet_count,
         graph.vertex_count, entries_offset) = struct.unpack_from(">H2xIII", data, offset + 8)

        pos = offset + entries_offset

        def next_token():
            nonlocal pos
            token = struct.unpack_from(">HH", data, pos)
            pos += 4
            return token

        node_type, index = next_token()
        current = graph.add_node(node_type, index)

        while True:
            node_type, index = next_token()
            if node_type == NODE_END:
                break
            if node_type == NODE_OPEN:
                child_type, child_index = next_token()
                current = graph.add_node(child_type, child_index, current)
            elif node_type == NODE_CLOSE:
                current = graph.nodes[current].parent
                if current < 0:
                    raise ValueError("INF1: Close token above the root node")
            elif node_type in (NODE_JOINT, NODE_MATERIAL, NODE_SHAPE):
                # Terminal node: sibling of the current node
                parent = graph.nodes[current].parent
                if parent < 0:
                    raise ValueError(
                        f"INF1: {NODE_TYPE_NAMES[node_type]} {index} has no parent to attach to"
                    )
                current = graph.add_node(node_type, index, parent)
            else:
                raise ValueError(f"INF1: unknown node type 0x{node_type:04x} at 0x{pos - 4:x}")

        _log.debug("INF1: %d nodes, %d packets, %d vertices",
                   len(graph.nodes), graph.packet_count, graph.vertex_count)
        return graph, size

    def write(self, packet_count, vertex_count):
        """Serialize as an INF1 section."""
        buf = begin_section(MAGIC_INF1)
        buf += struct.pack(">HHIII", self.load_flags, 0xFFFF,
                           packet_count, vertex_count, INF1_HEADER_SIZE)
        if self.root >= 0:
            self._write_node(buf, self.root)
        buf += struct.pack(">HH", NODE_END, 0)
        return finish_section(buf)

    def _write_node(self, buf, handle):
        node = self.nodes[handle]
        buf += struct.pack(">HH", node.node_type, node.index)
        if node.children:
            buf += struct.pack(">HH", NODE_OPEN, 0)
            for child in node.children:
                self._write_node(buf, child)
            buf += struct.pack(">HH", NODE_CLOSE, 0)

    def structure(self, handle=None):
        """Nested (type, index, [children]) tuples, for comparisons and dumps."""
        if handle is None:
            handle = self.root
        if handle < 0:
            return None
        node = self.nodes[handle]
        return (node.node_type, node.index,
                [self.structure(child) for child in node.children])

    def __repr__(self):
        return f"SceneGraph({len(self.nodes)} nodes, load_flags=0x{self.load_flags:x})"
