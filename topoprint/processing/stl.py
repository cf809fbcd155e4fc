"""Binary STL serialization.

Layout: 80-byte header, little-endian uint32 triangle count, then per
triangle a float32 normal, three float32 vertices and a uint16 attribute
(always 0). Total size is exactly 84 + 50 * triangles.
"""

from __future__ import annotations

import struct

import numpy as np

from topoprint.types import Mesh

HEADER_SIZE = 80
RECORD_SIZE = 50

TRIANGLE_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("v1", "<f4", (3,)),
    ("v2", "<f4", (3,)),
    ("v3", "<f4", (3,)),
    ("attr", "<u2"),
])


def compute_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Unit normals of (v2 - v1) x (v3 - v1); degenerate triangles get zero."""
    a = vertices[faces[:, 0]]
    b = vertices[faces[:, 1]]
    c = vertices[faces[:, 2]]
    n = np.cross(b - a, c - a)
    norm = np.linalg.norm(n, axis=1)
    return np.divide(n, norm[:, None], out=np.zeros_like(n), where=norm[:, None] > 0)


def encode_header(text: str) -> bytes:
    """ASCII header truncated or NUL-padded to 80 bytes."""
    return text.encode("ascii", errors="ignore")[:HEADER_SIZE].ljust(HEADER_SIZE, b"\0")


def write_binary_stl(mesh: Mesh, header: str = "Binary STL from topoprint") -> bytes:
    """Serialize a mesh into a binary STL payload."""
    v = mesh.vertices.astype(np.float64, copy=False)
    f = mesh.faces

    tri_data = np.empty((f.shape[0],), dtype=TRIANGLE_DTYPE)
    tri_data["normal"] = compute_normals(v, f)
    tri_data["v1"] = v[f[:, 0]]
    tri_data["v2"] = v[f[:, 1]]
    tri_data["v3"] = v[f[:, 2]]
    tri_data["attr"] = 0

    return encode_header(header) + struct.pack("<I", int(f.shape[0])) + tri_data.tobytes()


def read_binary_stl(payload: bytes) -> np.ndarray:
    """Parse a binary STL payload into its structured triangle records.

    Raises:
        ValueError: If the payload size does not match its triangle count
    """
    if len(payload) < HEADER_SIZE + 4:
        raise ValueError("Payload too short for a binary STL")
    (count,) = struct.unpack_from("<I", payload, HEADER_SIZE)
    expected = HEADER_SIZE + 4 + RECORD_SIZE * count
    if len(payload) != expected:
        raise ValueError(f"Binary STL size mismatch: expected {expected}, got {len(payload)}")
    if count == 0:
        return np.empty((0,), dtype=TRIANGLE_DTYPE)
    return np.frombuffer(payload, dtype=TRIANGLE_DTYPE, count=count, offset=HEADER_SIZE + 4)


def stl_z_range(payload: bytes) -> tuple[float, float] | None:
    """Min and max vertex z of an STL payload, or None when it has no triangles."""
    records = read_binary_stl(payload)
    if records.size == 0:
        return None
    z = np.concatenate([records["v1"][:, 2], records["v2"][:, 2], records["v3"][:, 2]])
    return float(z.min()), float(z.max())
