"""Unit tests for binary STL serialization."""

import struct

import numpy as np
import pytest

from topoprint.processing.stl import (
    compute_normals,
    encode_header,
    read_binary_stl,
    stl_z_range,
    write_binary_stl,
)
from topoprint.types import Mesh


@pytest.fixture
def tetrahedron() -> Mesh:
    vertices = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=float)
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    return Mesh(vertices=vertices, faces=faces, top_vertex_count=4)


def test_payload_size_and_count(tetrahedron):
    payload = write_binary_stl(tetrahedron)
    assert len(payload) == 84 + 50 * 4
    assert struct.unpack_from("<I", payload, 80)[0] == 4


def test_header_is_80_bytes():
    assert encode_header("short") == b"short" + b"\0" * 75
    assert len(encode_header("x" * 200)) == 80


def test_records_round_trip(tetrahedron):
    records = read_binary_stl(write_binary_stl(tetrahedron, header="test"))
    assert records.shape == (4,)
    assert np.all(records["attr"] == 0)
    np.testing.assert_allclose(records["v1"][3], [1, 0, 0])
    np.testing.assert_allclose(records["v3"][3], [0, 0, 1])


def test_normals_are_unit_and_outward(tetrahedron):
    normals = compute_normals(tetrahedron.vertices, tetrahedron.faces)
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0)
    np.testing.assert_allclose(normals[0], [0, 0, -1])
    np.testing.assert_allclose(normals[3], np.ones(3) / np.sqrt(3))


def test_degenerate_triangle_gets_zero_normal():
    vertices = np.array([[0, 0, 0], [1, 1, 1], [2, 2, 2]], dtype=float)
    normals = compute_normals(vertices, np.array([[0, 1, 2]]))
    assert np.all(normals == 0.0)
    assert not np.isnan(normals).any()


def test_z_range(tetrahedron):
    assert stl_z_range(write_binary_stl(tetrahedron)) == (0.0, 1.0)


def test_empty_mesh_serializes_to_header_only():
    mesh = Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64), top_vertex_count=0)
    payload = write_binary_stl(mesh)
    assert len(payload) == 84
    assert stl_z_range(payload) is None


def test_truncated_payload_rejected(tetrahedron):
    with pytest.raises(ValueError):
        read_binary_stl(write_binary_stl(tetrahedron)[:-10])
