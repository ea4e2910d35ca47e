# SPDX-FileCopyrightText: Copyright (c) 2023 - 2026 NVIDIA CORPORATION & AFFILIATES.
# SPDX-FileCopyrightText: All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tests for the Newton inverse of the isoparametric mapping."""

import pytest
import torch

from meshembed.elements import (
    HEXAHEDRON8,
    QUAD4,
    QUAD8,
    SEGMENT2,
    SEGMENT3,
    TETRAHEDRON4,
    TETRAHEDRON10,
    TRIANGLE3,
    TRIANGLE6,
)
from meshembed.locate import MappingStatus, invert_mapping

VOLUME_ELEMENT_TYPES = [
    SEGMENT2,
    SEGMENT3,
    TRIANGLE3,
    TRIANGLE6,
    QUAD4,
    QUAD8,
    TETRAHEDRON4,
    TETRAHEDRON10,
    HEXAHEDRON8,
]

SQUARE = torch.tensor([[0.0, 0.0], [2.0, 0.0], [2.0, 2.0], [0.0, 2.0]], dtype=torch.float64)

### Helper Functions ###


def _interior_local_points(element_type, n: int) -> torch.Tensor:
    """Random local coordinates safely inside the reference domain."""
    if element_type.name.startswith(("triangle", "tetrahedron")):
        raw = torch.rand(n, element_type.n_local_dims + 1, dtype=torch.float64) + 0.05
        return (raw / raw.sum(dim=-1, keepdim=True))[:, 1:]
    return torch.rand(n, element_type.n_local_dims, dtype=torch.float64) * 1.9 - 0.95


def _distorted_elements(element_type, n: int) -> torch.Tensor:
    """``n`` copies of the reference element, scaled, shifted and mildly distorted."""
    nodes = element_type.reference_nodes().expand(n, -1, -1)
    shift = torch.rand(n, 1, element_type.n_local_dims, dtype=torch.float64) * 10.0
    noise = 0.05 * torch.rand(n, element_type.n_nodes, element_type.n_local_dims, dtype=torch.float64)
    return 3.0 * nodes + shift + noise


def _status_names(result) -> list[str]:
    return [MappingStatus(value).name for value in result.status.tolist()]


### Round-Trip Tests ###


class TestRoundTrip:
    """Forward-map interior local coordinates, then invert."""

    @pytest.mark.parametrize(
        "element_type", VOLUME_ELEMENT_TYPES, ids=[t.name for t in VOLUME_ELEMENT_TYPES]
    )
    def test_recovers_local_coordinates(self, element_type):
        n = 32
        nodes = _distorted_elements(element_type, n)
        xi = _interior_local_points(element_type, n)
        points = element_type.world_coordinates(nodes, xi)

        result = invert_mapping(element_type, nodes, points)

        assert result.batch_size == torch.Size([n])
        assert (result.status == MappingStatus.INSIDE).all()
        assert result.inside.all()
        assert torch.allclose(result.local_coordinates, xi, atol=1e-8)

        # Forward mapping of the solution reproduces the point
        remapped = element_type.world_coordinates(nodes, result.local_coordinates)
        assert torch.allclose(remapped, points, atol=1e-9)

    def test_affine_quad_is_exact(self):
        points = torch.tensor([[1.5, 0.5], [1.0, 1.0], [0.0, 2.0]], dtype=torch.float64)
        result = invert_mapping(QUAD4, SQUARE.expand(3, -1, -1), points)

        expected = torch.tensor([[0.5, -0.5], [0.0, 0.0], [-1.0, 1.0]], dtype=torch.float64)
        assert torch.allclose(result.local_coordinates, expected, atol=1e-12)
        assert _status_names(result) == ["INSIDE"] * 3
        assert (result.n_iterations <= 1).all()
        assert (result.residual <= 1e-10 * 2.0).all()

    def test_distorted_hexahedron_corners(self, hexahedron_mesh):
        domain = hexahedron_mesh.domain("hexahedra")
        nodes = domain.element_nodes().expand(8, -1, -1)
        result = invert_mapping(HEXAHEDRON8, nodes, hexahedron_mesh.points)

        assert result.inside.all()
        assert torch.allclose(result.local_coordinates, HEXAHEDRON8.reference_nodes(), atol=1e-8)

    def test_point_in_curved_bulge(self, curved_quad_mesh):
        """A point above the chord of the curved edge still lies in the element."""
        nodes = curved_quad_mesh.domain("quads").element_nodes()
        point = torch.tensor([[1.0, 2.2]], dtype=torch.float64)
        result = invert_mapping(QUAD8, nodes, point)

        assert _status_names(result) == ["INSIDE"]
        assert torch.allclose(
            result.local_coordinates,
            torch.tensor([[0.0, 2.2 / 1.2 - 1.0]], dtype=torch.float64),
            atol=1e-10,
        )


### Tri-State Tests ###


class TestMappingStatus:
    def test_outside_point_converges_outside(self):
        points = torch.tensor([[3.0, 1.0], [-1.0, -1.0]], dtype=torch.float64)
        result = invert_mapping(QUAD4, SQUARE.expand(2, -1, -1), points)

        assert _status_names(result) == ["OUTSIDE", "OUTSIDE"]
        assert torch.allclose(
            result.local_coordinates,
            torch.tensor([[2.0, 0.0], [-2.0, -2.0]], dtype=torch.float64),
        )

    def test_inside_tolerance_on_boundary(self):
        point = torch.tensor([[2.0 + 1e-12, 1.0]], dtype=torch.float64)
        nodes = SQUARE.unsqueeze(0)
        assert _status_names(invert_mapping(QUAD4, nodes, point)) == ["INSIDE"]
        assert _status_names(invert_mapping(QUAD4, nodes, point, inside_tolerance=0.0)) == [
            "OUTSIDE"
        ]

    def test_above_curved_edge_is_not_inside(self, curved_quad_mesh):
        nodes = curved_quad_mesh.domain("quads").element_nodes()
        point = torch.tensor([[1.0, 2.5]], dtype=torch.float64)
        result = invert_mapping(QUAD8, nodes, point)
        assert not result.inside.any()

    def test_iteration_cap(self, curved_quad_mesh):
        nodes = curved_quad_mesh.domain("quads").element_nodes()
        point = torch.tensor([[0.3, 2.1]], dtype=torch.float64)

        capped = invert_mapping(QUAD8, nodes, point, max_iterations=1)
        assert _status_names(capped) == ["NOT_CONVERGED"]
        assert capped.n_iterations.item() == 1
        assert not capped.converged.any()

        converged = invert_mapping(QUAD8, nodes, point)
        assert _status_names(converged) == ["INSIDE"]
        assert converged.n_iterations.item() > 1

    @pytest.mark.parametrize(
        "nodes",
        [
            # All nodes coincident
            torch.ones(4, 2, dtype=torch.float64),
            # Collapsed onto a line
            torch.tensor([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]], dtype=torch.float64),
        ],
        ids=["point", "line"],
    )
    def test_degenerate_element_is_not_converged(self, nodes):
        result = invert_mapping(
            QUAD4, nodes.unsqueeze(0), torch.tensor([[0.5, 0.5]], dtype=torch.float64)
        )
        assert _status_names(result) == ["NOT_CONVERGED"]

    def test_non_convergence_never_raises(self):
        """A mixed batch reports every status without raising."""
        nodes = torch.stack([SQUARE, SQUARE, torch.ones(4, 2, dtype=torch.float64)])
        points = torch.tensor([[1.0, 1.0], [5.0, 1.0], [0.0, 0.0]], dtype=torch.float64)
        result = invert_mapping(QUAD4, nodes, points)
        assert _status_names(result) == ["INSIDE", "OUTSIDE", "NOT_CONVERGED"]


### Lower-Dimensional Elements ###


class TestEmbeddedElements:
    """Elements whose local dimension is lower than the spatial dimension."""

    def test_segment_in_2d(self):
        nodes = torch.tensor([[[0.0, 0.0], [2.0, 2.0]]], dtype=torch.float64).expand(2, -1, -1)
        points = torch.tensor([[0.5, 0.5], [1.0, 0.0]], dtype=torch.float64)
        result = invert_mapping(SEGMENT2, nodes, points)

        # On the segment: exact. Off the line: least-squares fixed point, never converged.
        assert _status_names(result) == ["INSIDE", "NOT_CONVERGED"]
        assert result.local_coordinates[0].item() == pytest.approx(-0.5)
        assert result.residual[1].item() == pytest.approx(2.0**0.5 / 2.0)

    def test_triangle_in_3d(self):
        nodes = torch.tensor(
            [[[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 2.0]]], dtype=torch.float64
        )
        xi = torch.tensor([[0.25, 0.5]], dtype=torch.float64)
        points = TRIANGLE3.world_coordinates(nodes, xi)
        result = invert_mapping(TRIANGLE3, nodes, points)

        assert _status_names(result) == ["INSIDE"]
        assert torch.allclose(result.local_coordinates, xi)


### Validation Tests ###


class TestValidation:
    def test_empty_batch(self):
        result = invert_mapping(
            TETRAHEDRON4,
            torch.empty(0, 4, 3, dtype=torch.float64),
            torch.empty(0, 3, dtype=torch.float64),
        )
        assert result.batch_size == torch.Size([0])
        assert result.local_coordinates.shape == (0, 3)

    def test_wrong_node_count_raises(self):
        with pytest.raises(ValueError, match="node_positions"):
            invert_mapping(QUAD4, torch.zeros(1, 3, 2), torch.zeros(1, 2))

    def test_wrong_point_shape_raises(self):
        with pytest.raises(ValueError, match="points"):
            invert_mapping(QUAD4, torch.zeros(2, 4, 2), torch.zeros(3, 2))

    def test_float32_inputs(self):
        nodes = SQUARE.to(torch.float32).unsqueeze(0)
        result = invert_mapping(
            QUAD4, nodes, torch.tensor([[0.5, 1.5]]), tolerance=1e-5
        )
        assert result.local_coordinates.dtype == torch.float32
        assert _status_names(result) == ["INSIDE"]
        assert torch.allclose(result.local_coordinates, torch.tensor([[-0.5, 0.5]]))

    def test_float32_default_tolerance(self):
        """The threshold is floored at float32 rounding instead of stalling."""
        nodes = SQUARE.to(torch.float32).unsqueeze(0).expand(50, 4, 2)
        points = torch.rand(50, 2) * 1.9 + 0.05
        result = invert_mapping(QUAD4, nodes, points)
        assert result.inside.all()
        assert torch.allclose(result.local_coordinates, points - 1.0, atol=1e-5)

    def test_coordinates_far_from_origin(self):
        offset = 1.0e6
        nodes = (SQUARE + offset).unsqueeze(0)
        result = invert_mapping(
            QUAD4, nodes, torch.tensor([[0.5, 1.5]], dtype=torch.float64) + offset
        )
        assert _status_names(result) == ["INSIDE"]
        assert torch.allclose(
            result.local_coordinates,
            torch.tensor([[-0.5, 0.5]], dtype=torch.float64),
            atol=1e-8,
        )

    def test_point_on_face_in_float32(self):
        """A point on the element boundary stays inside despite rounding."""
        nodes = (SQUARE * 0.1 + 0.3).to(torch.float32).unsqueeze(0)
        result = invert_mapping(QUAD4, nodes, torch.tensor([[0.5, 0.37]]))
        assert _status_names(result) == ["INSIDE"]
