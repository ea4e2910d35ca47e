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

"""Tests for BarycentricContainer point location and embedded meshes."""

import logging
import weakref

import pytest
import torch

from meshembed import (
    NOT_FOUND,
    BarycentricContainer,
    ContainerConfig,
    ContainerState,
    DimensionMismatchError,
    Mesh,
    UnregisteredMeshError,
)

### Point Location Tests ###


class TestLocate:
    """Tests for locating arbitrary points."""

    def test_container_nodes_round_trip(self, container_mesh, quad_container):
        """Every container node is found and maps back onto itself."""
        domain = container_mesh.domain("quads")
        located = quad_container.locate(container_mesh.points)

        assert located.found.all()
        for i in range(container_mesh.n_points):
            element = domain.element(located.element_indices[i])
            position = element.world_coordinates(located.local_coordinates[i])
            assert torch.allclose(position, container_mesh.points[i], atol=1e-10)

    def test_gauss_nodes_and_centers(self, container_mesh, quad_container):
        """Interior points are attributed to their own element with exact local coordinates."""
        domain = container_mesh.domain("quads")
        for element_index in range(domain.n_elements):
            element = domain.element(element_index)
            gauss = element.gauss_nodes()

            located = quad_container.locate(element.world_coordinates(gauss.positions))
            assert (located.element_indices == element_index).all()
            assert torch.allclose(located.local_coordinates, gauss.positions, atol=1e-10)

            center = quad_container.locate(element.center())
            assert center.element_indices.item() == element_index
            assert torch.allclose(
                element.world_coordinates(center.local_coordinates), element.center(), atol=1e-10
            )

    def test_single_point_has_scalar_batch(self, quad_container):
        located = quad_container.locate(torch.tensor([2.5, -2.5], dtype=torch.float64))
        assert located.batch_size == torch.Size([])
        assert located.element_indices.item() == 1
        assert torch.allclose(located.local_coordinates, torch.zeros(2, dtype=torch.float64))

    def test_outside_points(self, quad_container):
        points = torch.tensor(
            [[0.0, 0.0], [6.0, 0.0], [-5.0 - 1e-3, 0.0], [100.0, 100.0]], dtype=torch.float64
        )
        located = quad_container.locate(points)

        assert located.found.tolist() == [True, False, False, False]
        assert located.outside_indices.tolist() == [1, 2, 3]
        assert (located.element_indices[1:] == NOT_FOUND).all()
        assert torch.isnan(located.local_coordinates[1:]).all()

    def test_shared_node_tie_break_is_deterministic(self, quad_container):
        """The center node touches all four elements; the lowest index wins."""
        located = quad_container.locate(torch.tensor([[0.0, 0.0]], dtype=torch.float64))
        assert located.element_indices.tolist() == [0]
        assert torch.allclose(
            located.local_coordinates, torch.tensor([[1.0, 1.0]], dtype=torch.float64)
        )

    def test_accepts_lists_and_float32(self, quad_container):
        located = quad_container.locate([[-2.5, 2.5], [2.5, 2.5]])
        assert located.element_indices.tolist() == [2, 3]
        located = quad_container.locate(torch.tensor([[-2.5, -2.5]], dtype=torch.float32))
        assert located.local_coordinates.dtype == torch.float64

    @pytest.mark.parametrize(
        "dtype, offset",
        [(torch.float32, 0.0), (torch.float64, 1.0e6)],
        ids=["float32", "far_from_origin"],
    )
    def test_interior_points_at_rounding_limits(self, make_quad_grid, dtype, offset):
        """Interior points are found even where rounding exceeds the relative tolerance."""
        grid = make_quad_grid(2, 2)
        mesh = Mesh((grid.points + offset).to(dtype))
        domain = mesh.add_domain("quads", "quad4", grid.domain("quads").cells)
        container = BarycentricContainer(domain)

        queries = torch.rand(200, 2, dtype=torch.float64) * 0.98 + 0.01
        queries = (queries + offset).to(dtype)
        located = container.locate(queries)

        assert located.found.all()
        assert located.local_coordinates.dtype == dtype
        positions = domain.element_type.world_coordinates(
            domain.element_nodes(located.element_indices), located.local_coordinates
        )
        assert torch.allclose(positions, queries, rtol=0.0, atol=1e-5)

    def test_container_nodes_found_in_float32(self, make_quad_grid):
        grid = make_quad_grid(3, 3)
        mesh = Mesh(grid.points.to(torch.float32))
        domain = mesh.add_domain("quads", "quad4", grid.domain("quads").cells)
        located = BarycentricContainer(domain).locate(mesh.points)
        assert located.found.all()

    def test_chunked_location_matches_unchunked(self, container_mesh, make_grid_points):
        points = make_grid_points((-6.0, -6.0), (6.0, 6.0), n=13)
        reference = BarycentricContainer(container_mesh.domain("quads")).locate(points)
        chunked = BarycentricContainer(container_mesh.domain("quads"), chunk_size=7).locate(points)

        assert torch.equal(chunked.element_indices, reference.element_indices)
        assert torch.allclose(
            chunked.local_coordinates, reference.local_coordinates, equal_nan=True
        )

    def test_empty_query(self, quad_container):
        located = quad_container.locate(torch.empty(0, 2, dtype=torch.float64))
        assert located.n_points == 0
        assert located.outside_indices.tolist() == []

    @pytest.mark.parametrize(
        "points",
        [
            torch.zeros(3, dtype=torch.float64),
            torch.zeros(4, 3, dtype=torch.float64),
            torch.zeros(2, 2, 2, dtype=torch.float64),
        ],
        ids=["single-3d", "batch-3d", "3d-tensor"],
    )
    def test_dimension_mismatch_raises(self, quad_container, points):
        with pytest.raises(DimensionMismatchError):
            quad_container.locate(points)


class TestLocateElementTypes:
    """Location in meshes of other element types."""

    def test_triangles_against_brute_force(self, make_triangle_grid):
        mesh = make_triangle_grid(5, 4)
        domain = mesh.domain("triangles")
        container = BarycentricContainer(domain, leaf_size=2)
        points = torch.rand(200, 2, dtype=torch.float64) * 1.4 - 0.2

        located = container.locate(points)
        inside_square = ((points >= 0.0) & (points <= 1.0)).all(dim=-1)
        assert torch.equal(located.found, inside_square)

        found = located.found
        nodes = domain.element_nodes(located.element_indices[found])
        remapped = domain.element_type.world_coordinates(nodes, located.local_coordinates[found])
        assert torch.allclose(remapped, points[found], atol=1e-10)

    def test_tetrahedra(self, tetrahedra_mesh):
        container = BarycentricContainer(tetrahedra_mesh.domain("tetrahedra"))
        points = torch.rand(100, 3, dtype=torch.float64)
        located = container.locate(points)
        assert located.found.all()

        outside = container.locate(torch.tensor([[1.5, 0.5, 0.5]], dtype=torch.float64))
        assert outside.outside_indices.tolist() == [0]

    def test_distorted_hexahedron(self, hexahedron_mesh):
        domain = hexahedron_mesh.domain("hexahedra")
        container = BarycentricContainer(domain)
        xi = torch.rand(50, 3, dtype=torch.float64) * 1.8 - 0.9
        points = domain.element(0).world_coordinates(xi)

        located = container.locate(points)
        assert (located.element_indices == 0).all()
        assert torch.allclose(located.local_coordinates, xi, atol=1e-8)

    def test_curved_quad8(self, curved_quad_mesh):
        container = BarycentricContainer(curved_quad_mesh.domain("quads"))
        points = torch.tensor([[1.0, 2.2], [1.0, 2.5], [0.1, 2.2]], dtype=torch.float64)
        located = container.locate(points)
        # Top edge is y = 2 + 0.4 * (1 - (x - 1)^2)
        assert located.found.tolist() == [True, False, False]

    def test_candidate_cap(self, container_mesh):
        """With a cap of one, only the closest-centered candidate is tested."""
        point = torch.tensor([[0.0, 2.5]], dtype=torch.float64)
        capped = BarycentricContainer(container_mesh.domain("quads"), max_candidates_per_point=1)
        located = capped.locate(point)
        # Equidistant from the centers of elements 2 and 3; the lower index goes first
        assert located.element_indices.tolist() == [2]


### Embedded Mesh Tests ###


class TestEmbeddedMeshes:
    """Tests for registration and cached correspondences."""

    def test_inner_mesh_fully_inside(self, quad_container, inner_embedded_mesh):
        outside = quad_container.add_embedded_mesh(inner_embedded_mesh)

        assert outside.tolist() == []
        assert outside.dtype == torch.long
        assert quad_container.is_registered(inner_embedded_mesh)
        assert quad_container.n_embedded_meshes == 1

        domain = quad_container.domain
        for node in range(inner_embedded_mesh.n_points):
            located = quad_container.locate_embedded(inner_embedded_mesh, node)
            position = domain.element(located.element_indices).world_coordinates(
                located.local_coordinates
            )
            assert torch.allclose(position, inner_embedded_mesh.position(node), atol=1e-10)

    def test_overlapping_mesh_outside_nodes(self, quad_container, overlapping_embedded_mesh):
        outside = quad_container.add_embedded_mesh(overlapping_embedded_mesh)
        assert outside.tolist() == [0, 3, 6, 7, 8]
        assert quad_container.outside_nodes(overlapping_embedded_mesh).tolist() == [0, 3, 6, 7, 8]

        located = quad_container.locate_embedded(overlapping_embedded_mesh, 0)
        assert located.element_indices.item() == NOT_FOUND

    def test_add_is_idempotent(self, quad_container, overlapping_embedded_mesh):
        first = quad_container.add_embedded_mesh(overlapping_embedded_mesh)
        cached = quad_container.embedded_points(overlapping_embedded_mesh)
        second = quad_container.add_embedded_mesh(overlapping_embedded_mesh)
        again = quad_container.embedded_points(overlapping_embedded_mesh)

        assert torch.equal(first, second)
        assert torch.equal(cached.element_indices, again.element_indices)
        assert quad_container.n_embedded_meshes == 1

    def test_meshes_are_keyed_by_identity(self, quad_container, inner_embedded_mesh):
        twin = Mesh(inner_embedded_mesh.points.clone())
        quad_container.add_embedded_mesh(inner_embedded_mesh)
        assert not quad_container.is_registered(twin)
        with pytest.raises(UnregisteredMeshError):
            quad_container.locate_embedded(twin, 0)

    def test_remove_embedded_mesh(self, quad_container, inner_embedded_mesh):
        quad_container.add_embedded_mesh(inner_embedded_mesh)
        quad_container.remove_embedded_mesh(inner_embedded_mesh)
        assert not quad_container.is_registered(inner_embedded_mesh)
        with pytest.raises(UnregisteredMeshError):
            quad_container.remove_embedded_mesh(inner_embedded_mesh)

    def test_correspondence_released_with_mesh(self, quad_container, make_grid_points):
        mesh = Mesh(make_grid_points((-1.0, -1.0), (1.0, 1.0)))
        reference = weakref.ref(mesh)
        quad_container.add_embedded_mesh(mesh)
        assert quad_container.n_embedded_meshes == 1

        del mesh
        assert reference() is None
        assert quad_container.n_embedded_meshes == 0

    def test_unregistered_mesh_raises(self, quad_container, inner_embedded_mesh):
        with pytest.raises(UnregisteredMeshError, match="add_embedded_mesh"):
            quad_container.locate_embedded(inner_embedded_mesh, 0)
        with pytest.raises(LookupError):
            quad_container.outside_nodes(inner_embedded_mesh)

    @pytest.mark.parametrize("node_index", [9, -1, 100])
    def test_node_index_out_of_range(self, quad_container, inner_embedded_mesh, node_index):
        quad_container.add_embedded_mesh(inner_embedded_mesh)
        with pytest.raises(IndexError, match="out of range"):
            quad_container.locate_embedded(inner_embedded_mesh, node_index)

    def test_dimension_mismatch_raises(self, quad_container):
        mesh_3d = Mesh(torch.zeros(2, 3, dtype=torch.float64))
        with pytest.raises(DimensionMismatchError, match="3D"):
            quad_container.add_embedded_mesh(mesh_3d)

    def test_changed_node_count_raises(self, quad_container, inner_embedded_mesh):
        quad_container.add_embedded_mesh(inner_embedded_mesh)
        inner_embedded_mesh.points = inner_embedded_mesh.points[:4]
        with pytest.raises(DimensionMismatchError, match="registered"):
            quad_container.embedded_points(inner_embedded_mesh)

    def test_all_outside_warns(self, quad_container, make_grid_points):
        far_away = Mesh(make_grid_points((10.0, 10.0), (12.0, 12.0)))
        with pytest.warns(UserWarning, match="None of the 9 nodes"):
            outside = quad_container.add_embedded_mesh(far_away)
        assert outside.tolist() == list(range(9))


### Lifecycle Tests ###


class TestLifecycle:
    def test_state_and_properties(self, container_mesh, quad_container):
        assert quad_container.state is ContainerState.READY
        assert quad_container.domain is container_mesh.domain("quads")
        assert quad_container.config == ContainerConfig()
        assert quad_container.bvh.n_elements == 4
        assert "ready" in repr(quad_container)

    def test_config_and_overrides(self, container_mesh):
        config = ContainerConfig(leaf_size=2, fill_value=-1.0)
        container = BarycentricContainer(container_mesh.domain("quads"), config, chunk_size=3)
        assert container.config.leaf_size == 2
        assert container.config.fill_value == -1.0
        assert container.config.chunk_size == 3

    def test_invalid_override_raises(self, container_mesh):
        with pytest.raises(ValueError, match="chunk_size"):
            BarycentricContainer(container_mesh.domain("quads"), chunk_size=0)

    def test_non_domain_raises(self, container_mesh):
        with pytest.raises(TypeError, match="Domain"):
            BarycentricContainer(container_mesh)

    def test_rebuild_drops_correspondences(self, container_mesh, quad_container, inner_embedded_mesh):
        quad_container.add_embedded_mesh(inner_embedded_mesh)

        # Move the container and re-index
        container_mesh.points = container_mesh.points + 20.0
        quad_container.rebuild()

        assert quad_container.state is ContainerState.READY
        assert quad_container.n_embedded_meshes == 0
        with pytest.warns(UserWarning, match="None of the 9 nodes"):
            outside = quad_container.add_embedded_mesh(inner_embedded_mesh)
        assert outside.tolist() == list(range(9))

    def test_logging(self, container_mesh, inner_embedded_mesh, caplog):
        with caplog.at_level(logging.DEBUG, logger="meshembed"):
            container = BarycentricContainer(container_mesh.domain("quads"))
            container.add_embedded_mesh(inner_embedded_mesh)

        messages = [record.getMessage() for record in caplog.records]
        assert any("Indexed domain 'quads'" in message for message in messages)
        assert any("Registered embedded mesh: 9 nodes, 0 outside" in message for message in messages)
        assert any("candidate rounds" in message for message in messages)
