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

"""Pytest configuration and shared fixtures for meshembed tests.

Meshes are built by hand here; the package itself never generates meshes.
All fixtures defined here are available to every test file without explicit
imports.
"""

import random

import pytest
import torch

from meshembed import BarycentricContainer, Mesh

### Pytest Hooks ###


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "cuda: mark test as requiring CUDA (skipped if unavailable)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow-running (for optional exclusion)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with 'cuda' if CUDA is not available."""
    if torch.cuda.is_available():
        return

    skip_cuda = pytest.mark.skip(reason="CUDA not available")
    for item in items:
        if "cuda" in item.keywords:
            item.add_marker(skip_cuda)


@pytest.fixture(params=["cpu"] + (["cuda:0"] if torch.cuda.is_available() else []))
def device(request):
    """Device fixture that automatically skips CUDA tests when not available."""
    return request.param


@pytest.fixture(autouse=True, scope="function")
def seed_random_state():
    """Reset random number generators to a fixed seed before each test."""
    SEED = 95051

    random.seed(SEED)
    torch.manual_seed(SEED)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(SEED)

    yield


### Mesh Builders ###


def structured_quad_mesh(
    n_x: int,
    n_y: int,
    lower: tuple[float, float] = (0.0, 0.0),
    upper: tuple[float, float] = (1.0, 1.0),
    device: torch.device | str = "cpu",
) -> Mesh:
    """Regular ``n_x`` x ``n_y`` grid of quad4 elements, domain name ``"quads"``.

    Nodes are numbered row by row starting at ``lower``; elements likewise.
    """
    xs = torch.linspace(lower[0], upper[0], n_x + 1, dtype=torch.float64)
    ys = torch.linspace(lower[1], upper[1], n_y + 1, dtype=torch.float64)
    grid_y, grid_x = torch.meshgrid(ys, xs, indexing="ij")
    points = torch.stack([grid_x.reshape(-1), grid_y.reshape(-1)], dim=-1).to(device)

    cells = []
    for j in range(n_y):
        for i in range(n_x):
            n0 = j * (n_x + 1) + i
            cells.append([n0, n0 + 1, n0 + n_x + 2, n0 + n_x + 1])

    mesh = Mesh(points)
    mesh.add_domain("quads", "quad4", torch.tensor(cells, device=device))
    return mesh


def structured_triangle_mesh(
    n_x: int,
    n_y: int,
    device: torch.device | str = "cpu",
) -> Mesh:
    """Unit square split into ``2 * n_x * n_y`` triangle3 elements, domain ``"triangles"``."""
    quad_mesh = structured_quad_mesh(n_x, n_y, device=device)
    quads = quad_mesh.domain("quads").cells
    cells = torch.cat([quads[:, [0, 1, 2]], quads[:, [0, 2, 3]]], dim=0)
    mesh = Mesh(quad_mesh.points)
    mesh.add_domain("triangles", "triangle3", cells)
    return mesh


def unit_cube_tetrahedra(device: torch.device | str = "cpu") -> Mesh:
    """Unit cube split into 6 tetrahedron4 elements around its main diagonal."""
    points = torch.tensor(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
            [1.0, 0.0, 1.0],
            [1.0, 1.0, 1.0],
            [0.0, 1.0, 1.0],
        ],
        dtype=torch.float64,
        device=device,
    )
    cells = torch.tensor(
        [
            [0, 1, 2, 6],
            [0, 2, 3, 6],
            [0, 3, 7, 6],
            [0, 7, 4, 6],
            [0, 4, 5, 6],
            [0, 5, 1, 6],
        ],
        device=device,
    )
    mesh = Mesh(points)
    mesh.add_domain("tetrahedra", "tetrahedron4", cells)
    return mesh


def distorted_hexahedron(device: torch.device | str = "cpu") -> Mesh:
    """Single non-affine hexahedron8, domain name ``"hexahedra"``."""
    points = torch.tensor(
        [
            [0.0, 0.0, 0.0],
            [2.0, 0.0, 0.0],
            [2.2, 1.8, 0.0],
            [0.0, 1.5, 0.1],
            [0.1, 0.0, 1.0],
            [2.0, 0.2, 1.3],
            [2.0, 2.0, 1.6],
            [-0.1, 1.6, 1.1],
        ],
        dtype=torch.float64,
        device=device,
    )
    mesh = Mesh(points)
    mesh.add_domain("hexahedra", "hexahedron8", torch.arange(8, device=device).unsqueeze(0))
    return mesh


def curved_quad8(device: torch.device | str = "cpu") -> Mesh:
    """Single quad8 on ``[0, 2]^2`` whose top edge bulges up to ``y = 2.4``."""
    points = torch.tensor(
        [
            [0.0, 0.0],
            [2.0, 0.0],
            [2.0, 2.0],
            [0.0, 2.0],
            [1.0, 0.0],
            [2.0, 1.0],
            [1.0, 2.4],
            [0.0, 1.0],
        ],
        dtype=torch.float64,
        device=device,
    )
    mesh = Mesh(points)
    mesh.add_domain("quads", "quad8", torch.arange(8, device=device).unsqueeze(0))
    return mesh


def grid_points(
    lower: tuple[float, float],
    upper: tuple[float, float],
    n: int = 3,
    device: torch.device | str = "cpu",
) -> torch.Tensor:
    """``n`` x ``n`` lattice of points, x varying fastest."""
    xs = torch.linspace(lower[0], upper[0], n, dtype=torch.float64)
    ys = torch.linspace(lower[1], upper[1], n, dtype=torch.float64)
    grid_y, grid_x = torch.meshgrid(ys, xs, indexing="ij")
    return torch.stack([grid_x.reshape(-1), grid_y.reshape(-1)], dim=-1).to(device)


### Shared Scenario ###
#
# Container: 2 x 2 quads over [-5, 5]^2
#
#   6:(-5, 5)      7:(0, 5)       8:(5, 5)
#       +-------------+-------------+
#       |      2      |      3      |
#   3:(-5, 0)      4:(0, 0)       5:(5, 0)
#       +-------------+-------------+
#       |      0      |      1      |
#       +-------------+-------------+
#   0:(-5, -5)     1:(0, -5)      2:(5, -5)


@pytest.fixture
def container_mesh():
    return structured_quad_mesh(2, 2, lower=(-5.0, -5.0), upper=(5.0, 5.0))


@pytest.fixture
def quad_container(container_mesh):
    return BarycentricContainer(container_mesh.domain("quads"))


@pytest.fixture
def inner_embedded_mesh():
    """3 x 3 lattice over [-2.5, 2.5]^2, fully inside the container."""
    return Mesh(grid_points((-2.5, -2.5), (2.5, 2.5)))


@pytest.fixture
def overlapping_embedded_mesh():
    """3 x 3 lattice over [-7.5, -2.5] x [2.5, 7.5], straddling the top-left corner."""
    return Mesh(grid_points((-7.5, 2.5), (-2.5, 7.5)))


### Builder Fixtures ###


@pytest.fixture
def make_quad_grid():
    return structured_quad_mesh


@pytest.fixture
def make_triangle_grid():
    return structured_triangle_mesh


@pytest.fixture
def make_grid_points():
    return grid_points


@pytest.fixture
def tetrahedra_mesh():
    return unit_cube_tetrahedra()


@pytest.fixture
def hexahedron_mesh():
    return distorted_hexahedron()


@pytest.fixture
def curved_quad_mesh():
    return curved_quad8()
