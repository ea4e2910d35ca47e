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

"""Quadrature ("gauss") rules on the reference domains.

Hypercube rules are tensor products of Gauss-Legendre rules on ``[-1, 1]``.
Simplex rules are the classic symmetric rules on the unit triangle
``{u, v >= 0, u + v <= 1}`` and unit tetrahedron; their weights sum to the
reference measure (1/2 and 1/6 respectively).
"""

import math

import torch

_GAUSS_LEGENDRE: dict[int, tuple[list[float], list[float]]] = {
    1: ([0.0], [2.0]),
    2: ([-1.0 / math.sqrt(3.0), 1.0 / math.sqrt(3.0)], [1.0, 1.0]),
    3: (
        [-math.sqrt(3.0 / 5.0), 0.0, math.sqrt(3.0 / 5.0)],
        [5.0 / 9.0, 8.0 / 9.0, 5.0 / 9.0],
    ),
}

_TETRA_A = 0.5854101966249685
_TETRA_B = 0.1381966011250105

_SIMPLEX_RULES: dict[tuple[int, int], tuple[list[list[float]], list[float]]] = {
    ### Triangles
    (2, 1): ([[1.0 / 3.0, 1.0 / 3.0]], [0.5]),
    (2, 3): (
        [[1.0 / 6.0, 1.0 / 6.0], [2.0 / 3.0, 1.0 / 6.0], [1.0 / 6.0, 2.0 / 3.0]],
        [1.0 / 6.0] * 3,
    ),
    ### Tetrahedra
    (3, 1): ([[0.25, 0.25, 0.25]], [1.0 / 6.0]),
    (3, 4): (
        [
            [_TETRA_B, _TETRA_B, _TETRA_B],
            [_TETRA_A, _TETRA_B, _TETRA_B],
            [_TETRA_B, _TETRA_A, _TETRA_B],
            [_TETRA_B, _TETRA_B, _TETRA_A],
        ],
        [1.0 / 24.0] * 4,
    ),
}


def gauss_legendre(n_points: int) -> tuple[list[float], list[float]]:
    """Return 1D Gauss-Legendre points and weights on ``[-1, 1]``.

    Raises
    ------
    ValueError
        If ``n_points`` is not 1, 2 or 3.
    """
    if n_points not in _GAUSS_LEGENDRE:
        raise ValueError(
            f"Unsupported number of Gauss points: {n_points=}. "
            f"Must be one of {sorted(_GAUSS_LEGENDRE)}."
        )
    return _GAUSS_LEGENDRE[n_points]


def hypercube_rule(
    n_points_per_axis: int,
    n_dims: int,
    dtype: torch.dtype = torch.float64,
    device: torch.device | str | None = None,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Tensor-product Gauss-Legendre rule on ``[-1, 1]^n_dims``.

    The first local axis varies fastest.

    Returns
    -------
    tuple[torch.Tensor, torch.Tensor]
        ``(positions, weights)`` of shapes ``(n_points_per_axis**n_dims, n_dims)``
        and ``(n_points_per_axis**n_dims,)``.
    """
    points_1d, weights_1d = gauss_legendre(n_points_per_axis)
    pts = torch.tensor(points_1d, dtype=dtype, device=device)
    wts = torch.tensor(weights_1d, dtype=dtype, device=device)

    if n_dims == 1:
        return pts.unsqueeze(-1), wts

    # cartesian_prod varies the last factor fastest; flip so x is fastest.
    positions = torch.cartesian_prod(*([pts] * n_dims)).flip(-1)
    weights = torch.cartesian_prod(*([wts] * n_dims)).prod(dim=-1)
    return positions, weights


def simplex_rule(
    n_points: int,
    n_dims: int,
    dtype: torch.dtype = torch.float64,
    device: torch.device | str | None = None,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Symmetric quadrature rule on the unit ``n_dims``-simplex.

    Raises
    ------
    ValueError
        If no rule with ``n_points`` exists for the given dimension.
    """
    if (n_dims, n_points) not in _SIMPLEX_RULES:
        available = sorted(n for d, n in _SIMPLEX_RULES if d == n_dims)
        raise ValueError(
            f"No {n_dims}D simplex rule with {n_points=}; available: {available}."
        )
    positions, weights = _SIMPLEX_RULES[(n_dims, n_points)]
    return (
        torch.tensor(positions, dtype=dtype, device=device),
        torch.tensor(weights, dtype=dtype, device=device),
    )
