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

"""Triangles on the unit reference triangle ``(0, 0), (1, 0), (0, 1)``.

Node order::

    2
    | \\
    5   4
    |     \\
    0 - 3 - 1      (nodes 3-5 only for Triangle6)
"""

import torch

from meshembed.elements.base import (
    SimplexElement,
    quadratic_simplex_shape_derivatives,
    quadratic_simplex_shape_functions,
    simplex_barycentric,
)


class Triangle3(SimplexElement):
    """Three-node linear triangle."""

    name = "triangle3"
    n_nodes = 3
    n_local_dims = 2
    order = 1
    n_gauss_points = 1
    _reference_nodes = ((0.0, 0.0), (1.0, 0.0), (0.0, 1.0))

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        lambdas, _ = simplex_barycentric(local_coordinates)
        return lambdas

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        _, gradients = simplex_barycentric(local_coordinates)
        return gradients.expand(*local_coordinates.shape[:-1], *gradients.shape)


class Triangle6(SimplexElement):
    """Six-node quadratic triangle with mid-edge nodes."""

    name = "triangle6"
    n_nodes = 6
    n_local_dims = 2
    order = 2
    bounding_box_padding = 0.25
    n_gauss_points = 3
    _reference_nodes = (
        (0.0, 0.0),
        (1.0, 0.0),
        (0.0, 1.0),
        (0.5, 0.0),
        (0.5, 0.5),
        (0.0, 0.5),
    )
    _edges = ((0, 1), (1, 2), (2, 0))

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        return quadratic_simplex_shape_functions(local_coordinates, self._edges)

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        return quadratic_simplex_shape_derivatives(local_coordinates, self._edges)


TRIANGLE3 = Triangle3()
TRIANGLE6 = Triangle6()
