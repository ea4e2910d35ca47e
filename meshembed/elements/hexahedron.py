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

"""Trilinear hexahedron on ``[-1, 1]^3`` (VTK node order)."""

import torch

from meshembed.elements.base import (
    HypercubeElement,
    multilinear_shape_derivatives,
    multilinear_shape_functions,
)


class Hexahedron8(HypercubeElement):
    """Eight-node trilinear hexahedron; bottom face 0-3, top face 4-7."""

    name = "hexahedron8"
    n_nodes = 8
    n_local_dims = 3
    order = 1
    gauss_points_per_axis = 2
    _reference_nodes = (
        (-1.0, -1.0, -1.0),
        (1.0, -1.0, -1.0),
        (1.0, 1.0, -1.0),
        (-1.0, 1.0, -1.0),
        (-1.0, -1.0, 1.0),
        (1.0, -1.0, 1.0),
        (1.0, 1.0, 1.0),
        (-1.0, 1.0, 1.0),
    )

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_functions(local_coordinates, signs)

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_derivatives(local_coordinates, signs)


HEXAHEDRON8 = Hexahedron8()
