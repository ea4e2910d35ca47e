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

"""Line segments on the reference interval ``[-1, 1]``.

Node order::

    0 ----- 2 ----- 1        (node 2 only for Segment3)
   -1       0      +1
"""

import torch

from meshembed.elements.base import (
    HypercubeElement,
    multilinear_shape_derivatives,
    multilinear_shape_functions,
)


class Segment2(HypercubeElement):
    """Two-node linear segment."""

    name = "segment2"
    n_nodes = 2
    n_local_dims = 1
    order = 1
    gauss_points_per_axis = 1
    _reference_nodes = ((-1.0,), (1.0,))

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_functions(local_coordinates, signs)

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_derivatives(local_coordinates, signs)


class Segment3(HypercubeElement):
    """Three-node quadratic segment; node 2 sits at the middle."""

    name = "segment3"
    n_nodes = 3
    n_local_dims = 1
    order = 2
    bounding_box_padding = 0.25
    gauss_points_per_axis = 2
    _reference_nodes = ((-1.0,), (1.0,), (0.0,))

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        x = local_coordinates[..., 0]
        return torch.stack(
            [0.5 * x * (x - 1.0), 0.5 * x * (x + 1.0), 1.0 - x * x], dim=-1
        )

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        x = local_coordinates[..., 0]
        return torch.stack([x - 0.5, x + 0.5, -2.0 * x], dim=-1).unsqueeze(-1)


SEGMENT2 = Segment2()
SEGMENT3 = Segment3()
