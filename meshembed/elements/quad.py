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

"""Quadrilaterals on the reference square ``[-1, 1]^2``.

Node order (counter-clockwise corners, then mid-edge nodes)::

    3 --- 6 --- 2
    |           |
    7           5
    |           |
    0 --- 4 --- 1      (nodes 4-7 only for Quad8)
"""

import torch

from meshembed.elements.base import (
    HypercubeElement,
    multilinear_shape_derivatives,
    multilinear_shape_functions,
)


class Quad4(HypercubeElement):
    """Four-node bilinear quadrilateral."""

    name = "quad4"
    n_nodes = 4
    n_local_dims = 2
    order = 1
    gauss_points_per_axis = 2
    _reference_nodes = ((-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0))

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_functions(local_coordinates, signs)

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        signs = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        return multilinear_shape_derivatives(local_coordinates, signs)


class Quad8(HypercubeElement):
    """Eight-node serendipity quadrilateral."""

    name = "quad8"
    n_nodes = 8
    n_local_dims = 2
    order = 2
    bounding_box_padding = 0.25
    gauss_points_per_axis = 3
    _reference_nodes = (
        (-1.0, -1.0),
        (1.0, -1.0),
        (1.0, 1.0),
        (-1.0, 1.0),
        (0.0, -1.0),
        (1.0, 0.0),
        (0.0, 1.0),
        (-1.0, 0.0),
    )

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        nodes = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        x = local_coordinates[..., 0:1]
        y = local_coordinates[..., 1:2]
        corner_x, corner_y = nodes[:4, 0], nodes[:4, 1]
        a = x * corner_x
        b = y * corner_y
        corners = 0.25 * (1.0 + a) * (1.0 + b) * (a + b - 1.0)

        # Nodes 4 and 6 lie on eta = -1 / +1, nodes 5 and 7 on xi = +1 / -1
        bottom_top = 0.5 * (1.0 - x * x) * (1.0 + y * nodes[[4, 6], 1])
        right_left = 0.5 * (1.0 + x * nodes[[5, 7], 0]) * (1.0 - y * y)
        return torch.cat(
            [
                corners,
                bottom_top[..., 0:1],
                right_left[..., 0:1],
                bottom_top[..., 1:2],
                right_left[..., 1:2],
            ],
            dim=-1,
        )

    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        nodes = self.reference_nodes(local_coordinates.dtype, local_coordinates.device)
        x = local_coordinates[..., 0:1]
        y = local_coordinates[..., 1:2]
        corner_x, corner_y = nodes[:4, 0], nodes[:4, 1]
        a = x * corner_x
        b = y * corner_y
        d_corners = torch.stack(
            [
                0.25 * corner_x * (1.0 + b) * (2.0 * a + b),
                0.25 * corner_y * (1.0 + a) * (a + 2.0 * b),
            ],
            dim=-1,
        )  # (*batch, 4, 2)

        eta_bt = nodes[[4, 6], 1]
        d_bottom_top = torch.stack(
            [
                -x * (1.0 + y * eta_bt),
                0.5 * eta_bt * (1.0 - x * x),
            ],
            dim=-1,
        )  # (*batch, 2, 2)

        xi_rl = nodes[[5, 7], 0]
        d_right_left = torch.stack(
            [
                0.5 * xi_rl * (1.0 - y * y),
                -y * (1.0 + x * xi_rl),
            ],
            dim=-1,
        )  # (*batch, 2, 2)

        return torch.cat(
            [
                d_corners,
                d_bottom_top[..., 0:1, :],
                d_right_left[..., 0:1, :],
                d_bottom_top[..., 1:2, :],
                d_right_left[..., 1:2, :],
            ],
            dim=-2,
        )


QUAD4 = Quad4()
QUAD8 = Quad8()
