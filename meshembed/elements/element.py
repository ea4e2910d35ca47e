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

"""A single element: an element type bound to concrete node positions."""

import torch

from meshembed.elements.base import ElementType, GaussNodes


class Element:
    """View of one element of a domain.

    Local coordinates passed to the methods below may be a single point
    ``(n_local_dims,)`` or a batch ``(n, n_local_dims)``.

    Parameters
    ----------
    element_type : ElementType
        Geometry of the element.
    node_positions : torch.Tensor
        World coordinates of the element's nodes, shape ``(n_nodes, n_spatial_dims)``.
    index : int or None, optional
        Position of the element in its domain, if any.
    """

    def __init__(
        self,
        element_type: ElementType,
        node_positions: torch.Tensor,
        index: int | None = None,
    ) -> None:
        if node_positions.ndim != 2 or node_positions.shape[0] != element_type.n_nodes:
            raise ValueError(
                f"{element_type.name} needs node positions of shape "
                f"({element_type.n_nodes}, n_spatial_dims), "
                f"got {tuple(node_positions.shape)}."
            )
        self.element_type = element_type
        self.node_positions = node_positions
        self.index = index

    def __repr__(self) -> str:
        return (
            f"Element(type={self.element_type.name}, index={self.index}, "
            f"n_spatial_dims={self.n_spatial_dims})"
        )

    @property
    def n_spatial_dims(self) -> int:
        return self.node_positions.shape[1]

    def _nodes_for(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        return self.node_positions.expand(
            *local_coordinates.shape[:-1], *self.node_positions.shape
        )

    def _as_local(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        return torch.as_tensor(
            local_coordinates,
            dtype=self.node_positions.dtype,
            device=self.node_positions.device,
        )

    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        return self.element_type.shape_functions(self._as_local(local_coordinates))

    def world_coordinates(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        """Map local coordinates to world coordinates."""
        xi = self._as_local(local_coordinates)
        return self.element_type.world_coordinates(self._nodes_for(xi), xi)

    def jacobian(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        """Jacobian ``dx/dxi``, shape ``(..., n_spatial_dims, n_local_dims)``."""
        xi = self._as_local(local_coordinates)
        return self.element_type.jacobian(self._nodes_for(xi), xi)

    def center(self) -> torch.Tensor:
        """World position of the reference domain's center."""
        return self.world_coordinates(
            self.element_type.reference_center(
                self.node_positions.dtype, self.node_positions.device
            )
        )

    def gauss_nodes(self) -> GaussNodes:
        """Quadrature nodes in local coordinates (map with :meth:`world_coordinates`)."""
        return self.element_type.gauss_nodes(
            self.node_positions.dtype, self.node_positions.device
        )

    def bounding_box(self) -> tuple[torch.Tensor, torch.Tensor]:
        """Axis-aligned box bounding the element, padded for curved elements."""
        return self.element_type.bounding_boxes(self.node_positions)

    def contains_local(
        self, local_coordinates: torch.Tensor, tolerance: float = 0.0
    ) -> torch.Tensor:
        return self.element_type.contains_local(
            self._as_local(local_coordinates), tolerance
        )
