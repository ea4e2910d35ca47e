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

r"""Element geometry capability interface.

Every element type maps a point :math:`\xi` of its reference domain to world
space through its shape functions,

.. math::

    x(\xi) = \sum_i N_i(\xi) \, x_i,

where :math:`x_i` are the element's node positions. The same basis is used to
interpolate any nodal field, so a point placed with :meth:`ElementType.world_coordinates`
and a field evaluated with :meth:`ElementType.interpolate` at the same local
coordinates are always consistent.

Batching convention
-------------------
Local coordinates have shape ``(*batch, n_local_dims)``. Node tables passed
alongside them have shape ``(*batch, n_nodes, *field_shape)``: one node table
per batch entry, with ``batch`` broadcastable between the two.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple

import torch


class GaussNodes(NamedTuple):
    """Quadrature nodes in local coordinates and their weights."""

    positions: torch.Tensor  # shape: (n_gauss, n_local_dims)
    weights: torch.Tensor  # shape: (n_gauss,)


class ElementType(ABC):
    """Capability set of one element type (shape, order, node layout).

    Concrete types are stateless singletons; all geometry enters through the
    node tables passed to each method.

    Attributes
    ----------
    name : str
        Unique registry name, e.g. ``"quad4"``.
    n_nodes : int
        Number of nodes per element.
    n_local_dims : int
        Dimension of the reference domain.
    order : int
        Polynomial order of the geometric interpolation.
    bounding_box_padding : float
        Fraction of the node bounding box extent added on every side when
        bounding the element. Zero for linear elements, whose image always
        lies in the convex hull of their nodes; positive for higher-order
        elements whose curved edges may bulge past their nodes.
    """

    name: str
    n_nodes: int
    n_local_dims: int
    order: int = 1
    bounding_box_padding: float = 0.0

    _reference_nodes: tuple[tuple[float, ...], ...]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    ### Reference domain ###

    def reference_nodes(
        self,
        dtype: torch.dtype = torch.float64,
        device: torch.device | str | None = None,
    ) -> torch.Tensor:
        """Local coordinates of the element's nodes, shape ``(n_nodes, n_local_dims)``."""
        return torch.tensor(self._reference_nodes, dtype=dtype, device=device)

    @abstractmethod
    def reference_center(
        self,
        dtype: torch.dtype = torch.float64,
        device: torch.device | str | None = None,
    ) -> torch.Tensor:
        """Local coordinates of the reference domain's center, shape ``(n_local_dims,)``."""

    @abstractmethod
    def gauss_nodes(
        self,
        dtype: torch.dtype = torch.float64,
        device: torch.device | str | None = None,
    ) -> GaussNodes:
        """Quadrature nodes of the element's default integration rule."""

    @abstractmethod
    def contains_local(
        self, local_coordinates: torch.Tensor, tolerance: float | torch.Tensor = 0.0
    ) -> torch.Tensor:
        """Test whether local coordinates lie in the reference domain.

        Parameters
        ----------
        local_coordinates : torch.Tensor
            Shape ``(*batch, n_local_dims)``.
        tolerance : float or torch.Tensor
            Slack admitted past the reference boundary, in local units. A
            tensor gives one slack per point, shape ``(*batch,)``.

        Returns
        -------
        torch.Tensor
            Boolean tensor of shape ``(*batch,)``.
        """

    ### Shape functions ###

    @abstractmethod
    def shape_functions(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        """Evaluate all shape functions, ``(*batch, n_local_dims) -> (*batch, n_nodes)``."""

    @abstractmethod
    def shape_derivatives(self, local_coordinates: torch.Tensor) -> torch.Tensor:
        """Evaluate shape function gradients w.r.t. local coordinates.

        Returns a tensor of shape ``(*batch, n_nodes, n_local_dims)``.
        """

    ### Mapping ###

    def interpolate(
        self, node_values: torch.Tensor, local_coordinates: torch.Tensor
    ) -> torch.Tensor:
        """Interpolate nodal values at local coordinates.

        Parameters
        ----------
        node_values : torch.Tensor
            Values at the element's nodes, shape ``(*batch, n_nodes, *field_shape)``.
        local_coordinates : torch.Tensor
            Shape ``(*batch, n_local_dims)``.

        Returns
        -------
        torch.Tensor
            Interpolated values, shape ``(*batch, *field_shape)``.
        """
        self._check_local_coordinates(local_coordinates)
        shape_values = self.shape_functions(local_coordinates).to(node_values.dtype)
        node_axis = shape_values.ndim - 1
        n_field_dims = node_values.ndim - shape_values.ndim
        if n_field_dims < 0 or node_values.shape[node_axis] != self.n_nodes:
            raise ValueError(
                f"{self.name}: node values must have shape (*batch, {self.n_nodes}, "
                f"*field_shape) for local coordinates of shape "
                f"{tuple(local_coordinates.shape)}, got {tuple(node_values.shape)}."
            )
        shape_values = shape_values.reshape(*shape_values.shape, *([1] * n_field_dims))
        return (shape_values * node_values).sum(dim=node_axis)

    def world_coordinates(
        self, node_positions: torch.Tensor, local_coordinates: torch.Tensor
    ) -> torch.Tensor:
        """Forward mapping, ``(*batch, n_nodes, D), (*batch, L) -> (*batch, D)``."""
        if node_positions.ndim != local_coordinates.ndim + 1:
            raise ValueError(
                f"node_positions must have shape (*batch, n_nodes, n_spatial_dims) "
                f"matching local coordinates {tuple(local_coordinates.shape)}, "
                f"got {tuple(node_positions.shape)}."
            )
        return self.interpolate(node_positions, local_coordinates)

    def jacobian(
        self, node_positions: torch.Tensor, local_coordinates: torch.Tensor
    ) -> torch.Tensor:
        """Jacobian of the forward mapping, shape ``(*batch, n_spatial_dims, n_local_dims)``."""
        self._check_local_coordinates(local_coordinates)
        derivatives = self.shape_derivatives(local_coordinates).to(node_positions.dtype)
        return torch.einsum("...nl,...nd->...dl", derivatives, node_positions)

    def bounding_boxes(
        self, node_positions: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Axis-aligned boxes enclosing elements, ``(*batch, n_nodes, D) -> 2 x (*batch, D)``.

        The node box is grown by ``bounding_box_padding`` times its largest
        edge on every side.
        """
        lower = node_positions.amin(dim=-2)
        upper = node_positions.amax(dim=-2)
        if self.bounding_box_padding > 0.0:
            padding = self.bounding_box_padding * (upper - lower).amax(
                dim=-1, keepdim=True
            )
            lower = lower - padding
            upper = upper + padding
        return lower, upper

    def _check_local_coordinates(self, local_coordinates: torch.Tensor) -> None:
        if local_coordinates.ndim < 1 or local_coordinates.shape[-1] != self.n_local_dims:
            raise ValueError(
                f"{self.name}: local coordinates must have a trailing dimension of "
                f"{self.n_local_dims}, got shape {tuple(local_coordinates.shape)}."
            )


class HypercubeElement(ElementType):
    """Element whose reference domain is ``[-1, 1]^n_local_dims``."""

    gauss_points_per_axis: int = 2

    def reference_center(self, dtype=torch.float64, device=None) -> torch.Tensor:
        return torch.zeros(self.n_local_dims, dtype=dtype, device=device)

    def gauss_nodes(self, dtype=torch.float64, device=None) -> GaussNodes:
        from meshembed.elements.quadrature import hypercube_rule

        return GaussNodes(
            *hypercube_rule(
                self.gauss_points_per_axis, self.n_local_dims, dtype=dtype, device=device
            )
        )

    def contains_local(
        self, local_coordinates: torch.Tensor, tolerance: float | torch.Tensor = 0.0
    ) -> torch.Tensor:
        slack = _as_slack(tolerance, local_coordinates)
        return (local_coordinates.abs() <= 1.0 + slack.unsqueeze(-1)).all(dim=-1)


class SimplexElement(ElementType):
    """Element whose reference domain is the unit simplex ``xi_k >= 0, sum(xi) <= 1``."""

    n_gauss_points: int = 1

    def reference_center(self, dtype=torch.float64, device=None) -> torch.Tensor:
        return torch.full(
            (self.n_local_dims,), 1.0 / (self.n_local_dims + 1), dtype=dtype, device=device
        )

    def gauss_nodes(self, dtype=torch.float64, device=None) -> GaussNodes:
        from meshembed.elements.quadrature import simplex_rule

        return GaussNodes(
            *simplex_rule(self.n_gauss_points, self.n_local_dims, dtype=dtype, device=device)
        )

    def contains_local(
        self, local_coordinates: torch.Tensor, tolerance: float | torch.Tensor = 0.0
    ) -> torch.Tensor:
        slack = _as_slack(tolerance, local_coordinates)
        non_negative = (local_coordinates >= -slack.unsqueeze(-1)).all(dim=-1)
        return non_negative & (local_coordinates.sum(dim=-1) <= 1.0 + slack)


### Shared shape function kernels ###


def multilinear_shape_functions(
    local_coordinates: torch.Tensor, corner_signs: torch.Tensor
) -> torch.Tensor:
    """Tensor-product linear Lagrange basis on ``[-1, 1]^d``.

    ``N_i = prod_k (1 + s_ik * xi_k) / 2^d`` where ``s_ik = +-1`` are the
    reference coordinates of corner ``i``.
    """
    n_dims = corner_signs.shape[-1]
    factors = 1.0 + local_coordinates.unsqueeze(-2) * corner_signs  # (*batch, n, d)
    return factors.prod(dim=-1) / 2**n_dims


def multilinear_shape_derivatives(
    local_coordinates: torch.Tensor, corner_signs: torch.Tensor
) -> torch.Tensor:
    """Gradients of :func:`multilinear_shape_functions`, shape ``(*batch, n, d)``."""
    n_dims = corner_signs.shape[-1]
    factors = 1.0 + local_coordinates.unsqueeze(-2) * corner_signs  # (*batch, n, d)
    columns = []
    for k in range(n_dims):
        # Product over every axis except k (empty product is 1 for d == 1)
        others = torch.cat([factors[..., :k], factors[..., k + 1 :]], dim=-1)
        columns.append(corner_signs[:, k] * others.prod(dim=-1))
    return torch.stack(columns, dim=-1) / 2**n_dims


def simplex_barycentric(
    local_coordinates: torch.Tensor,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Barycentric coordinates of a point of the unit simplex and their gradients.

    Returns
    -------
    tuple[torch.Tensor, torch.Tensor]
        ``(lambdas, gradients)`` with shapes ``(*batch, d + 1)`` and
        ``(d + 1, d)``; ``lambda_0 = 1 - sum(xi)`` and ``lambda_k = xi_{k-1}``.
    """
    n_dims = local_coordinates.shape[-1]
    lambda_0 = 1.0 - local_coordinates.sum(dim=-1, keepdim=True)
    lambdas = torch.cat([lambda_0, local_coordinates], dim=-1)
    gradients = torch.cat(
        [
            -torch.ones(
                1, n_dims, dtype=local_coordinates.dtype, device=local_coordinates.device
            ),
            torch.eye(n_dims, dtype=local_coordinates.dtype, device=local_coordinates.device),
        ]
    )
    return lambdas, gradients


def quadratic_simplex_shape_functions(
    local_coordinates: torch.Tensor, edges: tuple[tuple[int, int], ...]
) -> torch.Tensor:
    """Quadratic Lagrange basis on the unit simplex.

    Corner ``i``: ``lambda_i (2 lambda_i - 1)``. Mid-edge node on ``(i, j)``:
    ``4 lambda_i lambda_j``. Nodes are ordered corners first, then ``edges``.
    """
    lambdas, _ = simplex_barycentric(local_coordinates)
    corners = lambdas * (2.0 * lambdas - 1.0)
    i, j = _edge_endpoints(edges, lambdas.device)
    mids = 4.0 * lambdas[..., i] * lambdas[..., j]
    return torch.cat([corners, mids], dim=-1)


def quadratic_simplex_shape_derivatives(
    local_coordinates: torch.Tensor, edges: tuple[tuple[int, int], ...]
) -> torch.Tensor:
    """Gradients of :func:`quadratic_simplex_shape_functions`, ``(*batch, n, d)``."""
    lambdas, gradients = simplex_barycentric(local_coordinates)
    corners = (4.0 * lambdas - 1.0).unsqueeze(-1) * gradients
    i, j = _edge_endpoints(edges, lambdas.device)
    mids = 4.0 * (
        lambdas[..., i].unsqueeze(-1) * gradients[j]
        + lambdas[..., j].unsqueeze(-1) * gradients[i]
    )
    return torch.cat([corners, mids], dim=-2)


def _edge_endpoints(
    edges: tuple[tuple[int, int], ...], device: torch.device
) -> tuple[torch.Tensor, torch.Tensor]:
    pairs = torch.tensor(edges, dtype=torch.long, device=device)
    return pairs[:, 0], pairs[:, 1]


def _as_slack(
    tolerance: float | torch.Tensor, local_coordinates: torch.Tensor
) -> torch.Tensor:
    return torch.as_tensor(
        tolerance, dtype=local_coordinates.dtype, device=local_coordinates.device
    )
