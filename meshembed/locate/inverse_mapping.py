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

r"""Inversion of the isoparametric mapping.

Given an element with node positions :math:`x_i` and a world point :math:`p`,
find local coordinates :math:`\xi` with :math:`x(\xi) = p`. The mapping is
nonlinear for anything but affine elements, so it is solved with Newton's
method,

.. math::

    \xi_{k+1} = \xi_k + J(\xi_k)^{+} \left(p - x(\xi_k)\right),

starting from the reference center. :math:`J^{+}` is the Moore-Penrose
pseudo-inverse, which also covers elements embedded in a higher-dimensional
space (a segment in 2D, a triangle in 3D); there the iteration is a
Gauss-Newton least-squares fit, and only points lying on the element can
reach a zero residual.

Every ``(element, point)`` pair is solved independently and all pairs of a
batch iterate together; pairs drop out of the working set as soon as they
converge or fail.
"""

import enum

import torch
from tensordict import tensorclass

from meshembed.elements import ElementType
from meshembed.utilities import characteristic_size, rounding_floor


class MappingStatus(enum.IntEnum):
    """Outcome of an inverse mapping solve."""

    INSIDE = 0
    """Converged, and the local coordinates lie in the reference domain."""
    OUTSIDE = 1
    """Converged on the element's extension, outside the reference domain."""
    NOT_CONVERGED = 2
    """Iteration cap, stagnation, non-finite iterate or singular Jacobian."""


@tensorclass
class InverseMappingResult:
    """Per-pair result of :func:`invert_mapping`.

    Attributes
    ----------
    local_coordinates : torch.Tensor
        Last iterate, shape ``(n_pairs, n_local_dims)``. Only meaningful where
        ``status`` is not ``NOT_CONVERGED``.
    status : torch.Tensor
        :class:`MappingStatus` values, shape ``(n_pairs,)``, int64.
    residual : torch.Tensor
        World-space residual norm ``|p - x(xi)|`` at the last iterate.
    n_iterations : torch.Tensor
        Newton updates applied to each pair, int64.
    """

    local_coordinates: torch.Tensor
    status: torch.Tensor
    residual: torch.Tensor
    n_iterations: torch.Tensor

    @property
    def inside(self) -> torch.Tensor:
        """Boolean mask of pairs whose point lies in the element."""
        return self.status == MappingStatus.INSIDE

    @property
    def converged(self) -> torch.Tensor:
        return self.status != MappingStatus.NOT_CONVERGED


def invert_mapping(
    element_type: ElementType,
    node_positions: torch.Tensor,
    points: torch.Tensor,
    tolerance: float = 1e-10,
    max_iterations: int = 20,
    inside_tolerance: float = 1e-8,
    rcond: float = 1e-12,
) -> InverseMappingResult:
    r"""Find the local coordinates of points in elements.

    Parameters
    ----------
    element_type : ElementType
        Geometry shared by all elements.
    node_positions : torch.Tensor
        Node coordinates of the element of each pair, shape
        ``(n_pairs, n_nodes, n_spatial_dims)``.
    points : torch.Tensor
        World point of each pair, shape ``(n_pairs, n_spatial_dims)``.
    tolerance : float, optional
        A pair converges once ``|p - x(xi)| <= tolerance * element_size``,
        with ``element_size`` the largest edge of the element's node box. The
        threshold never drops below the rounding floor of the coordinates
        (see :func:`~meshembed.utilities.rounding_floor`), so float32 inputs
        and meshes far from the origin still converge.
    max_iterations : int, optional
        Maximum number of Newton updates per pair.
    inside_tolerance : float, optional
        Slack of the reference-domain test applied to converged pairs, raised
        per pair to the rounding floor expressed in local units.
    rcond : float, optional
        Jacobians with ``sigma_min <= rcond * sigma_max`` are singular.

    Returns
    -------
    InverseMappingResult
        Batch size ``(n_pairs,)``.

    Raises
    ------
    ValueError
        If the input shapes are inconsistent.

    Examples
    --------
    >>> from meshembed.elements import QUAD4
    >>> nodes = torch.tensor(
    ...     [[[0.0, 0.0], [2.0, 0.0], [2.0, 2.0], [0.0, 2.0]]], dtype=torch.float64
    ... )
    >>> result = invert_mapping(QUAD4, nodes, torch.tensor([[1.5, 0.5]], dtype=torch.float64))
    >>> result.local_coordinates
    tensor([[ 0.5000, -0.5000]], dtype=torch.float64)
    >>> MappingStatus(int(result.status[0])).name
    'INSIDE'
    """
    ### Validate inputs
    if node_positions.ndim != 3 or node_positions.shape[1] != element_type.n_nodes:
        raise ValueError(
            f"node_positions must have shape (n_pairs, {element_type.n_nodes}, "
            f"n_spatial_dims), got {tuple(node_positions.shape)}"
        )
    if points.ndim != 2 or points.shape != (node_positions.shape[0], node_positions.shape[2]):
        raise ValueError(
            f"points must have shape (n_pairs, n_spatial_dims) = "
            f"{(node_positions.shape[0], node_positions.shape[2])}, got {tuple(points.shape)}"
        )

    n_pairs = points.shape[0]
    n_local_dims = element_type.n_local_dims
    device, dtype = points.device, points.dtype
    node_positions = node_positions.to(dtype)

    local_coordinates = (
        element_type.reference_center(dtype, device).expand(n_pairs, n_local_dims).clone()
    )
    status = torch.full(
        (n_pairs,), int(MappingStatus.NOT_CONVERGED), dtype=torch.long, device=device
    )
    residual = torch.full((n_pairs,), float("inf"), dtype=dtype, device=device)
    n_iterations = torch.zeros(n_pairs, dtype=torch.long, device=device)

    size = characteristic_size(node_positions)  # (n_pairs,)
    floor = rounding_floor(size + points.abs().amax(dim=-1))
    threshold = torch.maximum(tolerance * size, floor)
    inside_slack = (floor / size).clamp(min=inside_tolerance)
    stagnation = 8.0 * torch.finfo(dtype).eps

    active = torch.arange(n_pairs, device=device)
    for iteration in range(max_iterations + 1):
        if len(active) == 0:
            break

        xi = local_coordinates[active]
        nodes = node_positions[active]
        delta_x = points[active] - element_type.world_coordinates(nodes, xi)
        residual_norm = delta_x.norm(dim=-1)
        residual[active] = residual_norm
        n_iterations[active] = iteration

        ### Settle converged pairs
        finite = torch.isfinite(xi).all(dim=-1) & torch.isfinite(residual_norm)
        converged = finite & (residual_norm <= threshold[active])
        if converged.any():
            settled = active[converged]
            is_inside = element_type.contains_local(
                xi[converged], inside_slack[settled]
            )
            status[settled] = torch.where(
                is_inside,
                int(MappingStatus.INSIDE),
                int(MappingStatus.OUTSIDE),
            )

        if iteration == max_iterations:
            break

        # Non-finite pairs drop out here and stay NOT_CONVERGED
        keep = finite & ~converged
        active = active[keep]
        xi = xi[keep]
        nodes = nodes[keep]
        delta_x = delta_x[keep]
        if len(active) == 0:
            break

        ### Newton update
        jac = element_type.jacobian(nodes, xi)  # (m, D, L)
        singular_values = torch.linalg.svdvals(jac)  # (m, min(D, L)), descending
        regular = singular_values[:, -1] > rcond * singular_values[:, 0]
        active = active[regular]
        if len(active) == 0:
            break

        step = (
            torch.linalg.pinv(jac[regular]) @ delta_x[regular].unsqueeze(-1)
        ).squeeze(-1)
        xi = xi[regular] + step
        local_coordinates[active] = xi

        # A vanishing step with a residual still above threshold is a fixed point
        # off the element (non-square Jacobian) or a numerical floor.
        moving = step.norm(dim=-1) > stagnation * (1.0 + xi.norm(dim=-1))
        n_iterations[active[~moving]] = iteration + 1
        active = active[moving]

    return InverseMappingResult(
        local_coordinates=local_coordinates,
        status=status,
        residual=residual,
        n_iterations=n_iterations,
        batch_size=torch.Size([n_pairs]),
    )
