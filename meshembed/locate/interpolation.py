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

r"""Shape-function interpolation of nodal fields at located points.

For a point with containing element :math:`e` and local coordinates
:math:`\xi`, the interpolated value is

.. math::

    f(p) = \sum_i N_i(\xi) \, f_{c_{e,i}},

with :math:`c_{e,i}` the container node of local node :math:`i`. This is the
same basis that places the point, so interpolating the container's own node
positions reproduces the located points.
"""

from typing import TYPE_CHECKING

import torch
from tensordict import TensorDict

from meshembed.locate.exceptions import DimensionMismatchError

if TYPE_CHECKING:
    from meshembed.mesh import Domain


def interpolate_at(
    domain: "Domain",
    nodal_values: torch.Tensor,
    element_indices: torch.Tensor,
    local_coordinates: torch.Tensor,
) -> torch.Tensor:
    """Interpolate a nodal field of the container at located points.

    Parameters
    ----------
    domain : Domain
        Container domain the element indices refer to.
    nodal_values : torch.Tensor
        One row per node of ``domain.mesh``, shape ``(n_points, *field_shape)``.
    element_indices : torch.Tensor
        Containing element of each point, shape ``(n,)``. Must be valid
        indices; filter out not-found points first.
    local_coordinates : torch.Tensor
        Shape ``(n, n_local_dims)``.

    Returns
    -------
    torch.Tensor
        Shape ``(n, *field_shape)``, dtype of ``nodal_values``.

    Raises
    ------
    DimensionMismatchError
        If ``nodal_values`` does not have one row per container node.
    TypeError
        If ``nodal_values`` is not floating-point.
    """
    if not torch.is_floating_point(nodal_values):
        raise TypeError(
            f"nodal_values must be floating-point, but got {nodal_values.dtype=}."
        )
    n_mesh_points = domain.mesh.n_points
    if nodal_values.ndim < 1 or nodal_values.shape[0] != n_mesh_points:
        raise DimensionMismatchError(
            f"nodal_values must have one row per container node ({n_mesh_points}), "
            f"but got {tuple(nodal_values.shape)=}."
        )
    if element_indices.shape[0] != local_coordinates.shape[0]:
        raise DimensionMismatchError(
            f"element_indices and local_coordinates disagree on the number of points: "
            f"{element_indices.shape[0]=} != {local_coordinates.shape[0]=}."
        )

    node_values = nodal_values[domain.cells[element_indices]]  # (n, n_nodes, *field_shape)
    return domain.element_type.interpolate(
        node_values, local_coordinates.to(nodal_values.device)
    )


def interpolate_tensordict_at(
    domain: "Domain",
    data: TensorDict,
    element_indices: torch.Tensor,
    local_coordinates: torch.Tensor,
) -> TensorDict:
    """Interpolate every field of a per-node ``TensorDict`` at located points.

    Non-floating fields (labels, ids) cannot be blended and are skipped.

    Returns
    -------
    TensorDict
        Batch size ``(n,)``, one entry per floating-point field of ``data``.
    """
    n_out = element_indices.shape[0]
    floating_keys = [
        key
        for key, values in data.items(include_nested=True, leaves_only=True)
        if torch.is_floating_point(values)
    ]
    if not floating_keys:
        return TensorDict({}, batch_size=torch.Size([n_out]), device=data.device)

    return data.select(*floating_keys).apply(
        lambda values: interpolate_at(domain, values, element_indices, local_coordinates),
        batch_size=torch.Size([n_out]),
    )
