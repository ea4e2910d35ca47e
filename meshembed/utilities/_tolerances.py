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

"""Dtype-aware numerical floors for geometric tolerances.

Point location compares residuals against ``tolerance * element_size``. For a
degenerate element (all nodes coincident) the size is zero and the comparison
would only accept an exact hit, so sizes are clamped from below with
:func:`safe_eps`, a floor derived from the dtype alone:

==========  =============
dtype       ``safe_eps``
==========  =============
float32     ~3.3e-10
float64     ~1.2e-77
==========  =============
"""

import torch


def safe_eps(dtype: torch.dtype) -> float:
    """Return a dtype-aware positive floor, ``torch.finfo(dtype).tiny ** 0.25``.

    Parameters
    ----------
    dtype : torch.dtype
        Floating-point dtype of the quantity being clamped.

    Returns
    -------
    float
        Small positive floor value.
    """
    return torch.finfo(dtype).tiny ** 0.25


def characteristic_size(node_positions: torch.Tensor) -> torch.Tensor:
    """Largest bounding-box edge of each element, clamped by :func:`safe_eps`.

    Parameters
    ----------
    node_positions : torch.Tensor
        Element node coordinates, shape ``(..., n_nodes, n_spatial_dims)``.

    Returns
    -------
    torch.Tensor
        Shape ``(...)``.
    """
    extent = node_positions.amax(dim=-2) - node_positions.amin(dim=-2)
    return extent.amax(dim=-1).clamp(min=safe_eps(node_positions.dtype))


def rounding_floor(magnitude: torch.Tensor, factor: float = 64.0) -> torch.Tensor:
    """Smallest difference resolvable between coordinates of a given magnitude.

    Residuals of a forward mapping evaluated at coordinates of size
    ``magnitude`` carry rounding error of order ``eps * magnitude``; a
    convergence threshold below this floor can never be met.

    Parameters
    ----------
    magnitude : torch.Tensor
        Coordinate magnitude, any shape, floating-point.
    factor : float
        Multiple of machine epsilon admitted.

    Returns
    -------
    torch.Tensor
        ``factor * eps * magnitude``, same shape and dtype as ``magnitude``.
    """
    return factor * torch.finfo(magnitude.dtype).eps * magnitude
