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

import torch
from tensordict import tensorclass

NOT_FOUND = -1
"""Element index recorded for points with no containing element."""


@tensorclass
class LocatedPoints:
    """Containing element and local coordinates of a batch of points.

    Attributes
    ----------
    element_indices : torch.Tensor
        Index of the containing element in the container domain, shape
        ``(n_points,)``, int64, :data:`NOT_FOUND` when no element contains the
        point.
    local_coordinates : torch.Tensor
        Reference-frame coordinates in that element, shape
        ``(n_points, n_local_dims)``. NaN for points that were not found.

    Examples
    --------
    >>> located = container.locate(points)  # doctest: +SKIP
    >>> located.outside_indices  # doctest: +SKIP
    tensor([0, 3])
    >>> located[1].element_indices  # doctest: +SKIP
    tensor(2)
    """

    element_indices: torch.Tensor  # shape: (n_points,), dtype: int64
    local_coordinates: torch.Tensor  # shape: (n_points, n_local_dims)

    @classmethod
    def not_found(
        cls,
        n_points: int,
        n_local_dims: int,
        dtype: torch.dtype = torch.float64,
        device: torch.device | str | None = None,
    ) -> "LocatedPoints":
        """All points marked as not found."""
        return cls(
            element_indices=torch.full(
                (n_points,), NOT_FOUND, dtype=torch.long, device=device
            ),
            local_coordinates=torch.full(
                (n_points, n_local_dims), float("nan"), dtype=dtype, device=device
            ),
            batch_size=torch.Size([n_points]),
        )

    @property
    def found(self) -> torch.Tensor:
        """Boolean mask of points with a containing element."""
        return self.element_indices != NOT_FOUND

    @property
    def n_points(self) -> int:
        return self.element_indices.numel()

    @property
    def outside_indices(self) -> torch.Tensor:
        """Sorted indices of points with no containing element."""
        return torch.where(~self.found.reshape(-1))[0]
