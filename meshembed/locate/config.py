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

r"""
Tuning parameters for :class:`~meshembed.locate.BarycentricContainer`.

Built as a frozen dataclass so one configuration can be shared by several
containers; use :meth:`ContainerConfig.replace` to derive variants and
:meth:`ContainerConfig.from_dict` to load one from a plain mapping (e.g. a
parsed YAML or JSON file).
"""

import dataclasses
from dataclasses import dataclass, fields
from typing import Any, Literal, Mapping

OutsidePolicy = Literal["fill", "skip"]

_OUTSIDE_POLICIES = ("fill", "skip")


@dataclass(frozen=True)
class ContainerConfig:
    r"""Point location and interpolation settings.

    Parameters
    ----------
    tolerance : float, optional, default=1e-10
        Newton convergence threshold on the world-space residual, relative to
        the element's characteristic size.
    max_iterations : int, optional, default=20
        Newton iteration cap per ``(element, point)`` pair.
    inside_tolerance : float, optional, default=1e-8
        Slack on the reference-domain test, in local units. Points on shared
        faces are accepted by every adjacent element.
    rcond : float, optional, default=1e-12
        A Jacobian with ``sigma_min <= rcond * sigma_max`` is treated as
        singular and the pair is reported as not converged.
    leaf_size : int, optional, default=8
        Maximum number of elements per BVH leaf.
    bounding_box_tolerance : float, optional, default=1e-6
        Slack added to every element bounding box in the BVH query, relative
        to the container's overall extent.
    max_candidates_per_point : int or None, optional, default=None
        Cap on the number of elements tested per point. ``None`` tests every
        candidate, so no containing element is ever missed.
    chunk_size : int, optional, default=65536
        Number of query points located per batch.
    outside_policy : {"fill", "skip"}, optional, default="fill"
        What :meth:`~meshembed.locate.BarycentricContainer.interpolate_field`
        writes for embedded nodes without a containing element.
    fill_value : float, optional, default=0.0
        Value written for outside nodes under the ``"fill"`` policy.
    """

    tolerance: float = 1e-10
    max_iterations: int = 20
    inside_tolerance: float = 1e-8
    rcond: float = 1e-12
    leaf_size: int = 8
    bounding_box_tolerance: float = 1e-6
    max_candidates_per_point: int | None = None
    chunk_size: int = 65536
    outside_policy: OutsidePolicy = "fill"
    fill_value: float = 0.0

    def __post_init__(self):
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance=}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations=}")
        if self.inside_tolerance < 0:
            raise ValueError(
                f"inside_tolerance must be non-negative, got {self.inside_tolerance=}"
            )
        if not 0 <= self.rcond < 1:
            raise ValueError(f"rcond must be in [0, 1), got {self.rcond=}")
        if self.leaf_size < 1:
            raise ValueError(f"leaf_size must be >= 1, got {self.leaf_size=}")
        if self.bounding_box_tolerance < 0:
            raise ValueError(
                f"bounding_box_tolerance must be non-negative, "
                f"got {self.bounding_box_tolerance=}"
            )
        if self.max_candidates_per_point is not None and self.max_candidates_per_point < 1:
            raise ValueError(
                f"max_candidates_per_point must be None or >= 1, "
                f"got {self.max_candidates_per_point=}"
            )
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size=}")
        if self.outside_policy not in _OUTSIDE_POLICIES:
            raise ValueError(
                f"outside_policy must be one of {_OUTSIDE_POLICIES}, "
                f"got {self.outside_policy=}"
            )

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "ContainerConfig":
        r"""Build a configuration from a mapping of field names to values.

        Raises
        ------
        ValueError
            If the mapping holds keys that are not configuration fields.
        """
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ValueError(
                f"Unknown ContainerConfig keys {unknown}; valid keys are {sorted(known)}"
            )
        return cls(**mapping)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def replace(self, **changes: Any) -> "ContainerConfig":
        """Return a copy with ``changes`` applied (validated again)."""
        return dataclasses.replace(self, **changes)
