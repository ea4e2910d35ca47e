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

r"""Node tables and element domains.

A :class:`Mesh` owns an ordered table of node positions and any number of
named :class:`Domain` objects. A domain groups elements of a single
:class:`~meshembed.elements.ElementType`; its connectivity rows index into
the mesh's node table.

Meshes are compared by identity: two meshes with equal coordinates are still
distinct keys for embedded-mesh caches.

Examples
--------
>>> import torch
>>> from meshembed import Mesh
>>> points = torch.tensor(
...     [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]], dtype=torch.float64
... )
>>> mesh = Mesh(points)
>>> quads = mesh.add_domain("quads", "quad4", torch.tensor([[0, 1, 2, 3]]))
>>> quads.n_elements, mesh.n_spatial_dims
(1, 2)
"""

import types

import torch
from tensordict import TensorDict

from meshembed.elements import Element, ElementType, resolve_element_type


class Mesh:
    """Ordered node positions with named element domains and per-node data.

    Parameters
    ----------
    points : torch.Tensor
        Node coordinates, shape ``(n_points, n_spatial_dims)`` with
        ``n_spatial_dims`` in {1, 2, 3}. Must be floating-point.
    point_data : TensorDict or dict[str, torch.Tensor], optional
        Per-node fields. Dicts are converted to a ``TensorDict`` with batch
        size ``(n_points,)``.

    Raises
    ------
    ValueError
        If ``points`` is not 2D or its spatial dimension is not 1, 2 or 3.
    TypeError
        If ``points`` is not floating-point.
    """

    def __init__(
        self,
        points: torch.Tensor,
        point_data: TensorDict | dict[str, torch.Tensor] | None = None,
    ) -> None:
        if points.ndim != 2:
            raise ValueError(
                f"`points` must have shape (n_points, n_spatial_dims), but got {points.shape=}."
            )
        if not torch.is_floating_point(points):
            raise TypeError(
                f"`points` must be floating-point, but got {points.dtype=}."
            )
        if points.shape[1] not in (1, 2, 3):
            raise ValueError(
                f"`points` must live in 1, 2 or 3 dimensions, but got {points.shape[1]=}."
            )
        self.points = points

        if isinstance(point_data, TensorDict):
            # Shallow copy: the caller's batch size stays as it was
            point_data = point_data.copy()
            point_data.batch_size = torch.Size([self.n_points])
        else:
            point_data = TensorDict(
                {} if point_data is None else dict(point_data),
                batch_size=torch.Size([self.n_points]),
                device=self.points.device,
            )
        self.point_data = point_data
        self._domains: dict[str, Domain] = {}

    def __repr__(self) -> str:
        domains = ", ".join(
            f"{name}: {domain.n_elements} x {domain.element_type.name}"
            for name, domain in self._domains.items()
        )
        return (
            f"Mesh(n_points={self.n_points}, n_spatial_dims={self.n_spatial_dims}, "
            f"domains={{{domains}}})"
        )

    @property
    def n_points(self) -> int:
        return self.points.shape[0]

    @property
    def n_spatial_dims(self) -> int:
        return self.points.shape[1]

    @property
    def domains(self) -> types.MappingProxyType:
        """Read-only mapping from domain name to :class:`Domain`."""
        return types.MappingProxyType(self._domains)

    def position(self, node_index: int) -> torch.Tensor:
        """World coordinates of one node, shape ``(n_spatial_dims,)``."""
        node_index = int(node_index)
        if not -self.n_points <= node_index < self.n_points:
            raise IndexError(
                f"Node index {node_index} out of range for a mesh with {self.n_points} nodes."
            )
        return self.points[node_index]

    def add_domain(
        self,
        name: str,
        element_type: ElementType | str,
        cells: torch.Tensor,
    ) -> "Domain":
        """Attach a domain of elements of one type to this mesh.

        Parameters
        ----------
        name : str
            Unique domain name.
        element_type : ElementType or str
            Element type, or its registered name (e.g. ``"quad4"``).
        cells : torch.Tensor
            Connectivity, shape ``(n_elements, element_type.n_nodes)``.

        Returns
        -------
        Domain
            The new domain.

        Raises
        ------
        ValueError
            If the name is taken or the connectivity is invalid.
        """
        if name in self._domains:
            raise ValueError(f"Domain {name!r} already exists on this mesh.")
        domain = Domain(self, name, resolve_element_type(element_type), cells)
        self._domains[name] = domain
        return domain

    def domain(self, name: str) -> "Domain":
        try:
            return self._domains[name]
        except KeyError:
            raise KeyError(
                f"No domain named {name!r}; available: {sorted(self._domains)}"
            ) from None


class Domain:
    """Ordered elements of a single type, indexing into a mesh's nodes.

    Domains are created through :meth:`Mesh.add_domain` and are read-only
    afterwards.

    Parameters
    ----------
    mesh : Mesh
        Mesh whose node table the connectivity indexes.
    name : str
        Name of the domain within the mesh.
    element_type : ElementType
        Geometry shared by all elements.
    cells : torch.Tensor
        Connectivity, shape ``(n_elements, element_type.n_nodes)``, integer dtype.
    """

    def __init__(
        self,
        mesh: Mesh,
        name: str,
        element_type: ElementType,
        cells: torch.Tensor,
    ) -> None:
        if cells.ndim != 2:
            raise ValueError(
                f"`cells` must have shape (n_elements, n_nodes_per_element), but got {cells.shape=}."
            )
        if torch.is_floating_point(cells):
            raise TypeError(f"`cells` must have an int-like dtype, but got {cells.dtype=}.")
        if cells.shape[1] != element_type.n_nodes:
            raise ValueError(
                f"{element_type.name} elements have {element_type.n_nodes} nodes, "
                f"but `cells` has {cells.shape[1]} columns."
            )
        if element_type.n_local_dims > mesh.n_spatial_dims:
            raise ValueError(
                f"{element_type.name} elements are {element_type.n_local_dims}D and "
                f"cannot live in a {mesh.n_spatial_dims}D mesh."
            )
        if cells.numel() > 0 and (cells.min() < 0 or cells.max() >= mesh.n_points):
            raise ValueError(
                f"`cells` references nodes outside [0, {mesh.n_points}): "
                f"min={cells.min().item()}, max={cells.max().item()}."
            )
        self.mesh = mesh
        self.name = name
        self.element_type = element_type
        self.cells = cells.to(device=mesh.points.device, dtype=torch.long)

    def __repr__(self) -> str:
        return (
            f"Domain(name={self.name!r}, element_type={self.element_type.name}, "
            f"n_elements={self.n_elements})"
        )

    def __len__(self) -> int:
        return self.n_elements

    @property
    def n_elements(self) -> int:
        return self.cells.shape[0]

    def element_nodes(self, element_indices: torch.Tensor | None = None) -> torch.Tensor:
        """Gather node positions of elements, shape ``(n, n_nodes, n_spatial_dims)``.

        All elements are gathered when ``element_indices`` is None.
        """
        cells = self.cells if element_indices is None else self.cells[element_indices]
        return self.mesh.points[cells]

    def element(self, index: int) -> Element:
        """Return a view of element ``index``."""
        index = int(index)
        if not 0 <= index < self.n_elements:
            raise IndexError(
                f"Element index {index} out of range for domain {self.name!r} "
                f"with {self.n_elements} elements."
            )
        return Element(self.element_type, self.mesh.points[self.cells[index]], index)
