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

"""Point location in a container domain and field transfer to embedded meshes.

A :class:`BarycentricContainer` indexes the elements of one domain with a BVH.
Queries proceed in two phases:

1. The BVH proposes candidate elements per point, ordered by the distance
   from the point to each element's center.
2. Candidates are tested in rounds: round ``k`` inverts the mapping of the
   ``k``-th candidate of every still-unresolved point in one batched Newton
   solve. The first candidate reporting the point inside wins.

A point on a face shared by several elements is therefore assigned to the
closest-centered one (ties broken by element index). This choice depends on
candidate order only and carries no geometric meaning; interpolated fields
agree across the face for conforming meshes.

Embedded meshes are located once with :meth:`BarycentricContainer.add_embedded_mesh`
and their correspondence is cached, keyed by mesh identity, so later calls to
:meth:`BarycentricContainer.interpolate_field` only gather and blend values.
"""

import enum
import logging
import warnings
import weakref

import torch
from tensordict import TensorDict

from meshembed.locate._located import NOT_FOUND, LocatedPoints
from meshembed.locate.config import ContainerConfig, OutsidePolicy
from meshembed.locate.exceptions import DimensionMismatchError, UnregisteredMeshError
from meshembed.locate.interpolation import interpolate_at, interpolate_tensordict_at
from meshembed.locate.inverse_mapping import invert_mapping
from meshembed.mesh import Domain, Mesh
from meshembed.spatial import BVH

logger = logging.getLogger(__name__)


class ContainerState(enum.Enum):
    """Lifecycle of a :class:`BarycentricContainer`."""

    UNINDEXED = "unindexed"
    READY = "ready"


class BarycentricContainer:
    r"""Locate points in the elements of a domain and interpolate its fields.

    Parameters
    ----------
    domain : Domain
        Container domain. Its mesh must not change while the container is in
        use; call :meth:`rebuild` after modifying it.
    config : ContainerConfig, optional
        Location and interpolation settings. Defaults to ``ContainerConfig()``.
    **overrides
        Individual :class:`ContainerConfig` fields overriding ``config``.

    Examples
    --------
    >>> container = BarycentricContainer(mesh.domain("quads"))  # doctest: +SKIP
    >>> outside = container.add_embedded_mesh(embedded)  # doctest: +SKIP
    >>> values = container.interpolate_field(embedded, mesh.points)  # doctest: +SKIP
    """

    def __init__(
        self,
        domain: Domain,
        config: ContainerConfig | None = None,
        **overrides,
    ) -> None:
        if not isinstance(domain, Domain):
            raise TypeError(f"Expected a Domain, got {type(domain)=}.")
        if config is None:
            config = ContainerConfig()
        if overrides:
            config = config.replace(**overrides)

        self._domain = domain
        self._config = config
        self._state = ContainerState.UNINDEXED
        self._bvh: BVH | None = None
        self._aabb_tolerance = 0.0
        self._embedded: "weakref.WeakKeyDictionary[Mesh, LocatedPoints]" = (
            weakref.WeakKeyDictionary()
        )
        self.rebuild()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(domain={self._domain!r}, state={self._state.value}, "
            f"n_embedded_meshes={self.n_embedded_meshes})"
        )

    ### Properties ###

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def config(self) -> ContainerConfig:
        return self._config

    @property
    def state(self) -> ContainerState:
        return self._state

    @property
    def bvh(self) -> BVH:
        return self._bvh

    @property
    def n_embedded_meshes(self) -> int:
        return len(self._embedded)

    ### Indexing ###

    def rebuild(self) -> None:
        """Rebuild the spatial index from the current domain geometry.

        All cached embedded-mesh correspondences are dropped; register the
        embedded meshes again afterwards.
        """
        self._state = ContainerState.UNINDEXED
        self._embedded.clear()

        self._bvh = BVH.from_domain(self._domain, leaf_size=self._config.leaf_size)
        if self._bvh.n_nodes > 0:
            lower, upper = self._bvh.root_bounds
            extent = float((upper - lower).max())
        else:
            extent = 0.0
        self._aabb_tolerance = self._config.bounding_box_tolerance * extent

        self._state = ContainerState.READY
        logger.info(
            "Indexed domain %r: %d %s elements, %d BVH nodes",
            self._domain.name,
            self._domain.n_elements,
            self._domain.element_type.name,
            self._bvh.n_nodes,
        )

    ### Point location ###

    def locate(self, points: torch.Tensor) -> LocatedPoints:
        """Find the containing element and local coordinates of points.

        Parameters
        ----------
        points : torch.Tensor
            One point, shape ``(n_spatial_dims,)``, or a batch, shape
            ``(n_points, n_spatial_dims)``. In a 1D mesh a batch must still be
            shaped ``(n_points, 1)``.

        Returns
        -------
        LocatedPoints
            Batch size ``()`` for a single point, ``(n_points,)`` otherwise.
            Points outside every element carry :data:`NOT_FOUND` and NaN
            local coordinates.

        Raises
        ------
        DimensionMismatchError
            If the points' dimension differs from the container mesh's.
        """
        mesh_points = self._domain.mesh.points
        n_dims = mesh_points.shape[1]
        points = torch.as_tensor(points, dtype=mesh_points.dtype, device=mesh_points.device)
        if points.ndim not in (1, 2) or points.shape[-1] != n_dims:
            raise DimensionMismatchError(
                f"points must have shape ({n_dims},) or (n_points, {n_dims}) to match "
                f"the container mesh, but got {tuple(points.shape)=}."
            )

        single = points.ndim == 1
        if single:
            points = points.unsqueeze(0)

        n_points = points.shape[0]
        located = LocatedPoints.not_found(
            n_points,
            self._domain.element_type.n_local_dims,
            dtype=points.dtype,
            device=points.device,
        )
        chunk_size = self._config.chunk_size
        for start in range(0, n_points, chunk_size):
            stop = min(start + chunk_size, n_points)
            element_indices, local_coordinates = self._locate_batch(points[start:stop])
            located.element_indices[start:stop] = element_indices
            located.local_coordinates[start:stop] = local_coordinates

        return located[0] if single else located

    def _locate_batch(self, points: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Locate one batch of points, testing candidates rank by rank."""
        config = self._config
        element_type = self._domain.element_type
        n_points = points.shape[0]

        element_indices = torch.full(
            (n_points,), NOT_FOUND, dtype=torch.long, device=points.device
        )
        local_coordinates = torch.full(
            (n_points, element_type.n_local_dims),
            float("nan"),
            dtype=points.dtype,
            device=points.device,
        )

        candidates = self._bvh.find_candidate_elements(
            points,
            max_candidates_per_point=config.max_candidates_per_point,
            aabb_tolerance=self._aabb_tolerance,
        )
        unresolved = torch.ones(n_points, dtype=torch.bool, device=points.device)
        max_rank = int(candidates.counts.max()) if candidates.n_total_candidates > 0 else 0

        n_rounds = 0
        for rank in range(max_rank):
            query_indices, candidate_elements = candidates.nth(rank, mask=unresolved)
            if len(query_indices) == 0:
                break
            n_rounds += 1

            result = invert_mapping(
                element_type,
                self._domain.element_nodes(candidate_elements),
                points[query_indices],
                tolerance=config.tolerance,
                max_iterations=config.max_iterations,
                inside_tolerance=config.inside_tolerance,
                rcond=config.rcond,
            )
            hit = result.inside
            resolved = query_indices[hit]
            element_indices[resolved] = candidate_elements[hit]
            local_coordinates[resolved] = result.local_coordinates[hit]
            unresolved[resolved] = False

        logger.debug(
            "Located %d of %d points in %d candidate rounds (%d candidates)",
            n_points - int(unresolved.sum()),
            n_points,
            n_rounds,
            candidates.n_total_candidates,
        )
        return element_indices, local_coordinates

    ### Embedded meshes ###

    def add_embedded_mesh(self, mesh: Mesh) -> torch.Tensor:
        """Locate every node of ``mesh`` and cache the correspondence.

        Registering the same mesh again recomputes and overwrites its entry.

        Parameters
        ----------
        mesh : Mesh
            Embedded mesh. Held through a weak reference.

        Returns
        -------
        torch.Tensor
            Sorted int64 indices of the embedded nodes outside the container.

        Raises
        ------
        DimensionMismatchError
            If ``mesh`` does not live in the container's spatial dimension.
        """
        if not isinstance(mesh, Mesh):
            raise TypeError(f"Expected a Mesh, got {type(mesh)=}.")
        if mesh.n_spatial_dims != self._domain.mesh.n_spatial_dims:
            raise DimensionMismatchError(
                f"Embedded mesh is {mesh.n_spatial_dims}D but the container mesh is "
                f"{self._domain.mesh.n_spatial_dims}D."
            )

        located = self.locate(mesh.points)
        self._embedded[mesh] = located
        outside = located.outside_indices

        logger.info(
            "Registered embedded mesh: %d nodes, %d outside domain %r",
            mesh.n_points,
            len(outside),
            self._domain.name,
        )
        if mesh.n_points > 0 and len(outside) == mesh.n_points:
            warnings.warn(
                f"None of the {mesh.n_points} nodes of the embedded mesh lie in "
                f"domain {self._domain.name!r}; interpolation will only produce "
                f"outside values.",
                UserWarning,
                stacklevel=2,
            )
        return outside

    def remove_embedded_mesh(self, mesh: Mesh) -> None:
        """Forget the cached correspondence of ``mesh``."""
        self._correspondence(mesh)
        del self._embedded[mesh]

    def is_registered(self, mesh: Mesh) -> bool:
        return mesh in self._embedded

    def embedded_points(self, mesh: Mesh) -> LocatedPoints:
        """Cached location of every node of a registered mesh."""
        return self._correspondence(mesh)

    def outside_nodes(self, mesh: Mesh) -> torch.Tensor:
        """Sorted indices of the nodes of a registered mesh outside the container."""
        return self._correspondence(mesh).outside_indices

    def locate_embedded(self, mesh: Mesh, node_index: int) -> LocatedPoints:
        """Cached location of one node of a registered mesh.

        Raises
        ------
        UnregisteredMeshError
            If ``mesh`` was never registered.
        IndexError
            If ``node_index`` is not in ``[0, mesh.n_points)``.
        """
        located = self._correspondence(mesh)
        node_index = int(node_index)
        if not 0 <= node_index < located.n_points:
            raise IndexError(
                f"Node index {node_index} out of range for an embedded mesh with "
                f"{located.n_points} nodes."
            )
        return located[node_index]

    def _correspondence(self, mesh: Mesh) -> LocatedPoints:
        try:
            located = self._embedded[mesh]
        except (KeyError, TypeError):
            raise UnregisteredMeshError(
                "Mesh is not registered with this container; "
                "call add_embedded_mesh(mesh) first."
            ) from None
        if located.n_points != mesh.n_points:
            raise DimensionMismatchError(
                f"Embedded mesh has {mesh.n_points} nodes but {located.n_points} were "
                f"registered; call add_embedded_mesh(mesh) again."
            )
        return located

    ### Field transfer ###

    def interpolate_field(
        self,
        mesh: Mesh,
        nodal_values: torch.Tensor,
        out: torch.Tensor | None = None,
        outside_policy: OutsidePolicy | None = None,
        fill_value: float | None = None,
    ) -> torch.Tensor:
        """Interpolate a container nodal field at the nodes of an embedded mesh.

        Parameters
        ----------
        mesh : Mesh
            Registered embedded mesh.
        nodal_values : torch.Tensor
            One row per container node, shape ``(n_container_points, *field_shape)``.
        out : torch.Tensor, optional
            Output buffer, shape ``(n_embedded_points, *field_shape)``. Allocated
            (zero-filled) when omitted.
        outside_policy : {"fill", "skip"}, optional
            Overrides ``config.outside_policy``. ``"fill"`` writes
            ``fill_value`` in the rows of outside nodes; ``"skip"`` leaves them
            untouched.
        fill_value : float, optional
            Overrides ``config.fill_value``.

        Returns
        -------
        torch.Tensor
            ``out``, shape ``(n_embedded_points, *field_shape)``.

        Raises
        ------
        UnregisteredMeshError
            If ``mesh`` was never registered.
        DimensionMismatchError
            If ``nodal_values`` or ``out`` have inconsistent shapes.
        TypeError
            If ``nodal_values`` is not floating-point.
        ValueError
            If ``outside_policy`` is unknown.
        """
        located = self._correspondence(mesh)
        policy = self._config.outside_policy if outside_policy is None else outside_policy
        if policy not in ("fill", "skip"):
            raise ValueError(f"outside_policy must be 'fill' or 'skip', got {policy=}")
        if fill_value is None:
            fill_value = self._config.fill_value
        if not torch.is_floating_point(nodal_values):
            raise TypeError(
                f"nodal_values must be floating-point, but got {nodal_values.dtype=}."
            )

        n_container = self._domain.mesh.n_points
        if nodal_values.ndim < 1 or nodal_values.shape[0] != n_container:
            raise DimensionMismatchError(
                f"nodal_values must have one row per container node ({n_container}), "
                f"but got {tuple(nodal_values.shape)=}."
            )
        expected_shape = (located.n_points, *nodal_values.shape[1:])
        if out is None:
            out = torch.zeros(
                expected_shape, dtype=nodal_values.dtype, device=nodal_values.device
            )
        elif tuple(out.shape) != expected_shape:
            raise DimensionMismatchError(
                f"out must have shape {expected_shape}, but got {tuple(out.shape)=}."
            )

        found = located.found.to(out.device)
        values = interpolate_at(
            self._domain,
            nodal_values,
            located.element_indices[located.found],
            located.local_coordinates[located.found],
        )
        out[found] = values.to(dtype=out.dtype, device=out.device)
        if policy == "fill":
            out[~found] = fill_value
        return out

    def interpolate_point_data(
        self,
        mesh: Mesh,
        keys: list[str] | None = None,
        fill_value: float | None = None,
    ) -> TensorDict:
        """Interpolate the container mesh's ``point_data`` at embedded nodes.

        Parameters
        ----------
        mesh : Mesh
            Registered embedded mesh.
        keys : list[str], optional
            Fields to interpolate. All floating-point fields by default.
        fill_value : float, optional
            Value of outside rows. Overrides ``config.fill_value``.

        Returns
        -------
        TensorDict
            Batch size ``(n_embedded_points,)``, one entry per interpolated field.
        """
        located = self._correspondence(mesh)
        if fill_value is None:
            fill_value = self._config.fill_value

        data = self._domain.mesh.point_data
        if keys is not None:
            data = data.select(*keys)

        found = located.found
        n_embedded = located.n_points
        partial = interpolate_tensordict_at(
            self._domain,
            data,
            located.element_indices[found],
            located.local_coordinates[found],
        )
        if partial.is_empty():
            return TensorDict({}, batch_size=torch.Size([n_embedded]), device=data.device)

        def _scatter_found(values: torch.Tensor) -> torch.Tensor:
            full = torch.full(
                (n_embedded, *values.shape[1:]),
                fill_value,
                dtype=values.dtype,
                device=values.device,
            )
            full[found.to(values.device)] = values
            return full

        return partial.apply(_scatter_found, batch_size=torch.Size([n_embedded]))
