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

"""Bounding Volume Hierarchy (BVH) over the elements of a domain.

The BVH proposes, for each query point, the elements whose (padded) bounding
boxes contain the point. Bounding boxes enclose the whole
element image, so the true containing element is never pruned; extra
candidates are weeded out later by the inverse mapping.

Construction is a morton-code Linear BVH: elements are sorted along a Z-order
curve of their centers and the sorted range is split at midpoints, level by
level. Both construction and traversal are vectorized over all nodes of a
level, so Python-level iteration count grows with tree depth, O(log N).
"""

import logging
from typing import TYPE_CHECKING

import torch
from tensordict import tensorclass

from meshembed.spatial._candidates import CandidateElements, build_candidates_from_pairs

if TYPE_CHECKING:
    from meshembed.mesh import Domain

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Morton codes
# ---------------------------------------------------------------------------


def _compute_morton_codes(centers: torch.Tensor) -> torch.Tensor:
    """Z-order codes of points, shape ``(N, D) -> (N,)`` int64.

    Coordinates are quantized on a ``2**(63 // D)`` grid spanning the points'
    bounding box, then bit ``b`` of axis ``d`` is written at position
    ``b * D + d``. Codes stay non-negative in int64.
    """
    if centers.ndim != 2:
        raise ValueError(
            f"centers must be 2D (N, D), got {centers.ndim}D "
            f"with shape {tuple(centers.shape)}"
        )
    if not centers.is_floating_point():
        raise TypeError(
            f"centers must be a floating-point tensor (got {centers.dtype=!r})"
        )

    n_points, n_dims = centers.shape
    device = centers.device

    n_bits = 63 // n_dims
    grid_max = (1 << n_bits) - 1

    lower = centers.min(dim=0).values
    extent = (centers.max(dim=0).values - lower).clamp(min=1e-30)
    quantized = ((centers - lower) / extent * grid_max).long().clamp(0, grid_max)

    codes = torch.zeros(n_points, dtype=torch.int64, device=device)
    axis_shift = torch.arange(n_dims, dtype=torch.int64, device=device)
    for bit in range(n_bits):
        bits = (quantized >> bit) & 1  # (N, D)
        codes += (bits << (bit * n_dims + axis_shift)).sum(dim=1)
    return codes


# ---------------------------------------------------------------------------
# Segment helpers
# ---------------------------------------------------------------------------


def _ragged_positions(starts: torch.Tensor, sizes: torch.Tensor) -> torch.Tensor:
    """Concatenate ``arange(start, start + size)`` for every segment."""
    total = int(sizes.sum())
    if total == 0:
        return torch.empty(0, dtype=torch.long, device=starts.device)
    segment_begin = torch.cumsum(sizes, 0) - sizes
    within = torch.arange(total, dtype=torch.long, device=starts.device)
    within = within - torch.repeat_interleave(segment_begin, sizes)
    return torch.repeat_interleave(starts, sizes) + within


def _segment_bounds(
    starts: torch.Tensor,
    sizes: torch.Tensor,
    sorted_lower: torch.Tensor,
    sorted_upper: torch.Tensor,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Union of element boxes over each contiguous segment of the sorted order."""
    n_segments = len(starts)
    n_dims = sorted_lower.shape[1]
    lower = torch.full(
        (n_segments, n_dims), float("inf"), dtype=sorted_lower.dtype, device=starts.device
    )
    upper = torch.full(
        (n_segments, n_dims), float("-inf"), dtype=sorted_lower.dtype, device=starts.device
    )
    if n_segments == 0:
        return lower, upper

    positions = _ragged_positions(starts, sizes)
    segment_ids = torch.repeat_interleave(
        torch.arange(n_segments, dtype=torch.long, device=starts.device), sizes
    )
    scatter_ids = segment_ids.unsqueeze(1).expand(-1, n_dims)
    lower.scatter_reduce_(0, scatter_ids, sorted_lower[positions], reduce="amin")
    upper.scatter_reduce_(0, scatter_ids, sorted_upper[positions], reduce="amax")
    return lower, upper


# ---------------------------------------------------------------------------
# BVH tensorclass
# ---------------------------------------------------------------------------


@tensorclass
class BVH:
    """Flat-array BVH over the elements of one domain.

    Each internal node has two children; each leaf owns a contiguous range of
    elements in morton order.

    Attributes
    ----------
    node_lower : torch.Tensor
        Box minimum corner per node, shape ``(n_nodes, n_spatial_dims)``.
    node_upper : torch.Tensor
        Box maximum corner per node, shape ``(n_nodes, n_spatial_dims)``.
    node_left_child : torch.Tensor
        Left child per node, shape ``(n_nodes,)``, -1 for leaves.
    node_right_child : torch.Tensor
        Right child per node, shape ``(n_nodes,)``, -1 for leaves.
    leaf_start : torch.Tensor
        Start into ``sorted_element_order`` per node, -1 for internal nodes.
    leaf_count : torch.Tensor
        Number of elements per leaf, 0 for internal nodes.
    sorted_element_order : torch.Tensor
        Morton-sorted permutation of element indices, shape ``(n_elements,)``.
    element_lower : torch.Tensor
        Padded bounding box minimum corner per element, shape
        ``(n_elements, n_spatial_dims)``, in original element order.
    element_upper : torch.Tensor
        Padded bounding box maximum corner per element.
    element_centers : torch.Tensor
        World position of each element's reference center,
        shape ``(n_elements, n_spatial_dims)``. Used to order candidates.

    Examples
    --------
    >>> bvh = BVH.from_domain(domain)  # doctest: +SKIP
    >>> bvh.find_candidate_elements(points).to_list()  # doctest: +SKIP
    """

    node_lower: torch.Tensor  # (n_nodes, n_spatial_dims)
    node_upper: torch.Tensor  # (n_nodes, n_spatial_dims)
    node_left_child: torch.Tensor  # (n_nodes,), int64, -1 for leaves
    node_right_child: torch.Tensor  # (n_nodes,), int64, -1 for leaves
    leaf_start: torch.Tensor  # (n_nodes,), int64, -1 for internal
    leaf_count: torch.Tensor  # (n_nodes,), int64, 0 for internal
    sorted_element_order: torch.Tensor  # (n_elements,), int64
    element_lower: torch.Tensor  # (n_elements, n_spatial_dims)
    element_upper: torch.Tensor  # (n_elements, n_spatial_dims)
    element_centers: torch.Tensor  # (n_elements, n_spatial_dims)

    @property
    def n_nodes(self) -> int:
        """Number of tree nodes."""
        return self.node_lower.shape[0]

    @property
    def n_elements(self) -> int:
        return self.sorted_element_order.shape[0]

    @property
    def n_spatial_dims(self) -> int:
        return self.node_lower.shape[1]

    @property
    def root_bounds(self) -> tuple[torch.Tensor, torch.Tensor]:
        """Box enclosing every element, or empty tensors for an empty domain."""
        return self.node_lower[:1].squeeze(0), self.node_upper[:1].squeeze(0)

    @classmethod
    def from_domain(cls, domain: "Domain", leaf_size: int = 8) -> "BVH":
        """Build a BVH over the elements of ``domain``.

        Parameters
        ----------
        domain : Domain
            Elements to index. Read once; later changes to the mesh are not
            reflected.
        leaf_size : int, optional
            Maximum number of elements per leaf.

        Returns
        -------
        BVH
            Tree ready for queries.

        Raises
        ------
        ValueError
            If ``leaf_size < 1``.
        """
        if leaf_size < 1:
            raise ValueError(f"leaf_size must be >= 1, got {leaf_size=!r}")

        element_type = domain.element_type
        points = domain.mesh.points
        n_elements = domain.n_elements
        n_dims = points.shape[1]
        device, dtype = points.device, points.dtype

        if n_elements == 0:
            empty_long = torch.empty(0, dtype=torch.long, device=device)
            empty_box = torch.empty((0, n_dims), dtype=dtype, device=device)
            return cls(
                node_lower=empty_box,
                node_upper=empty_box.clone(),
                node_left_child=empty_long,
                node_right_child=empty_long.clone(),
                leaf_start=empty_long.clone(),
                leaf_count=empty_long.clone(),
                sorted_element_order=empty_long.clone(),
                element_lower=empty_box.clone(),
                element_upper=empty_box.clone(),
                element_centers=empty_box.clone(),
                batch_size=torch.Size([]),
            )

        ### Per-element boxes and centers
        node_positions = domain.element_nodes()  # (n_elements, n_nodes, D)
        element_lower, element_upper = element_type.bounding_boxes(node_positions)
        reference_center = element_type.reference_center(dtype, device)
        element_centers = element_type.world_coordinates(
            node_positions,
            reference_center.expand(n_elements, -1),
        )

        ### Morton order
        sorted_order = _compute_morton_codes(element_centers).argsort(stable=True)
        sorted_lower = element_lower[sorted_order]
        sorted_upper = element_upper[sorted_order]

        ### Node storage; midpoint splits keep leaves at >= (leaf_size + 1) // 2
        min_leaf = max(1, (leaf_size + 1) // 2)
        max_leaves = (n_elements + min_leaf - 1) // min_leaf
        max_nodes = max(1, 2 * max_leaves - 1)

        node_lower = torch.full((max_nodes, n_dims), float("inf"), dtype=dtype, device=device)
        node_upper = torch.full((max_nodes, n_dims), float("-inf"), dtype=dtype, device=device)
        left_child = torch.full((max_nodes,), -1, dtype=torch.long, device=device)
        right_child = torch.full((max_nodes,), -1, dtype=torch.long, device=device)
        leaf_start = torch.full((max_nodes,), -1, dtype=torch.long, device=device)
        leaf_count = torch.zeros(max_nodes, dtype=torch.long, device=device)

        ### Top-down: one iteration per tree level
        seg_start = torch.zeros(1, dtype=torch.long, device=device)
        seg_end = torch.full((1,), n_elements, dtype=torch.long, device=device)
        seg_node = torch.zeros(1, dtype=torch.long, device=device)
        n_used = 1
        internal_levels: list[torch.Tensor] = []

        while len(seg_start) > 0:
            seg_size = seg_end - seg_start
            is_leaf = seg_size <= leaf_size

            if is_leaf.any():
                leaf_nodes = seg_node[is_leaf]
                leaf_start[leaf_nodes] = seg_start[is_leaf]
                leaf_count[leaf_nodes] = seg_size[is_leaf]
                lower, upper = _segment_bounds(
                    seg_start[is_leaf], seg_size[is_leaf], sorted_lower, sorted_upper
                )
                node_lower[leaf_nodes] = lower
                node_upper[leaf_nodes] = upper

            is_internal = ~is_leaf
            if not is_internal.any():
                break

            parents = seg_node[is_internal]
            starts = seg_start[is_internal]
            ends = seg_end[is_internal]
            middles = starts + (ends - starts) // 2

            n_split = len(parents)
            lefts = n_used + 2 * torch.arange(n_split, dtype=torch.long, device=device)
            rights = lefts + 1
            n_used += 2 * n_split
            left_child[parents] = lefts
            right_child[parents] = rights
            internal_levels.append(parents)

            seg_start = torch.cat([starts, middles])
            seg_end = torch.cat([middles, ends])
            seg_node = torch.cat([lefts, rights])

        ### Bottom-up: internal box = union of the children's boxes
        for parents in reversed(internal_levels):
            lefts, rights = left_child[parents], right_child[parents]
            node_lower[parents] = torch.minimum(node_lower[lefts], node_lower[rights])
            node_upper[parents] = torch.maximum(node_upper[lefts], node_upper[rights])

        logger.debug(
            "Built BVH over %d %s elements: %d nodes, leaf_size=%d",
            n_elements,
            element_type.name,
            n_used,
            leaf_size,
        )

        return cls(
            node_lower=node_lower[:n_used],
            node_upper=node_upper[:n_used],
            node_left_child=left_child[:n_used],
            node_right_child=right_child[:n_used],
            leaf_start=leaf_start[:n_used],
            leaf_count=leaf_count[:n_used],
            sorted_element_order=sorted_order,
            element_lower=element_lower,
            element_upper=element_upper,
            element_centers=element_centers,
            batch_size=torch.Size([]),
        )

    def find_candidate_elements(
        self,
        query_points: torch.Tensor,
        max_candidates_per_point: int | None = None,
        aabb_tolerance: float = 0.0,
    ) -> CandidateElements:
        """Propose elements that may contain each query point.

        All queries descend the tree together, one level per iteration. The
        candidates of each query are returned ordered by increasing distance
        from the query to the element center, ties broken by element index.

        Parameters
        ----------
        query_points : torch.Tensor
            Shape ``(n_queries, n_spatial_dims)``.
        max_candidates_per_point : int or None, optional
            Keep only the closest candidates per query. ``None`` keeps all of
            them; any cap can drop the containing element in dense overlaps.
        aabb_tolerance : float, optional
            Absolute slack added to every box in the containment test.

        Returns
        -------
        CandidateElements
            Ordered candidates per query; empty for points outside the root box.
        """
        if query_points.ndim != 2:
            raise ValueError(
                f"query_points must be 2D (n_queries, n_spatial_dims), got "
                f"{query_points.ndim}D with shape {tuple(query_points.shape)}"
            )
        if not query_points.is_floating_point():
            raise TypeError(
                f"query_points must be a floating-point tensor (got {query_points.dtype=!r})"
            )
        if self.n_nodes > 0 and query_points.shape[1] != self.n_spatial_dims:
            raise ValueError(
                f"query_points has {query_points.shape[1]} spatial dims, but "
                f"BVH has {self.n_spatial_dims}"
            )

        n_queries = query_points.shape[0]
        device = self.node_lower.device
        hit_queries: list[torch.Tensor] = []
        hit_elements: list[torch.Tensor] = []

        if self.n_nodes > 0 and n_queries > 0:
            active_query = torch.arange(n_queries, dtype=torch.long, device=device)
            active_node = torch.zeros(n_queries, dtype=torch.long, device=device)

            while len(active_query) > 0:
                points = query_points[active_query]
                inside = (
                    (points >= self.node_lower[active_node] - aabb_tolerance)
                    & (points <= self.node_upper[active_node] + aabb_tolerance)
                ).all(dim=1)
                active_query = active_query[inside]
                active_node = active_node[inside]

                is_leaf = self.leaf_count[active_node] > 0
                if is_leaf.any():
                    leaf_queries = active_query[is_leaf]
                    leaf_nodes = active_node[is_leaf]
                    counts = self.leaf_count[leaf_nodes]
                    positions = _ragged_positions(self.leaf_start[leaf_nodes], counts)
                    pair_queries = torch.repeat_interleave(leaf_queries, counts)
                    pair_elements = self.sorted_element_order[positions]

                    # Leaves hold several elements; keep those whose own box is hit
                    pair_points = query_points[pair_queries]
                    in_box = (
                        (pair_points >= self.element_lower[pair_elements] - aabb_tolerance)
                        & (pair_points <= self.element_upper[pair_elements] + aabb_tolerance)
                    ).all(dim=1)
                    hit_queries.append(pair_queries[in_box])
                    hit_elements.append(pair_elements[in_box])

                descend_query = active_query[~is_leaf]
                descend_node = active_node[~is_leaf]
                active_query = torch.cat([descend_query, descend_query])
                active_node = torch.cat(
                    [
                        self.node_left_child[descend_node],
                        self.node_right_child[descend_node],
                    ]
                )

        if hit_queries:
            query_indices = torch.cat(hit_queries)
            element_indices = torch.cat(hit_elements)
        else:
            query_indices = torch.empty(0, dtype=torch.long, device=device)
            element_indices = torch.empty(0, dtype=torch.long, device=device)

        ### Order by center distance within each query
        distances = (
            (query_points[query_indices] - self.element_centers[element_indices]) ** 2
        ).sum(dim=-1)
        candidates = build_candidates_from_pairs(
            query_indices, element_indices, n_queries, sort_keys=distances
        )
        return candidates.truncate_per_query(max_candidates_per_point)
