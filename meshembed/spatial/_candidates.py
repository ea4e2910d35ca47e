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

"""Ordered, ragged per-query candidate element lists.

Candidates for all queries are stored with offset-indices encoding: the
candidates of query ``q`` are ``indices[offsets[q]:offsets[q + 1]]``, in the
order they should be tested.
"""

import torch
from tensordict import tensorclass


@tensorclass
class CandidateElements:
    """Per-query ordered candidate elements.

    Attributes
    ----------
    offsets : torch.Tensor
        Shape ``(n_queries + 1,)``, int64, ``offsets[0] == 0`` and
        ``offsets[-1] == len(indices)``.
    indices : torch.Tensor
        Flattened candidate element indices, shape ``(n_total_candidates,)``.

    Examples
    --------
    >>> candidates = CandidateElements(
    ...     offsets=torch.tensor([0, 2, 2, 3]),
    ...     indices=torch.tensor([7, 4, 1]),
    ... )
    >>> candidates.to_list()
    [[7, 4], [], [1]]
    >>> candidates.nth(1)
    (tensor([0]), tensor([4]))
    """

    offsets: torch.Tensor  # shape: (n_queries + 1,), dtype: int64
    indices: torch.Tensor  # shape: (n_total_candidates,), dtype: int64

    def __post_init__(self):
        if not torch.compiler.is_compiling():
            if len(self.offsets) < 1 or self.offsets[0].item() != 0:
                raise ValueError(
                    f"Offsets must start with 0 and have length n_queries + 1, "
                    f"got {self.offsets.tolist()[:4]=}."
                )
            if self.offsets[-1].item() != len(self.indices):
                raise ValueError(
                    f"Last offset must equal the number of candidates, but got "
                    f"{self.offsets[-1].item()=} != {len(self.indices)=}."
                )

    @property
    def n_queries(self) -> int:
        return len(self.offsets) - 1

    @property
    def n_total_candidates(self) -> int:
        return len(self.indices)

    @property
    def counts(self) -> torch.Tensor:
        """Number of candidates of each query, shape ``(n_queries,)``."""
        return self.offsets[1:] - self.offsets[:-1]

    def to_list(self) -> list[list[int]]:
        """Ragged list-of-lists copy, mainly for tests and debugging."""
        offsets = self.offsets.tolist()
        indices = self.indices.tolist()
        return [indices[offsets[q] : offsets[q + 1]] for q in range(self.n_queries)]

    def expand_to_pairs(self) -> tuple[torch.Tensor, torch.Tensor]:
        """Return ``(query_indices, element_indices)``, one entry per candidate."""
        query_indices = torch.repeat_interleave(
            torch.arange(self.n_queries, dtype=torch.long, device=self.offsets.device),
            self.counts,
        )
        return query_indices, self.indices

    def nth(
        self, rank: int, mask: torch.Tensor | None = None
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Return the ``rank``-th candidate of every query that has one.

        Parameters
        ----------
        rank : int
            Zero-based position in each query's ordered list.
        mask : torch.Tensor or None, optional
            Boolean ``(n_queries,)``; only queries where it is True are
            considered.

        Returns
        -------
        tuple[torch.Tensor, torch.Tensor]
            ``(query_indices, element_indices)`` for the selected queries,
            in increasing query order.
        """
        has_rank = self.counts > rank
        if mask is not None:
            has_rank = has_rank & mask
        query_indices = torch.where(has_rank)[0]
        return query_indices, self.indices[self.offsets[query_indices] + rank]

    def truncate_per_query(self, max_count: int | None = None) -> "CandidateElements":
        """Keep at most the first ``max_count`` candidates of each query."""
        if max_count is None:
            return self

        clamped = self.counts.clamp(max=max_count)
        new_offsets = torch.zeros_like(self.offsets)
        new_offsets[1:] = torch.cumsum(clamped, dim=0)
        if self.n_total_candidates == 0:
            return CandidateElements(offsets=new_offsets, indices=self.indices)

        query_indices, _ = self.expand_to_pairs()
        positions = torch.arange(self.n_total_candidates, device=self.offsets.device)
        keep = (positions - self.offsets[query_indices]) < max_count
        return CandidateElements(offsets=new_offsets, indices=self.indices[keep])


def build_candidates_from_pairs(
    query_indices: torch.Tensor,  # shape: (n_pairs,)
    element_indices: torch.Tensor,  # shape: (n_pairs,)
    n_queries: int,
    sort_keys: torch.Tensor | None = None,  # shape: (n_pairs,)
) -> CandidateElements:
    """Group ``(query, element)`` pairs into per-query ordered lists.

    Within a query, candidates are ordered by increasing ``sort_keys`` and
    then by element index. Without keys, by element index alone.
    """
    device = query_indices.device

    if len(query_indices) == 0:
        return CandidateElements(
            offsets=torch.zeros(n_queries + 1, dtype=torch.long, device=device),
            indices=torch.zeros(0, dtype=torch.long, device=device),
        )

    ### Lexicographic sort by (query, key, element) via successive stable argsorts
    order = torch.argsort(element_indices, stable=True)
    if sort_keys is not None:
        order = order[torch.argsort(sort_keys[order], stable=True)]
    order = order[torch.argsort(query_indices[order], stable=True)]

    offsets = torch.zeros(n_queries + 1, dtype=torch.long, device=device)
    offsets[1:] = torch.cumsum(torch.bincount(query_indices, minlength=n_queries), dim=0)

    return CandidateElements(offsets=offsets, indices=element_indices[order])
