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

"""Errors raised by point location and field transfer.

A point without a containing element is not an error: it is reported through
the ``NOT_FOUND`` sentinel of :class:`~meshembed.locate.LocatedPoints`.
Newton non-convergence is likewise reported as a status, never raised.
"""


class UnregisteredMeshError(LookupError):
    """An embedded-mesh query was made for a mesh never passed to ``add_embedded_mesh``."""


class DimensionMismatchError(ValueError):
    """Input tensor shapes disagree with the container or embedded mesh."""
