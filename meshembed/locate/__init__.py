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

"""Point location in container domains and field transfer to embedded meshes.

This module provides:
- A batched Newton inverse of the isoparametric mapping
- :class:`BarycentricContainer`, which indexes a domain and caches the
  correspondence of embedded meshes
- Shape-function interpolation of nodal fields at located points
"""

from meshembed.locate._located import NOT_FOUND, LocatedPoints
from meshembed.locate.config import ContainerConfig
from meshembed.locate.container import BarycentricContainer, ContainerState
from meshembed.locate.exceptions import DimensionMismatchError, UnregisteredMeshError
from meshembed.locate.interpolation import interpolate_at, interpolate_tensordict_at
from meshembed.locate.inverse_mapping import (
    InverseMappingResult,
    MappingStatus,
    invert_mapping,
)
