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

"""Isoparametric element geometry.

Each element type provides shape functions, their derivatives, the forward
mapping and its Jacobian, reference-domain membership, the reference center
and quadrature nodes. Point location and field transfer depend only on this
interface, never on concrete types.
"""

from meshembed.elements.base import (
    ElementType,
    GaussNodes,
    HypercubeElement,
    SimplexElement,
)
from meshembed.elements.element import Element
from meshembed.elements.hexahedron import HEXAHEDRON8, Hexahedron8
from meshembed.elements.quad import QUAD4, QUAD8, Quad4, Quad8
from meshembed.elements.registry import (
    ElementRegistry,
    get_element_type,
    list_element_types,
    register_element_type,
    resolve_element_type,
)
from meshembed.elements.segment import SEGMENT2, SEGMENT3, Segment2, Segment3
from meshembed.elements.tetrahedron import (
    TETRAHEDRON4,
    TETRAHEDRON10,
    Tetrahedron4,
    Tetrahedron10,
)
from meshembed.elements.triangle import TRIANGLE3, TRIANGLE6, Triangle3, Triangle6
