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

"""Name-based lookup of element types.

Built-in types are registered eagerly. Third-party packages can expose extra
types through the ``meshembed.elements`` entry-point group; those are loaded
on first lookup.
"""

import warnings
from importlib.metadata import EntryPoint, entry_points

from meshembed.elements.base import ElementType
from meshembed.elements.hexahedron import HEXAHEDRON8
from meshembed.elements.quad import QUAD4, QUAD8
from meshembed.elements.segment import SEGMENT2, SEGMENT3
from meshembed.elements.tetrahedron import TETRAHEDRON4, TETRAHEDRON10
from meshembed.elements.triangle import TRIANGLE3, TRIANGLE6

ENTRY_POINT_GROUP = "meshembed.elements"

BUILTIN_ELEMENT_TYPES: tuple[ElementType, ...] = (
    SEGMENT2,
    SEGMENT3,
    TRIANGLE3,
    TRIANGLE6,
    QUAD4,
    QUAD8,
    TETRAHEDRON4,
    TETRAHEDRON10,
    HEXAHEDRON8,
)


# Borg pattern: every instance shares one registry dict.
class ElementRegistry:
    _shared_state = {"_registry": None}

    def __new__(cls, *args, **kwargs):
        obj = super().__new__(cls)
        obj.__dict__ = cls._shared_state
        if cls._shared_state["_registry"] is None:
            cls._shared_state["_registry"] = cls._construct_registry()
        return obj

    @staticmethod
    def _construct_registry() -> dict[str, ElementType | EntryPoint]:
        registry: dict[str, ElementType | EntryPoint] = {
            element_type.name: element_type for element_type in BUILTIN_ELEMENT_TYPES
        }
        for entry_point in entry_points(group=ENTRY_POINT_GROUP):
            if entry_point.name in registry:
                warnings.warn(
                    f"Element type {entry_point.name!r} from entry point "
                    f"{entry_point.value!r} shadows an existing type and is ignored.",
                    stacklevel=2,
                )
                continue
            registry[entry_point.name] = entry_point
        return registry

    def register(self, element_type: ElementType, name: str | None = None) -> None:
        """Register an element type under ``name`` (defaults to ``element_type.name``).

        Raises
        ------
        TypeError
            If ``element_type`` is not an :class:`ElementType` instance.
        ValueError
            If the name is already in use.
        """
        if not isinstance(element_type, ElementType):
            raise TypeError(
                f"Expected an ElementType instance, got {type(element_type).__name__}."
            )
        if name is None:
            name = element_type.name
        if name in self._registry:
            raise ValueError(
                f"Name {name!r} already in use.\n"
                f"Registered element types: {self.list_element_types()}"
            )
        self._registry[name] = element_type

    def factory(self, name: str) -> ElementType:
        """Return the element type registered under ``name``.

        Entry points are loaded on first access; a loaded class is
        instantiated once and the instance replaces the entry point.

        Raises
        ------
        KeyError
            If no element type is registered under ``name``.
        """
        element_type = self._registry.get(name)
        if element_type is None:
            raise KeyError(
                f"No element type named {name!r}. "
                f"Registered element types: {self.list_element_types()}"
            )
        if isinstance(element_type, EntryPoint):
            loaded = element_type.load()
            if isinstance(loaded, type):
                loaded = loaded()
            if not isinstance(loaded, ElementType):
                raise TypeError(
                    f"Entry point {name!r} did not provide an ElementType, "
                    f"got {type(loaded).__name__}."
                )
            self._registry[name] = loaded
            element_type = loaded
        return element_type

    def list_element_types(self) -> list[str]:
        return sorted(self._registry)

    def __contains__(self, name: str) -> bool:
        return name in self._registry

    def __restore_registry__(self) -> None:
        # NOTE: This is only used for testing purposes
        self._registry = self._construct_registry()


def register_element_type(element_type: ElementType, name: str | None = None) -> None:
    ElementRegistry().register(element_type, name)


def get_element_type(name: str) -> ElementType:
    return ElementRegistry().factory(name)


def list_element_types() -> list[str]:
    return ElementRegistry().list_element_types()


def resolve_element_type(element_type: ElementType | str) -> ElementType:
    """Accept an :class:`ElementType` or a registered name."""
    if isinstance(element_type, ElementType):
        return element_type
    if isinstance(element_type, str):
        return get_element_type(element_type)
    raise TypeError(
        f"element_type must be an ElementType or a registered name, "
        f"got {type(element_type).__name__}."
    )
