"""Tests for gardenwatch.models.collections."""

from __future__ import annotations

import dataclasses

import pytest

from gardenwatch.models.collections import CollectionRegistry, ResourceCollection


class TestCollectionRegistry:
    def test_shoots_are_namespaced_by_default(self) -> None:
        registry = CollectionRegistry()
        assert registry.identity("shoots") == ResourceCollection(name="shoots", namespaced=True)

    def test_unknown_names_are_cluster_scoped(self) -> None:
        registry = CollectionRegistry()
        assert registry.identity("projects").namespaced is False

    def test_registry_comes_from_configuration(self) -> None:
        registry = CollectionRegistry(["shoots", " secretbindings ", ""])
        assert registry.namespaced == frozenset({"shoots", "secretbindings"})
        assert registry.is_namespaced("secretbindings")

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            CollectionRegistry().identity("")

    def test_identity_is_immutable(self) -> None:
        identity = CollectionRegistry().identity("shoots")
        with pytest.raises(dataclasses.FrozenInstanceError):
            identity.name = "projects"  # type: ignore[misc]
