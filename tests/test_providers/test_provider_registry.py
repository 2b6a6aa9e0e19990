"""Tests for glob matching and the provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from starbase.providers.base import GitProviderClient, matches_any, matches_pattern
from starbase.providers.local_git import LocalGitClient
from starbase.providers.registry import create_provider_client, list_providers, map_provider_type

if TYPE_CHECKING:
    from starbase.config import Settings


class TestMatchesPattern:
    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("invoice.bpmn", "**/*.bpmn"),
            ("a/b/c/invoice.bpmn", "**/*.bpmn"),
            ("processes/invoice.bpmn", "processes/*.bpmn"),
            ("processes/eu/invoice.bpmn", "processes/**"),
            ("rates.dmn", "*.dmn"),
        ],
    )
    def test_matches(self, path: str, pattern: str) -> None:
        assert matches_pattern(path, pattern)

    @pytest.mark.parametrize(
        ("path", "pattern"),
        [
            ("processes/eu/invoice.bpmn", "processes/*.bpmn"),
            ("a/rates.dmn", "*.dmn"),
            ("invoice.bpmn", "**/*.dmn"),
            ("invoiceXbpmn", "*.bpmn"),
        ],
    )
    def test_does_not_match(self, path: str, pattern: str) -> None:
        assert not matches_pattern(path, pattern)

    def test_matches_any_with_no_patterns(self) -> None:
        assert matches_any("README.md", [])
        assert not matches_any("README.md", ["**/*.bpmn"])


class TestRegistry:
    @pytest.mark.parametrize(
        ("stored", "expected"),
        [
            ("local", "local"),
            ("LOCAL", "local"),
            ("azure_devops", "azure-devops"),
            ("AzureDevOps", "azure-devops"),
            ("github", "github"),
        ],
    )
    def test_map_provider_type(self, stored: str, expected: str) -> None:
        assert map_provider_type(stored) == expected

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider type"):
            map_provider_type("svn")

    def test_hosted_providers_are_unsupported(self, test_settings: Settings) -> None:
        with pytest.raises(ValueError, match="not supported"):
            create_provider_client("gitlab", test_settings)

    def test_local_client_uses_settings(self, test_settings: Settings) -> None:
        client = create_provider_client("local", test_settings)
        assert isinstance(client, LocalGitClient)
        assert isinstance(client, GitProviderClient)
        assert client.base_dir == test_settings.git_repos_dir
        assert client.timeout == test_settings.git_command_timeout_seconds

    def test_list_providers(self) -> None:
        assert list_providers() == ["local"]
