"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Any

import pytest

from stackpolicy.policy import RuleCatalog, catalog_from_dict, load_default_catalog


def _make_catalog(*rules: dict[str, Any], strict: bool = False, **top: Any) -> RuleCatalog:
    """Build a catalog from rule dicts; domain defaults to 'general'."""
    data: dict[str, Any] = {"catalog_id": "test", "version": 1, **top, "rules": list(rules)}
    return catalog_from_dict(data, strict=strict)


@pytest.fixture
def build_catalog():
    """Factory for small in-memory catalogs."""
    return _make_catalog


@pytest.fixture
def default_catalog() -> RuleCatalog:
    """The built-in catalog shipped with the package."""
    return load_default_catalog()


@pytest.fixture
def pnpm_catalog() -> RuleCatalog:
    """npm-detected supersedes pnpm-preferred."""
    return _make_catalog(
        {
            "id": "npm-detected",
            "domain": "language-tooling",
            "scope": "javascript",
            "severity": "strong",
            "action": "Migrate from npm to pnpm.",
            "condition": {"artifact_present": "npm-lockfile-present"},
            "supersedes": ["pnpm-preferred"],
            "steps": ["export-to-pnpm", "remove-npm-artifacts", "install-via-pnpm"],
        },
        {
            "id": "pnpm-preferred",
            "domain": "language-tooling",
            "scope": "javascript",
            "severity": "advisory",
            "action": "Use pnpm.",
        },
    )


@pytest.fixture
def validation_catalog() -> RuleCatalog:
    """use-yup (advisory) and use-zod (strong), mutually exclusive."""
    return _make_catalog(
        {
            "id": "use-yup",
            "domain": "language-tooling",
            "scope": "javascript",
            "severity": "advisory",
            "action": "Use yup.",
            "excludes": ["use-zod"],
        },
        {
            "id": "use-zod",
            "domain": "language-tooling",
            "scope": "javascript",
            "severity": "strong",
            "action": "Use zod.",
            "excludes": ["use-yup"],
        },
    )
