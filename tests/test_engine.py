from __future__ import annotations

from stackpolicy.policy import FactSnapshot, RuleCatalog, RuleDef, advise, evaluate, resolve, resolve_detailed


def _snap(ecosystems=(), artifacts=(), **flags) -> FactSnapshot:
    return FactSnapshot(ecosystems=frozenset(ecosystems), artifacts=frozenset(artifacts), flags=flags)


# -----------------------------------------------------------------------------
# Evaluator
# -----------------------------------------------------------------------------


def test_candidates_follow_declaration_order(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "z-rule", "action": "Z"},
        {"id": "a-rule", "action": "A"},
        {"id": "m-rule", "action": "M"},
    )
    assert [c.rule_id for c in evaluate(catalog, _snap())] == ["z-rule", "a-rule", "m-rule"]


def test_scope_gates_rules(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "rust-clippy", "scope": "rust", "action": "clippy"},
        {"id": "universal", "action": "always"},
    )

    assert [c.rule_id for c in evaluate(catalog, _snap(ecosystems={"python"}))] == ["universal"]
    assert [c.rule_id for c in evaluate(catalog, _snap(ecosystems={"rust"}))] == ["rust-clippy", "universal"]


def test_scope_gate_applies_even_when_condition_holds(build_catalog) -> None:
    catalog = build_catalog(
        {
            "id": "cargo-lock",
            "scope": "rust",
            "action": "commit Cargo.lock",
            "condition": {"artifact_absent": "cargo-lockfile-present"},
        },
    )
    assert evaluate(catalog, _snap(ecosystems={"javascript"})) == []


def test_missing_flag_does_not_fire_and_does_not_error(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "waf", "action": "WAF", "condition": {"tier_at_least": {"flag": "CLOUD_TIER", "tier": "business"}}},
    )
    errors = []
    assert evaluate(catalog, _snap(), on_error=lambda rule, err: errors.append(rule.id)) == []
    assert errors == []


def test_malformed_fact_skips_only_that_rule(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "waf", "action": "WAF", "condition": {"tier_at_least": {"flag": "CLOUD_TIER", "tier": "pro"}}},
        {"id": "readme", "action": "README", "condition": {"artifact_absent": "readme-present"}},
    )
    errors = []
    candidates = evaluate(
        catalog,
        _snap(CLOUD_TIER=True),
        on_error=lambda rule, err: errors.append((rule.id, err.rule_id)),
    )
    assert [c.rule_id for c in candidates] == ["readme"]
    assert errors == [("waf", "waf")]


def test_candidate_carries_rule_fields(pnpm_catalog) -> None:
    candidates = evaluate(pnpm_catalog, _snap({"javascript"}, {"npm-lockfile-present"}))
    npm = candidates[0]
    assert npm.rule_id == "npm-detected"
    assert npm.domain == "language-tooling"
    assert npm.severity == "strong"
    assert [s.id for s in npm.steps] == ["export-to-pnpm", "remove-npm-artifacts", "install-via-pnpm"]
    assert npm.superseded_ids == ()


# -----------------------------------------------------------------------------
# ConflictResolver
# -----------------------------------------------------------------------------


def test_npm_supersedes_pnpm_preferred(pnpm_catalog) -> None:
    snapshot = _snap({"javascript"}, {"npm-lockfile-present"})
    final = resolve(evaluate(pnpm_catalog, snapshot), pnpm_catalog)

    assert [r.rule_id for r in final] == ["npm-detected"]
    assert [s.id for s in final[0].steps] == ["export-to-pnpm", "remove-npm-artifacts", "install-via-pnpm"]
    assert final[0].superseded_ids == ("pnpm-preferred",)


def test_supersession_independent_of_declaration_order(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "legacy-tool", "action": "legacy"},
        {"id": "migrate-tool", "action": "migrate", "supersedes": ["legacy-tool"]},
    )
    final = resolve(evaluate(catalog, _snap()), catalog)
    assert [r.rule_id for r in final] == ["migrate-tool"]
    assert final[0].superseded_ids == ("legacy-tool",)


def test_superseder_not_firing_leaves_target(pnpm_catalog) -> None:
    final = resolve(evaluate(pnpm_catalog, _snap({"javascript"})), pnpm_catalog)
    assert [r.rule_id for r in final] == ["pnpm-preferred"]


def test_higher_severity_wins_exclusion(validation_catalog) -> None:
    final = resolve(evaluate(validation_catalog, _snap({"javascript"})), validation_catalog)
    assert [r.rule_id for r in final] == ["use-zod"]


def test_exclusion_tie_goes_to_first_declared(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "keep-yup", "severity": "strong", "action": "yup", "excludes": ["use-zod"]},
        {"id": "use-zod", "severity": "strong", "action": "zod", "excludes": ["keep-yup"]},
    )
    resolution = resolve_detailed(evaluate(catalog, _snap()), catalog)
    assert resolution.rule_ids == ["keep-yup"]
    assert resolution.excluded == {"use-zod": "keep-yup"}


def test_exclusion_group_is_connected_component(build_catalog) -> None:
    # a-b and b-c exclude each other; a and c are linked through b.
    catalog = build_catalog(
        {"id": "a", "severity": "advisory", "action": "A", "excludes": ["b"]},
        {"id": "b", "severity": "advisory", "action": "B", "excludes": ["a", "c"]},
        {"id": "c", "severity": "mandatory", "action": "C", "excludes": ["b"]},
        {"id": "d", "severity": "advisory", "action": "D"},
    )
    final = resolve(evaluate(catalog, _snap()), catalog)
    assert [r.rule_id for r in final] == ["c", "d"]


def test_group_splits_when_bridge_did_not_fire(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "a", "action": "A", "excludes": ["b"]},
        {"id": "b", "action": "B", "excludes": ["a", "c"], "condition": {"flag_enabled": "NEVER_SET"}},
        {"id": "c", "action": "C", "excludes": ["b"]},
    )
    final = resolve(evaluate(catalog, _snap()), catalog)
    assert [r.rule_id for r in final] == ["a", "c"]


def test_superseded_candidate_does_not_compete_in_exclusion(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "old", "severity": "mandatory", "action": "old", "excludes": ["other"]},
        {"id": "other", "severity": "advisory", "action": "other", "excludes": ["old"]},
        {"id": "new", "severity": "advisory", "action": "new", "supersedes": ["old"]},
    )
    resolution = resolve_detailed(evaluate(catalog, _snap()), catalog)
    assert resolution.rule_ids == ["other", "new"]
    assert resolution.superseded == {"old": ("new",)}
    assert resolution.excluded == {}


def test_severity_precedence_regardless_of_order(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "x", "severity": "advisory", "action": "x", "excludes": ["y", "z"]},
        {"id": "y", "severity": "advisory", "action": "y", "excludes": ["x", "z"]},
        {"id": "z", "severity": "strong", "action": "z", "excludes": ["x", "y"]},
    )
    final = resolve(evaluate(catalog, _snap()), catalog)
    assert [(r.rule_id, r.severity) for r in final] == [("z", "strong")]


def test_cross_domain_rules_co_occur(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "cache-security", "domain": "security", "action": "s", "condition": {"flag_enabled": "ENABLE_CACHE"}},
        {"id": "cache-perf", "domain": "performance", "action": "p", "condition": {"flag_enabled": "ENABLE_CACHE"}},
    )
    final = resolve(evaluate(catalog, _snap(ENABLE_CACHE=True)), catalog)
    assert [r.rule_id for r in final] == ["cache-security", "cache-perf"]


def test_empty_result_is_valid(build_catalog) -> None:
    catalog = build_catalog({"id": "never", "action": "n", "condition": {"flag_enabled": "X"}})
    resolution = advise(catalog, _snap())
    assert resolution.recommendations == ()
    assert len(resolution) == 0


def test_resolution_is_deterministic(default_catalog) -> None:
    snapshot = _snap(
        {"javascript", "python"},
        {"npm-lockfile-present", "pip-bare", "git-repo", "env-file-present"},
        CLOUD_PROVIDER="vercel",
        CLOUD_TIER="business",
        ENABLE_CACHE=True,
        AUTH_PROVIDER="next-auth",
    )
    first = advise(default_catalog, snapshot)
    for _ in range(5):
        again = advise(default_catalog, snapshot)
        assert again.recommendations == first.recommendations
        assert again.superseded == first.superseded
        assert again.excluded == first.excluded


def test_advise_records_skipped_rules(build_catalog) -> None:
    catalog = build_catalog(
        {"id": "waf", "action": "WAF", "condition": {"tier_at_least": {"flag": "CLOUD_TIER", "tier": "pro"}}},
    )
    resolution = advise(catalog, _snap(CLOUD_TIER="diamond"))
    assert resolution.recommendations == ()
    assert "waf" in resolution.skipped
    assert "diamond" in resolution.skipped["waf"]


# -----------------------------------------------------------------------------
# Built-in catalog scenarios
# -----------------------------------------------------------------------------


def test_default_catalog_npm_project(default_catalog) -> None:
    snapshot = _snap({"javascript"}, {"npm-lockfile-present", "git-repo", "readme-present", "tests-present"})
    resolution = advise(default_catalog, snapshot)

    ids = resolution.rule_ids
    assert "npm-detected" in ids
    assert "pnpm-preferred" not in ids
    assert resolution.superseded["pnpm-preferred"] == ("npm-detected",)
    # zod is universal for javascript; no yup flag means no conflict
    assert "use-zod" in ids
    assert "rust-clippy" not in ids


def test_default_catalog_keeps_existing_yup(default_catalog) -> None:
    snapshot = _snap({"javascript"}, {"pnpm-lockfile-present"}, VALIDATION_LIBRARY="yup")
    ids = advise(default_catalog, snapshot).rule_ids
    assert "keep-yup" in ids
    assert "use-zod" not in ids


def test_default_catalog_polyglot_hooks(default_catalog) -> None:
    snapshot = _snap({"javascript", "python"}, {"git-repo", "pnpm-lockfile-present", "uv-lockfile-present"})
    ids = advise(default_catalog, snapshot).rule_ids
    # same severity; lefthook-hooks is declared first
    assert "lefthook-hooks" in ids
    assert "pre-commit-hooks" not in ids


def test_default_catalog_cloud_tiers(default_catalog) -> None:
    snapshot = _snap(artifacts={"git-repo"}, CLOUD_PROVIDER="aws", CLOUD_TIER="business")
    ids = advise(default_catalog, snapshot).rule_ids
    assert "cloud-spend-cap" in ids
    assert "cloud-waf" in ids
    assert "cloud-free-tier-limits" not in ids


def test_hand_built_catalog_with_unknown_supersedes_target() -> None:
    catalog = RuleCatalog(
        catalog_id="manual",
        version=1,
        rules=(
            RuleDef(id="a", domain="general", action="A", supersedes=frozenset({"ghost", "b"})),
            RuleDef(id="b", domain="general", action="B"),
        ),
    )
    resolution = resolve_detailed(evaluate(catalog, _snap()), catalog)
    assert resolution.rule_ids == ["a"]
    assert resolution.superseded == {"b": ("a",)}
