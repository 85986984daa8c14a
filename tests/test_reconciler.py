"""Tests for post-provision reconciliation."""

from dataclasses import replace

import pytest

from cms_mock import MockCmsService
from sandbox_migrator.config import Config
from sandbox_migrator.errors import ErrorKind
from sandbox_migrator.github_context import BranchContext, EventKind
from sandbox_migrator.provisioner import EnvironmentKind
from sandbox_migrator.reconciler import (
    STEP_ALIAS,
    STEP_API_KEY,
    STEP_CLEANUP,
    PostProvisionReconciler,
)

NEW_ENV = "master-2021-02-03-0000"


def merged_pull_request(head: str = "feature/x") -> BranchContext:
    return BranchContext(
        head_ref=head,
        base_ref="main",
        default_branch="main",
        event_kind=EventKind.PULL_REQUEST,
        merged=True,
    )


class TestPropagateApiKeys:
    """Tests for API key fan-out."""

    @pytest.mark.asyncio
    async def test_grants_every_key(self, config: Config) -> None:
        service = MockCmsService()
        service.add_api_key("key1")
        service.add_api_key("key2")

        results = await PostProvisionReconciler(service, config).propagate_api_keys(NEW_ENV)

        assert [r.target for r in results] == ["key1", "key2"]
        assert all(r.success for r in results)
        assert service.api_keys["key1"].environments == ["master", NEW_ENV]
        assert service.api_keys["key2"].environments == ["master", NEW_ENV]

    @pytest.mark.asyncio
    async def test_already_granted_is_not_updated(self, config: Config) -> None:
        service = MockCmsService()
        service.add_api_key("key1", environments=["master", NEW_ENV])

        results = await PostProvisionReconciler(service, config).propagate_api_keys(NEW_ENV)

        assert results[0].success
        assert results[0].detail == "already granted"
        assert "update_api_key" not in service.operations()

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, config: Config) -> None:
        service = MockCmsService()
        service.add_api_key("key1")
        service.add_api_key("key2")
        service.failing_api_keys.add("key1")

        results = await PostProvisionReconciler(service, config).propagate_api_keys(NEW_ENV)

        by_key = {r.target: r for r in results}
        assert not by_key["key1"].success
        assert by_key["key1"].recovered.kind == ErrorKind.BEST_EFFORT
        assert by_key["key2"].success
        assert NEW_ENV in service.api_keys["key2"].environments

    @pytest.mark.asyncio
    async def test_list_failure_is_recovered(self, config: Config) -> None:
        service = MockCmsService()
        service.fail("list_api_keys")

        results = await PostProvisionReconciler(service, config).propagate_api_keys(NEW_ENV)

        assert len(results) == 1
        assert results[0].target == "*"
        assert results[0].recovered.step == STEP_API_KEY


class TestRepointAlias:
    """Tests for alias updates."""

    def test_updates_alias_for_canonical(self, config: Config) -> None:
        service = MockCmsService()
        service.add_alias("master", "master-2021-01-01-0000")
        reconciler = PostProvisionReconciler(service, replace(config, set_alias=True))

        result = reconciler.repoint_alias(NEW_ENV, EnvironmentKind.CANONICAL)

        assert result.success
        assert result.step == STEP_ALIAS
        assert service.aliases["master"].environment_id == NEW_ENV

    def test_skipped_when_disabled(self, config: Config) -> None:
        service = MockCmsService()
        service.add_alias("master", "old")

        assert PostProvisionReconciler(service, config).repoint_alias(NEW_ENV, EnvironmentKind.CANONICAL) is None
        assert service.operations() == []

    def test_skipped_for_feature(self, config: Config) -> None:
        service = MockCmsService()
        reconciler = PostProvisionReconciler(service, replace(config, set_alias=True))

        assert reconciler.repoint_alias("GH-x", EnvironmentKind.FEATURE) is None

    def test_missing_alias_is_recovered(self, config: Config) -> None:
        service = MockCmsService()
        reconciler = PostProvisionReconciler(service, replace(config, set_alias=True))

        result = reconciler.repoint_alias(NEW_ENV, EnvironmentKind.CANONICAL)

        assert not result.success
        assert result.recovered.kind == ErrorKind.BEST_EFFORT


class TestCleanupFeatureEnvironment:
    """Tests for feature environment deletion after merge."""

    def test_deletes_feature_environment(self, config: Config, fixed_clock) -> None:
        service = MockCmsService()
        service.add_environment("GH-feature-x")
        reconciler = PostProvisionReconciler(
            service, replace(config, delete_feature=True), clock=fixed_clock
        )

        result = reconciler.cleanup_feature_environment(merged_pull_request())

        assert result.success
        assert result.step == STEP_CLEANUP
        assert result.target == "GH-feature-x"
        assert "GH-feature-x" not in service.environments

    def test_skipped_when_disabled(self, config: Config) -> None:
        service = MockCmsService()
        assert PostProvisionReconciler(service, config).cleanup_feature_environment(merged_pull_request()) is None

    def test_skipped_for_open_pull_request(self, config: Config) -> None:
        context = replace(merged_pull_request(), merged=False)
        reconciler = PostProvisionReconciler(MockCmsService(), replace(config, delete_feature=True))

        assert reconciler.cleanup_feature_environment(context) is None

    def test_missing_environment_is_recovered(self, config: Config) -> None:
        service = MockCmsService()
        reconciler = PostProvisionReconciler(service, replace(config, delete_feature=True))

        result = reconciler.cleanup_feature_environment(merged_pull_request())

        assert not result.success
        assert result.recovered.step == STEP_CLEANUP


class TestReconcile:
    """Tests for the combined reconciliation."""

    @pytest.mark.asyncio
    async def test_never_raises(self, config: Config) -> None:
        service = MockCmsService()
        service.fail("list_api_keys")
        reconciler = PostProvisionReconciler(
            service, replace(config, set_alias=True, delete_feature=True)
        )

        results = await reconciler.reconcile(NEW_ENV, EnvironmentKind.CANONICAL, merged_pull_request())

        assert [r.step for r in results] == [STEP_API_KEY, STEP_ALIAS, STEP_CLEANUP]
        assert not any(r.success for r in results)


class TestUnexpectedErrors:
    """Errors outside the remote error types are recovered too."""

    @pytest.mark.asyncio
    async def test_malformed_alias_payload(self, config: Config) -> None:
        service = MockCmsService()
        service.fail("get_alias", ValueError("malformed alias payload"))
        reconciler = PostProvisionReconciler(service, replace(config, set_alias=True))

        results = await reconciler.reconcile(NEW_ENV, EnvironmentKind.CANONICAL, merged_pull_request())

        alias_result = next(r for r in results if r.step == STEP_ALIAS)
        assert not alias_result.success
        assert alias_result.recovered.to_dict()["error_type"] == "ValueError"

    @pytest.mark.asyncio
    async def test_api_key_listing_value_error(self, config: Config) -> None:
        service = MockCmsService()
        service.fail("list_api_keys", ValueError("bad page"))

        results = await PostProvisionReconciler(service, config).propagate_api_keys(NEW_ENV)

        assert results[0].target == "*"
        assert not results[0].success

    def test_cleanup_value_error(self, config: Config, fixed_clock) -> None:
        service = MockCmsService()
        service.add_environment("GH-feature-x")
        service.fail("delete_environment", ValueError("unexpected response"))
        reconciler = PostProvisionReconciler(
            service, replace(config, delete_feature=True), clock=fixed_clock
        )

        result = reconciler.cleanup_feature_environment(merged_pull_request())

        assert not result.success
        assert result.recovered.message == "unexpected response"
