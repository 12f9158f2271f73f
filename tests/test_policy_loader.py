"""Tests for loading and registering application policies."""

from pathlib import Path

import pytest
from sqlmodel import select

import deploy_audit.services.verification.policy as policy_package
from deploy_audit.db.models import ApplicationRepository, MonitoredApplication
from deploy_audit.services.verification.policy import (
    get_application_policies,
    load_policy,
    register_applications,
)
from deploy_audit.services.verification.types import (
    ImplicitApprovalMode,
    RepositoryStatus,
)

EXAMPLE_POLICY = Path(policy_package.__file__).parent / "policy.example.yaml"


def write_policy(tmp_path: Path, body: str) -> str:
    path = tmp_path / "policy.yaml"
    path.write_text(body, encoding="utf-8")
    return str(path)


class TestGetApplicationPolicies:
    def test_example_policy(self):
        policies = get_application_policies(load_policy(str(EXAMPLE_POLICY)))

        assert [p.app for p in policies] == ["payment-api", "gateway"]
        payments, gateway = policies
        assert payments.implicit_approval_mode == ImplicitApprovalMode.DEPENDABOT_ONLY
        assert [(r.owner, r.repo, r.status) for r in payments.repositories] == [
            ("example-org", "payment-api", RepositoryStatus.ACTIVE),
            ("example-org", "payment-api-legacy", RepositoryStatus.HISTORICAL),
        ]
        assert gateway.implicit_approval_mode == ImplicitApprovalMode.OFF
        assert gateway.default_branch == "main"

    def test_bare_yaml_off(self, tmp_path):
        path = write_policy(
            tmp_path,
            "applications:\n"
            "  - {team: t, environment: prod, app: a, implicit_approval_mode: off}\n",
        )
        (policy,) = get_application_policies(load_policy(path))
        assert policy.implicit_approval_mode == ImplicitApprovalMode.OFF

    def test_invalid_entries_are_skipped(self):
        policy = {
            "applications": [
                {"team": "t", "environment": "prod"},
                {"team": "t", "environment": "prod", "app": "bad-repo",
                 "repositories": [{"name": "no-owner"}]},
                {"team": "t", "environment": "prod", "app": "bad-mode",
                 "implicit_approval_mode": "sometimes"},
                {"team": "t", "environment": "prod", "app": "ok"},
            ]
        }
        assert [p.app for p in get_application_policies(policy)] == ["ok"]

    def test_empty_file(self, tmp_path):
        path = write_policy(tmp_path, "")
        assert get_application_policies(load_policy(path)) == []


@pytest.mark.anyio
class TestRegisterApplications:
    async def test_creates_then_updates(self, session):
        first = get_application_policies(
            {
                "applications": [
                    {"team": "t", "environment": "prod", "app": "a",
                     "repositories": [{"name": "acme/app", "status": "pending_approval"}]}
                ]
            }
        )
        second = get_application_policies(
            {
                "applications": [
                    {"team": "t", "environment": "prod", "app": "a",
                     "default_branch": "master", "implicit_approval_mode": "all",
                     "repositories": [{"name": "acme/app", "status": "active"}]}
                ]
            }
        )

        await register_applications(session, first)
        await register_applications(session, second)

        apps = (await session.execute(select(MonitoredApplication))).scalars().all()
        repos = (await session.execute(select(ApplicationRepository))).scalars().all()
        assert len(apps) == 1
        assert apps[0].default_branch == "master"
        assert apps[0].implicit_approval_mode == "all"
        assert [(r.owner, r.repo, r.status) for r in repos] == [("acme", "app", "active")]
