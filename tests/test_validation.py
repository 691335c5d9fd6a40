"""Tests for post-deployment validation."""

import logging

import pytest

from dockship.errors import ExitCode, ValidationSessionError
from dockship.schemas.deployment import Policy
from dockship.services.remote import SSH_TRANSPORT_FAILURE
from dockship.services.validation import CHECKS, DeploymentValidator

CHECK_NAMES = [check.name for check in CHECKS]


class TestValidate:
    """Test DeploymentValidator.validate."""

    def test_all_pass(self, executor):
        """Test every check runs and passes on a healthy host."""
        outcome = DeploymentValidator(executor).validate()

        assert outcome.passed
        assert executor.names == CHECK_NAMES
        assert all(call.policy is Policy.ADVISORY for call in executor.calls)

    def test_failures_reported_not_raised(self, make_executor, caplog):
        """Test a failing check is logged distinctly and the rest still run."""
        executor = make_executor(failures={"nginx-active": 3, "proxy-reachable": 7})

        with caplog.at_level(logging.INFO, logger="dockship"):
            outcome = DeploymentValidator(executor, public_port=8080).validate()

        assert not outcome.passed
        assert outcome.failures == ["nginx-active", "proxy-reachable"]
        assert executor.names == CHECK_NAMES
        assert "Docker: Active" in caplog.text
        assert "Nginx: Inactive" in caplog.text
        assert "Application not responding through Nginx on port 8080" in caplog.text

    def test_public_port_passed_to_probe(self, executor):
        """Test the proxy probe targets the configured public port."""
        DeploymentValidator(executor, public_port=8080).validate()

        assert executor.call("proxy-reachable").env["PUBLIC_PORT"] == "8080"

    def test_unreachable_host(self, make_executor):
        """Test exit code 60 when no check could open a session."""
        executor = make_executor(failures={name: SSH_TRANSPORT_FAILURE for name in CHECK_NAMES})

        with pytest.raises(ValidationSessionError) as exc_info:
            DeploymentValidator(executor).validate()

        assert exc_info.value.exit_code == ExitCode.VALIDATION
