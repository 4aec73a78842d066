"""Tests for capability token issuance."""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from blobctl.exceptions import AuthenticationError
from blobctl.tokens import CapabilityToken, TokenManager, container_policy
from tests.fake_storage import FIXED_TIME, FakeSTS


@pytest.fixture
def manager(config, fake_sts):
    return TokenManager(config, fake_sts, clock=lambda: FIXED_TIME)


class TestTokenManager:
    def test_issue_scopes_policy_to_container(self, manager, fake_sts):
        manager.issue("reports")

        call = fake_sts.calls[0]
        policy = json.loads(call["Policy"])
        resources = {statement["Resource"] for statement in policy["Statement"]}
        actions = {action for statement in policy["Statement"] for action in statement["Action"]}
        assert resources == {"arn:aws:s3:::reports", "arn:aws:s3:::reports/*"}
        assert actions == {"s3:GetObject", "s3:PutObject", "s3:DeleteObject", "s3:ListBucket"}
        assert call["DurationSeconds"] == 15 * 60

    def test_token_window(self, manager):
        token = manager.issue("reports")

        assert token.issued_at == FIXED_TIME
        assert token.expires_at == FIXED_TIME + timedelta(minutes=15)
        assert not token.is_expired(FIXED_TIME + timedelta(minutes=14))
        assert token.is_expired(FIXED_TIME + timedelta(minutes=15))

    def test_token_is_valid_only_for_its_container(self, manager):
        token = manager.issue("reports")

        assert token.covers("reports")
        assert not token.covers("archive")

    def test_issue_replaces_current_token(self, manager):
        assert manager.current is None

        first = manager.issue("reports")
        second = manager.issue("archive")

        assert manager.current is second
        assert first.access_key_id != second.access_key_id

    def test_credentials_for_boto3(self, manager):
        token = manager.issue("reports")

        assert token.credentials() == {
            "aws_access_key_id": "ASIA1",
            "aws_secret_access_key": "secret-1",
            "aws_session_token": "session-1",
        }

    def test_repr_hides_secrets(self, manager):
        text = repr(manager.issue("reports"))

        assert "secret-1" not in text
        assert "session-1" not in text

    def test_rejected_credentials_raise_authentication_error(self, config):
        manager = TokenManager(config, FakeSTS(fail=True))

        with pytest.raises(AuthenticationError, match="reports") as exc_info:
            manager.issue("reports")

        assert exc_info.value.code == "InvalidClientTokenId"
        assert manager.current is None

    def test_incomplete_response_raises_authentication_error(self, config):
        sts = MagicMock()
        sts.get_federation_token.return_value = {"Credentials": {"AccessKeyId": "ASIA"}}
        manager = TokenManager(config, sts)

        with pytest.raises(AuthenticationError, match="SecretAccessKey"):
            manager.issue("reports")

    def test_programming_errors_are_not_wrapped(self, config):
        sts = MagicMock()
        sts.get_federation_token.side_effect = TypeError("unexpected keyword")
        manager = TokenManager(config, sts)

        with pytest.raises(TypeError):
            manager.issue("reports")

    def test_now_reads_the_injected_clock(self, manager):
        assert manager.now() == FIXED_TIME


def test_container_policy_lists_bucket_level_and_object_level_statements():
    policy = container_policy("c")

    assert policy["Statement"][0]["Resource"] == "arn:aws:s3:::c/*"
    assert policy["Statement"][1]["Action"] == ["s3:ListBucket"]


def test_capability_token_is_frozen():
    token = CapabilityToken("c", "id", "secret", "session", FIXED_TIME, FIXED_TIME)

    with pytest.raises(Exception):
        token.container = "other"
