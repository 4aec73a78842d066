"""
Capability tokens: short-lived credentials scoped to a single container.

A token is a set of STS federation credentials whose inline policy allows
read, write, delete and list on one bucket only, for ``sas_validity_duration``
minutes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .exceptions import AuthenticationError, error_details

logger = logging.getLogger(__name__)

FEDERATED_USER_NAME = "blobctl"

OBJECT_ACTIONS = ("s3:GetObject", "s3:PutObject", "s3:DeleteObject")
BUCKET_ACTIONS = ("s3:ListBucket",)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def container_policy(container: str) -> dict:
    """Access policy granting read/write/delete/list on ``container`` and nothing else."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(OBJECT_ACTIONS),
                "Resource": f"arn:aws:s3:::{container}/*",
            },
            {
                "Effect": "Allow",
                "Action": list(BUCKET_ACTIONS),
                "Resource": f"arn:aws:s3:::{container}",
            },
        ],
    }


@dataclass(frozen=True)
class CapabilityToken:
    """Time-windowed credentials valid for one container."""

    container: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime

    def covers(self, container: str) -> bool:
        return self.container == container

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def credentials(self) -> dict:
        """Keyword arguments for ``boto3.client``."""
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }


class TokenManager:
    """
    Issues capability tokens and remembers the most recent one.

    The manager never refreshes a token on its own; callers decide whether to
    reuse a token they hold or ask for a new one.
    """

    def __init__(
        self,
        config: StorageConfig,
        sts_client: Any,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self._sts = sts_client
        self._clock = clock
        self._current: Optional[CapabilityToken] = None

    @property
    def current(self) -> Optional[CapabilityToken]:
        """The last token issued, for whichever container was touched last."""
        return self._current

    def now(self) -> datetime:
        """Current time as seen by this manager's clock."""
        return self._clock()

    def issue(self, container: str) -> CapabilityToken:
        """
        Issue a fresh token for ``container``.

        Raises:
            AuthenticationError: If the credential service rejects the request.
        """
        issued_at = self._clock()
        expires_at = issued_at + timedelta(minutes=self.config.sas_validity_duration)

        try:
            response = self._sts.get_federation_token(
                Name=FEDERATED_USER_NAME,
                Policy=json.dumps(container_policy(container)),
                DurationSeconds=int(self.config.sas_validity_duration * 60),
            )
        except (ClientError, BotoCoreError) as exc:
            code, msg = error_details(exc)
            raise AuthenticationError(
                f"Failed to issue access token for container '{container}': {msg}",
                code=code,
                original=exc,
            ) from exc

        creds = response.get("Credentials") or {}
        try:
            token = CapabilityToken(
                container=container,
                access_key_id=creds["AccessKeyId"],
                secret_access_key=creds["SecretAccessKey"],
                session_token=creds["SessionToken"],
                issued_at=issued_at,
                expires_at=expires_at,
            )
        except KeyError as exc:
            raise AuthenticationError(
                f"Credential service response is missing {exc.args[0]}"
            ) from exc

        self._current = token
        logger.debug(
            "Issued access token",
            extra={"container": container, "expires_at": expires_at.isoformat()},
        )
        return token
