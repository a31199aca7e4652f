# Copyright 2026 The pgpverify Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Common (base) models for the verification APIs.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from pgpverify.errors import VerificationError


class Outcome(str, enum.Enum):
    """
    The outcome of verifying a single signature.
    """

    VALID = "valid"
    INVALID = "invalid"
    KEY_NOT_FOUND = "key-not-found"
    AMBIGUOUS_KEY = "ambiguous-key"
    EXPIRED_SIGNATURE = "expired-signature"
    EXPIRED_KEY = "expired-key"
    REVOKED = "revoked"
    UNSUPPORTED_ALGORITHM = "unsupported-algorithm"
    MALFORMED_PACKET = "malformed-packet"

    def __str__(self) -> str:
        return self.value


class SignatureResult(BaseModel, frozen=True):
    """
    The result of verifying one signature.

    Results are boolish: only `Outcome.VALID` is truthy.
    """

    outcome: Outcome
    """
    What happened to this signature.
    """

    reason: str = ""
    """
    A human-readable explanation of a non-valid outcome.
    """

    key_id: Optional[str] = None
    """
    The issuer key ID named by the signature, as uppercase hex.
    """

    fingerprint: Optional[str] = None
    """
    The fingerprint of the key that checked the signature, if one was found.
    """

    signature_type: Optional[int] = None
    created: Optional[datetime] = None

    @property
    def valid(self) -> bool:
        return self.outcome == Outcome.VALID

    def __bool__(self) -> bool:
        return self.valid

    def __str__(self) -> str:
        signer = self.fingerprint or self.key_id or "unknown signer"
        if self.valid:
            return f"{signer}: {self.outcome}"
        return f"{signer}: {self.outcome} ({self.reason})"


class VerificationResult(BaseModel):
    """
    Represents the result of a verification operation.

    Results are boolish, and failures contain a reason (and potentially
    some additional context).
    """

    success: bool
    """
    Represents the status of this result, as decided by the aggregate policy.
    """

    signatures: list[SignatureResult] = []
    """
    One result per signature found, in stream order.
    """

    reason: Optional[str] = None
    """
    A human-readable explanation of a failure.
    """

    def __bool__(self) -> bool:
        """
        Returns a boolean representation of this result.
        """
        return self.success

    def raise_for_failure(self) -> None:
        """
        Raises `VerificationError` if this result is not a success.
        """
        if not self.success:
            raise VerificationError(self.reason or "verification failed")
