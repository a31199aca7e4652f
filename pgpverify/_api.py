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
The single-call verification entry point.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pgpverify.keyring import Keyring
from pgpverify.verify.models import VerificationResult
from pgpverify.verify.policy import AggregatePolicy
from pgpverify.verify.verifier import Verifier


def verify(
    message: Union[bytes, str],
    message_armored: bool,
    keyring: Union[bytes, str],
    keyring_armored: bool,
    detached_data: Optional[bytes] = None,
    *,
    policy: Optional[AggregatePolicy] = None,
    at: Optional[datetime] = None,
) -> VerificationResult:
    """
    Loads `keyring` and verifies `message` against it.

    Structural problems in either input raise `pgpverify.errors.Error`
    subclasses; signature problems are reported in the returned result.
    """
    loaded = Keyring.from_bytes(keyring, armored=keyring_armored)
    return Verifier().verify_stream(
        message,
        message_armored,
        loaded,
        detached_data,
        policy=policy,
        at=at,
    )
