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
API for verifying OpenPGP signatures.

Example:
```python
from pathlib import Path

from pgpverify.keyring import Keyring
from pgpverify.verify import Verifier
from pgpverify.verify.policy import AnyOf

# The keyring holding the trusted certificates
keyring = Keyring.from_bytes(Path("keyring.asc").read_bytes(), armored=True)

# The input to verify
input_ = Path("release.tar.gz").read_bytes()

verifier = Verifier()
result = verifier.verify_stream(
    Path("release.tar.gz.asc").read_bytes(),
    True,
    keyring,
    detached_data=input_,
    policy=AnyOf(),
)
print(result)
```
"""

from pgpverify._api import verify
from pgpverify.verify.verifier import SignatureVerifier, Verifier

__all__ = [
    "SignatureVerifier",
    "Verifier",
    "policy",
    "verifier",
    "verify",
]
