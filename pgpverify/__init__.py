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
The `pgpverify` Python APIs.

For command-line usage of `pgpverify`, refer to the `pgpverify`
README.

Otherwise, here are some quick starting points:

* `pgpverify.keyring`: loading OpenPGP keyrings and looking up certificates
* `pgpverify.verify`: verifying signed messages and detached signatures,
  including control over how per-signature outcomes are aggregated
* `pgpverify.armor` and `pgpverify.packets`: the underlying codecs
"""

from pgpverify._version import __version__

__all__ = ["__version__"]
