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

from __future__ import annotations

import datetime
from typing import Callable

import pretend
import pytest

from pgpverify.keyring import Keyring
from pgpverify.verify.verifier import SignatureVerifier, Verifier

# Every fixture signature was made in 2024; see `build-fixtures.sh`.
VERIFICATION_TIME = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)


def _new_format_header(tag: int, length: int) -> bytes:
    """
    A new-format packet header with a one, two or five octet length.
    """
    if length < 192:
        encoded = bytes([length])
    elif length < 8384:
        length -= 192
        encoded = bytes([(length >> 8) + 192, length & 0xFF])
    else:
        encoded = b"\xff" + length.to_bytes(4, "big")
    return bytes([0xC0 | tag]) + encoded


def _packet(tag: int, body: bytes) -> bytes:
    return _new_format_header(tag, len(body)) + body


def _mpi(value: int) -> bytes:
    return value.bit_length().to_bytes(2, "big") + value.to_bytes(
        (value.bit_length() + 7) // 8, "big"
    )


@pytest.fixture
def wire():
    """
    Helpers for hand-building packet streams.
    """
    return pretend.stub(header=_new_format_header, packet=_packet, mpi=_mpi)


@pytest.fixture
def keyring(asset) -> Keyring:
    return Keyring.from_bytes(asset("keyring.asc").read_bytes(), armored=True)


@pytest.fixture
def fingerprints(asset) -> dict[str, str]:
    """
    Maps each fixture identity's name (e.g. "alice") to its fingerprint.
    """
    result = {}
    for line in asset("fingerprints.txt").read_text().splitlines():
        email, fingerprint = line.split()
        result[email.split("@")[0]] = fingerprint
    return result


@pytest.fixture
def message(asset) -> bytes:
    return asset("message.txt").read_bytes()


@pytest.fixture
def verifier() -> Verifier:
    return Verifier()


@pytest.fixture
def signature_verifier() -> SignatureVerifier:
    return SignatureVerifier()


@pytest.fixture
def verify_asset(asset, keyring, verifier) -> Callable:
    """
    Verifies a fixture file, inferring armoring from its name.
    """

    def _verify_asset(name: str, detached: str | None = None, **kwargs):
        path = asset(name)
        armored = path.suffix in (".asc", ".clearsigned")
        detached_data = asset(detached).read_bytes() if detached else None
        kwargs.setdefault("at", VERIFICATION_TIME)
        return verifier.verify_stream(
            path.read_bytes(), armored, keyring, detached_data, **kwargs
        )

    return _verify_asset
