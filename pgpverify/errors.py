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
Exceptions.

Structural failures (malformed armor or packet framing) are raised as
exceptions and abort the enclosing load or verification call. Per-signature
failures are never raised; they are reported as outcomes in a
`pgpverify.verify.models.VerificationResult`.
"""

import sys
from logging import Logger
from textwrap import dedent


class Error(Exception):
    """Base pgpverify exception type. Defines helpers for diagnostics."""

    def diagnostics(self) -> str:
        """Returns human-friendly error information."""

        return str(self)

    def log_and_exit(self, logger: Logger, raise_error: bool = False) -> None:
        """Prints all relevant error information to stderr and exits."""

        remind_verbose = (
            "Raising original exception:"
            if raise_error
            else "For detailed error information, run pgpverify with the `--verbose` flag."
        )

        logger.error(f"{self.diagnostics()}\n{remind_verbose}")

        if raise_error:
            # don't want "during handling another exception"
            self.__suppress_context__ = True
            raise self

        sys.exit(1)


class ArmorError(Error):
    """Raised when an ASCII-armored envelope is malformed or fails its checksum."""

    def diagnostics(self) -> str:
        """Returns diagnostics for the error."""

        return dedent(
            f"""\
        The ASCII armor could not be decoded.

        The input is malformed or has been modified in transit.

        Additional context:

        {self}
        """
        )


class PacketError(Error):
    """Raised when the binary OpenPGP packet framing is malformed."""

    def diagnostics(self) -> str:
        """Returns diagnostics for the error."""

        return dedent(
            f"""\
        An issue occurred while parsing OpenPGP packets.

        The input is malformed and may have been modified maliciously.

        Additional context:

        {self}
        """
        )


class UnsupportedVersion(PacketError):
    """
    Raised when a key or signature packet is well-framed but carries a
    version this package does not implement.
    """

    def diagnostics(self) -> str:
        """Returns diagnostics for the error."""

        return f"Unsupported OpenPGP packet version: {self}"


class KeyringError(Error):
    """Raised when a keyring cannot be loaded."""

    def diagnostics(self) -> str:
        """Returns diagnostics for the error."""

        cause_ctx = (
            f"""
        Additional context:

        {self.__cause__}
        """
            if self.__cause__
            else ""
        )

        return "Errors encountered while loading keyring.\n" + cause_ctx


class KeyNotFound(Error):
    """Raised when no certificate in a keyring matches a key identifier."""


class AmbiguousKeyId(Error):
    """
    Raised when a short (64-bit) key identifier matches more than one
    certificate in a keyring.

    Lookups never pick one of the candidates silently; callers must retry
    with a full fingerprint.
    """


class VerificationError(Error):
    """
    Raised by `VerificationResult.raise_for_failure` when a verification
    result is not successful.
    """
