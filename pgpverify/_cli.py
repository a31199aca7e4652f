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

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import BinaryIO, NoReturn, Optional

from rich.console import Console
from rich.logging import RichHandler

from pgpverify import __version__
from pgpverify.errors import Error, KeyringError
from pgpverify.keyring import Keyring
from pgpverify.verify import Verifier
from pgpverify.verify.policy import AggregatePolicy, AllOf, AnyOf

_console = Console(file=sys.stderr)
logging.basicConfig(
    format="%(message)s", datefmt="[%X]", handlers=[RichHandler(console=_console)]
)
_logger = logging.getLogger(__name__)

# NOTE: We configure the top package logger, rather than the root logger,
# to avoid overly verbose logging in third-party code by default.
_package_logger = logging.getLogger("pgpverify")
_package_logger.setLevel(os.environ.get("PGPVERIFY_LOGLEVEL", "INFO").upper())


def _fatal(message: str) -> NoReturn:
    """
    Logs a fatal condition and exits.
    """
    _logger.fatal(message)
    sys.exit(1)


def _boolify_env(envvar: str) -> bool:
    """
    An `argparse` helper for turning an environment variable into a boolean.

    The semantics here closely mirror `distutils.util.strtobool`.

    See: <https://docs.python.org/3/distutils/apiref.html#distutils.util.strtobool>
    """
    val = os.getenv(envvar)
    if val is None:
        return False

    val = val.lower()
    if val in {"y", "yes", "true", "t", "on", "1"}:
        return True
    elif val in {"n", "no", "false", "f", "off", "0"}:
        return False
    else:
        raise ValueError(f"can't coerce '{val}' to a boolean")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgpverify",
        description=(
            "verify the OpenPGP signatures on standard input against a keyring"
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="run with additional debug logging; supply multiple times to increase verbosity",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"pgpverify {__version__}"
    )
    parser.add_argument(
        "-k",
        "--keys-armored",
        action="store_true",
        default=_boolify_env("PGPVERIFY_KEYS_ARMORED"),
        help="The keyring is ASCII armored",
    )
    parser.add_argument(
        "-a",
        "--armored",
        action="store_true",
        default=_boolify_env("PGPVERIFY_ARMORED"),
        help="The input on standard input is ASCII armored",
    )
    parser.add_argument(
        "-d",
        "--detached",
        metavar="FILE",
        type=Path,
        default=None,
        help="Treat the input as detached signatures over FILE",
    )
    parser.add_argument(
        "--any",
        action="store_true",
        help="Succeed if any signature is valid, rather than requiring all of them",
    )
    parser.add_argument(
        "keyring",
        metavar="PUBKEY",
        nargs="*",
        help="The keyring holding the trusted public keys",
    )

    return parser


def main(args: list[str] | None = None, stdin: Optional[BinaryIO] = None) -> None:
    if args is None:
        args = sys.argv[1:]

    parser = _parser()
    namespace = parser.parse_args(args)

    # Configure logging upfront, so that we don't miss anything.
    if namespace.verbose >= 1:
        _package_logger.setLevel("DEBUG")
    if namespace.verbose >= 2:
        logging.getLogger().setLevel("DEBUG")

    _logger.debug(f"parsed arguments {namespace}")

    if len(namespace.keyring) != 1:
        parser.print_help(sys.stdout)
        return

    try:
        _verify(namespace, stdin or sys.stdin.buffer)
    except Error as e:
        e.log_and_exit(_logger, namespace.verbose >= 1)


def _load_keyring(path: Path, armored: bool) -> Keyring:
    try:
        keyring = Keyring.from_bytes(path.read_bytes(), armored=armored)
    except (OSError, Error) as exc:
        print("Errors encountered while loading keyring.")
        raise KeyringError(f"{path}: {exc}") from exc

    for warning in keyring.warnings:
        _logger.debug(f"keyring: {warning}")
    return keyring


def _verify(args: argparse.Namespace, stdin: BinaryIO) -> None:
    keyring = _load_keyring(Path(args.keyring[0]), args.keys_armored)

    detached_data = None
    if args.detached is not None:
        if not args.detached.is_file():
            _fatal(f"Input must be a file: {args.detached}")
        detached_data = args.detached.read_bytes()

    policy: AggregatePolicy = AnyOf() if args.any else AllOf()
    data = stdin.read()

    try:
        result = Verifier(policy=policy).verify_stream(
            data, args.armored, keyring, detached_data
        )
    except Error:
        print("Failed!")
        raise

    for signature in result.signatures:
        _logger.debug(f"signature: {signature}")

    if result:
        print("Success")
    else:
        print("Failed!")
        _logger.debug(f"verification failed: {result.reason}")
        sys.exit(1)
