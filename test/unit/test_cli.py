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

import io

import pytest

from pgpverify import __version__
from pgpverify._cli import main
from pgpverify.errors import KeyringError


@pytest.fixture
def run(asset, capsys):
    """
    Runs the CLI with `stdin_asset` on standard input, returning its exit
    code and standard output.
    """

    def _run(stdin_asset, *args):
        stdin = io.BytesIO(asset(stdin_asset).read_bytes())
        try:
            main(list(args), stdin=stdin)
            code = 0
        except SystemExit as exc:
            code = exc.code
        return code, capsys.readouterr().out

    return _run


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])

    assert exc_info.value.code == 0
    assert capsys.readouterr().out.strip() == f"pgpverify {__version__}"


@pytest.mark.parametrize("args", [[], ["a.gpg", "b.gpg"]])
def test_usage(capsys, args):
    main(args, stdin=io.BytesIO(b""))

    assert "usage: pgpverify" in capsys.readouterr().out


def test_armored(run, asset):
    code, out = run("message.txt.asc", "-a", "-k", str(asset("keyring.asc")))

    assert code == 0
    assert out == "Success\n"


def test_binary(run, asset):
    code, out = run("message.txt.gpg", str(asset("keyring.gpg")))

    assert code == 0
    assert out == "Success\n"


def test_armored_from_env(run, asset, monkeypatch):
    monkeypatch.setenv("PGPVERIFY_ARMORED", "true")
    monkeypatch.setenv("PGPVERIFY_KEYS_ARMORED", "1")

    code, out = run("message.txt.clearsigned", str(asset("keyring.asc")))

    assert code == 0
    assert out == "Success\n"


def test_bad_boolean_env(run, asset, monkeypatch):
    monkeypatch.setenv("PGPVERIFY_ARMORED", "maybe")

    with pytest.raises(ValueError, match="can't coerce 'maybe' to a boolean"):
        run("message.txt.gpg", str(asset("keyring.gpg")))


def test_detached(run, asset):
    code, out = run(
        "message.txt.carol.sig", "-d", str(asset("message.txt")), str(asset("keyring.gpg"))
    )

    assert code == 0
    assert out == "Success\n"


def test_detached_mismatch(run, asset):
    code, out = run(
        "message.txt.carol.sig",
        "--detached",
        str(asset("message-other.txt")),
        str(asset("keyring.gpg")),
    )

    assert code == 1
    assert out == "Failed!\n"


def test_detached_not_a_file(run, asset, tmp_path):
    code, out = run(
        "message.txt.carol.sig", "-d", str(tmp_path), str(asset("keyring.gpg"))
    )

    assert code == 1
    assert out == ""


def test_unknown_signer(run, asset):
    keyring = str(asset("keyring.asc"))

    assert run("message-unknown-signer.txt.asc", "-a", "-k", keyring) == (1, "Failed!\n")
    assert run("message-unknown-signer.txt.asc", "-a", "-k", "--any", keyring) == (
        0,
        "Success\n",
    )


def test_revoked(run, asset):
    code, out = run(
        "message.txt.frank.sig", "-d", str(asset("message.txt")), str(asset("keyring.gpg"))
    )

    assert code == 1
    assert out == "Failed!\n"


def test_malformed_message(run, asset):
    # A keyring is not a signed message.
    code, out = run("keyring.gpg", str(asset("keyring.gpg")))

    assert code == 1
    assert out == "Failed!\n"


def test_keyring_armor_mismatch(run, asset):
    code, out = run("message.txt.gpg", "-k", str(asset("keyring.gpg")))

    assert code == 1
    assert out == "Errors encountered while loading keyring.\n"


def test_missing_keyring(run, tmp_path):
    code, out = run("message.txt.gpg", str(tmp_path / "missing.gpg"))

    assert code == 1
    assert out == "Errors encountered while loading keyring.\n"


def test_verbose_reraises(run, asset):
    with pytest.raises(KeyringError):
        run("message.txt.gpg", "-v", "-k", str(asset("keyring.gpg")))
