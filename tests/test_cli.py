"""
Tests for the fpm_detect command line.
"""

from __future__ import annotations

import json
import os

import pytest

import fpm_detect
from fpmdetect import config, process, prober
from fpmdetect.errors import NotFoundError


@pytest.fixture(autouse=True)
def no_settings_file(monkeypatch, short_dir: str):
    monkeypatch.setattr(config, "CONFIG_FILE", os.path.join(short_dir, "absent.conf"))


def _run(argv):
    return fpm_detect.run(fpm_detect.build_parser().parse_args(argv))


def test_explicit_listen_with_php(fake_fpm, capsys) -> None:
    code = _run(["--listen", "unix://" + fake_fpm.path])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["listen_address"] == fake_fpm.path
    assert report["listen_network"] == "unix"
    assert report["php_version"] == "8.2.7"
    assert "Core" in report["php_extensions"]


def test_detection_without_php(monkeypatch, fake_fpm, capsys) -> None:
    monkeypatch.setattr(prober, "CANDIDATE_ADDRESSES", [("unix", fake_fpm.path)])

    code = _run(["--no-php"])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["listen_address"] == fake_fpm.path
    assert report["php_version"] is None
    assert fake_fpm.requests == []


def test_nothing_found(monkeypatch, missing_socket: str, capsys) -> None:
    monkeypatch.setattr(prober, "CANDIDATE_ADDRESSES", [("unix", missing_socket)])

    def locate(marker=process.FPM_MARKER):
        raise NotFoundError("not found")

    monkeypatch.setattr(process, "locate_fpm_process", locate)

    code = _run([])

    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert "cannot find any suitable configuration" in captured.err


def test_unreachable_listen(missing_socket: str, capsys) -> None:
    assert _run(["--listen", missing_socket]) == 1
    assert "Cannot connect" in capsys.readouterr().err


def test_invalid_listen(capsys) -> None:
    assert _run(["--listen", "http://localhost"]) == 2


def test_missing_config_file(short_dir: str, capsys) -> None:
    assert _run(["--config", os.path.join(short_dir, "nope.conf")]) == 2
    assert "not found" in capsys.readouterr().err


def test_unix_path_with_colon(capsys) -> None:
    assert _run(["--listen", "unix:///tmp/a:b.sock", "--no-php"]) == 2
    assert "cannot contain" in capsys.readouterr().err


def test_unix_path_with_colon_in_settings(short_dir: str, capsys) -> None:
    path = os.path.join(short_dir, "fpmdetect.conf")
    with open(path, "w") as f:
        f.write("listen=unix:///tmp/a:b.sock\n")

    assert _run(["--config", path, "--no-php"]) == 2


@pytest.mark.parametrize("option,value", [("--probe-timeout", "-5"), ("--probe-timeout", "0"),
                                          ("--dump-timeout", "-1"), ("--probe-timeout", "fast")])
def test_non_positive_timeouts_rejected(option: str, value: str, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        fpm_detect.build_parser().parse_args([option, value])

    assert excinfo.value.code == 2


def test_debug_shows_failure_cause(monkeypatch, missing_socket: str, capsys) -> None:
    monkeypatch.setattr(prober, "CANDIDATE_ADDRESSES", [("unix", missing_socket)])

    def locate(marker=process.FPM_MARKER):
        raise NotFoundError("no process named like *-fpm")

    monkeypatch.setattr(process, "locate_fpm_process", locate)

    assert _run(["--debug"]) == 1
    err = capsys.readouterr().err
    assert "cannot find any suitable configuration" in err
    assert "caused by NotFoundError: no process named like *-fpm" in err
