"""
Tests for introspection script staging in fpmdetect.scripts.
"""

from __future__ import annotations

import os
import stat

from fpmdetect.scripts import (EXTENSIONS_SCRIPT, VERSION_SCRIPT, clean_scripts,
                               prepare_scripts, staged_scripts)


def test_prepare_and_clean(short_dir: str) -> None:
    folder = os.path.join(short_dir, "scripts")

    prepare_scripts(folder)

    with open(os.path.join(folder, VERSION_SCRIPT)) as f:
        assert "PHP_VERSION" in f.read()
    with open(os.path.join(folder, EXTENSIONS_SCRIPT)) as f:
        assert "get_loaded_extensions" in f.read()
    mode = os.stat(os.path.join(folder, VERSION_SCRIPT)).st_mode
    assert mode & stat.S_IROTH

    clean_scripts(folder)

    assert os.listdir(folder) == []


def test_clean_missing_files(short_dir: str) -> None:
    clean_scripts(short_dir)


def test_staged_in_given_folder(short_dir: str) -> None:
    with staged_scripts(short_dir) as folder:
        assert folder == os.path.abspath(short_dir)
        assert sorted(os.listdir(folder)) == sorted([VERSION_SCRIPT, EXTENSIONS_SCRIPT])

    assert os.path.isdir(short_dir)
    assert os.listdir(short_dir) == []


def test_staged_in_temporary_folder() -> None:
    with staged_scripts() as folder:
        assert os.path.isfile(os.path.join(folder, VERSION_SCRIPT))

    assert not os.path.exists(folder)


def test_cleanup_on_error(short_dir: str) -> None:
    try:
        with staged_scripts(short_dir):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert os.listdir(short_dir) == []
