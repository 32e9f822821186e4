"""
fpmdetect - Scripts Module

Stages the two PHP introspection scripts where PHP-FPM can read them.
"""

import contextlib
import os
import shutil
import tempfile
from typing import Iterator, Optional

VERSION_SCRIPT = 'version.php'
EXTENSIONS_SCRIPT = 'extensions.php'

SCRIPTS = {
    VERSION_SCRIPT: '<?php echo PHP_VERSION;\n',
    EXTENSIONS_SCRIPT: '<?php echo json_encode(get_loaded_extensions());\n',
}


def prepare_scripts(folder: str) -> None:
    """Write the introspection scripts into folder

    Files are world readable since FPM workers usually run as another user.
    """
    os.makedirs(folder, exist_ok=True)
    for name, content in SCRIPTS.items():
        path = os.path.join(folder, name)
        with open(path, 'w') as f:
            f.write(content)
        os.chmod(path, 0o644)


def clean_scripts(folder: str) -> None:
    """Remove the introspection scripts from folder"""
    for name in SCRIPTS:
        try:
            os.remove(os.path.join(folder, name))
        except FileNotFoundError:
            pass


@contextlib.contextmanager
def staged_scripts(folder: Optional[str] = None) -> Iterator[str]:
    """Stage the scripts for the duration of a with block

    Args:
        folder: Target folder; a temporary one is created (and removed) if None

    Yields:
        Absolute path of the folder holding the scripts
    """
    created = folder is None
    if created:
        folder = tempfile.mkdtemp(prefix='fpmdetect-')
        # FPM workers need to traverse the folder
        os.chmod(folder, 0o755)
    folder = os.path.abspath(folder)

    try:
        prepare_scripts(folder)
        yield folder
    finally:
        clean_scripts(folder)
        if created:
            shutil.rmtree(folder, ignore_errors=True)
