"""
fpmdetect - Process Locator Module

Finds the running PHP-FPM master process with psutil.
"""

import re
from typing import List

import psutil

from .errors import NotFoundError

# Executable names of the FPM family: php-fpm, php7.4-fpm, php-fpm8.2, ...
FPM_MARKER = '-fpm'

# Process title set by the php-fpm master
MASTER_TITLE = re.compile(r'^\S+: master process \((.+)\)$')


class ProcessHandle:
    """A located process, only exposing what the config dump needs"""

    def __init__(self, process: psutil.Process):
        self._process = process
        self.pid = process.pid
        self.name = process.name()

    def cmdline(self) -> List[str]:
        """Command line to run the process binary again

        A php-fpm master renames itself to "php-fpm: master process (<conf>)",
        so in that case the command is rebuilt from the executable path and
        the config file named in the title.

        Raises:
            NotFoundError: If the process vanished or cannot be inspected
        """
        try:
            args = self._process.cmdline()
            match = MASTER_TITLE.match(' '.join(args).strip())
            if match:
                exe = self._process.exe()
                if not exe:
                    raise NotFoundError(f"Cannot resolve executable of pid {self.pid}")
                args = [exe, '--fpm-config', match.group(1)]
        except psutil.Error as e:
            raise NotFoundError(f"Cannot read command line of pid {self.pid}: {e}") from e
        return args

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, name={self.name!r})"


def locate_fpm_process(marker: str = FPM_MARKER) -> ProcessHandle:
    """Find the first running process whose name contains the marker

    Processes are taken in PID order, so the master (started before its
    workers) is normally the one returned.

    Args:
        marker: Substring identifying FPM executables

    Returns:
        ProcessHandle for the matched process

    Raises:
        NotFoundError: If no process matches or its metadata cannot be read
    """
    snapshot = sorted(psutil.process_iter(['pid', 'name']), key=lambda p: p.info['pid'])

    for proc in snapshot:
        name = proc.info.get('name') or ''
        if marker in name:
            try:
                return ProcessHandle(psutil.Process(proc.info['pid']))
            except psutil.Error as e:
                raise NotFoundError(f"Cannot inspect process {proc.info['pid']} ({name}): {e}") from e

    raise NotFoundError("not found")
