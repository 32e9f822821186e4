"""
fpmdetect - Config Extractor Module

Runs the located php-fpm binary again with -tt (dump config and test) and
parses the NOTICE lines it prints.

Output format:
[03-May-2024 10:00:00] NOTICE: [www]
[03-May-2024 10:00:00] NOTICE: 	listen = /run/php/php8.2-fpm.sock
[03-May-2024 10:00:00] NOTICE: 	listen.owner = www-data
[03-May-2024 10:00:00] NOTICE: 	user = undefined
"""

import re
import subprocess
from typing import Dict, Optional

from .errors import ExtractionError
from .models import DetectedConfig

DUMP_FLAG = '-tt'

UNDEFINED = 'undefined'

# Strip the "[timestamp] NOTICE: " prefix of each line
NOTICE_PREFIX = re.compile(r'\[.*\] NOTICE:[ \t]*(.*)')

SEPARATOR = ' = '


def parse_dump_output(output: str) -> Dict[str, str]:
    """Parse the directives of a php-fpm -tt dump

    Args:
        output: Combined stdout/stderr of the dump

    Returns:
        Dict of directive name -> trimmed value; 'undefined' values are skipped
    """
    directives = {}

    for line in output.splitlines():
        line = NOTICE_PREFIX.sub(r'\1', line)
        if SEPARATOR not in line:
            continue
        key, value = line.split(SEPARATOR, 1)
        key = key.strip()
        value = value.strip()
        if value != UNDEFINED:
            directives[key] = value

    return directives


def apply_directives(directives: Dict[str, str], config: DetectedConfig) -> DetectedConfig:
    """Copy the directives of interest into the config

    Args:
        directives: Parsed dump
        config: Config to fill

    Returns:
        The same config object
    """
    if directives.get('listen'):
        config.set_listen(directives['listen'])
    if 'user' in directives:
        config.php_user = directives['user']
    if 'group' in directives:
        config.php_group = directives['group']
    if 'listen.owner' in directives:
        config.listen_owner = directives['listen.owner']
    if 'listen.group' in directives:
        config.listen_group = directives['listen.group']
    return config


def run_dump(args, timeout: Optional[float] = None) -> str:
    """Run a command line with the dump flag appended

    Args:
        args: Original command line of the process
        timeout: Seconds to wait for the command, None to wait forever

    Returns:
        Combined stdout/stderr output

    Raises:
        ExtractionError: If the command cannot run, times out or fails
    """
    if not args:
        raise ExtractionError("Empty command line, cannot run config dump")

    command = list(args) + [DUMP_FLAG]
    try:
        result = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ExtractionError(f"Config dump timed out after {timeout}s: {' '.join(command)}") from e
    except OSError as e:
        raise ExtractionError(f"Cannot run {command[0]}: {e}") from e

    output = result.stdout.decode('utf-8', errors='replace')
    if result.returncode != 0:
        raise ExtractionError(
            f"Config dump exited with status {result.returncode}: {output.strip()[-200:]}"
        )
    return output


def extract(handle, config: DetectedConfig, timeout: Optional[float] = None) -> Dict[str, str]:
    """Dump the config of a running php-fpm and feed the detected config

    Args:
        handle: ProcessHandle of the php-fpm process
        config: Config to fill
        timeout: Deadline for the dump command in seconds

    Returns:
        All parsed directives, including the ones not mapped into config

    Raises:
        ExtractionError: If the dump command fails
        NotFoundError: If the process command line cannot be read
    """
    output = run_dump(handle.cmdline(), timeout)
    directives = parse_dump_output(output)
    apply_directives(directives, config)
    return directives
