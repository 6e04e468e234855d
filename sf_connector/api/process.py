"""
Salesforce CLI Process Runner

Runs ``sf`` commands with JSON output and keeps track of the processes in
flight so they can be terminated when a connection is aborted.
"""

import itertools
import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Union

from sf_connector.exceptions import ProcessError

logger = logging.getLogger(__name__)


@dataclass
class ProcessResponse:
    """Structured response of one sf CLI command."""
    status: int
    result: Any = None
    message: str = ""
    name: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0


def parse_response(stdout: str, stderr: str, returncode: int) -> ProcessResponse:
    """
    Parse sf CLI ``--json`` output.

    Non-JSON output is wrapped as-is, using the process return code as status.
    """
    try:
        data = json.loads(stdout) if stdout and stdout.strip() else None
    except json.JSONDecodeError:
        data = None

    if not isinstance(data, dict):
        return ProcessResponse(
            status=returncode,
            result=stdout,
            message=(stderr or "").strip(),
            name="ProcessError" if returncode else "",
        )

    return ProcessResponse(
        status=int(data.get('status', returncode) or 0),
        result=data.get('result'),
        message=data.get('message') or "",
        name=data.get('name') or "",
    )


class ProcessRunner:
    """
    Executes sf CLI commands.

    Every running process is registered under an integer handle until it
    exits; ``kill_all`` terminates whatever is still registered.
    """

    def __init__(self, executable: str = "sf", timeout: Optional[float] = None) -> None:
        """
        Args:
            executable: CLI executable name or path
            timeout: Seconds before a command is killed (None waits forever)
        """
        self.executable = executable
        self.timeout = timeout
        self._lock = RLock()
        self._processes: Dict[int, subprocess.Popen] = {}
        self._handles = itertools.count(1)

    @property
    def running(self) -> List[int]:
        with self._lock:
            return list(self._processes)

    def build_command(self, args: List[str]) -> List[str]:
        cmd = [self.executable] + [str(a) for a in args]
        if '--json' not in cmd:
            cmd.append('--json')
        return cmd

    def run(
        self,
        args: List[str],
        cwd: Optional[Union[str, Path]] = None,
        check: bool = True,
    ) -> ProcessResponse:
        """
        Run one command and wait for it.

        Args:
            args: Arguments after the executable (e.g. ["org", "display"])
            cwd: Working directory (project folder for project commands)
            check: Raise ProcessError on non-zero status

        Returns:
            Parsed ProcessResponse

        Raises:
            ProcessError: If the CLI is missing, times out, or fails with check=True
        """
        cmd = self.build_command(args)
        logger.debug(f"Executing: {' '.join(cmd[:4])}{' ...' if len(cmd) > 4 else ''}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=str(cwd) if cwd else None,
            )
        except FileNotFoundError as e:
            raise ProcessError(
                "Salesforce CLI (sf) not found.\n"
                "Please install it: npm install -g @salesforce/cli\n"
                "Verify installation: sf --version",
                name="CommandNotFound",
            ) from e

        handle = self._register(process)
        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.communicate()
            raise ProcessError(
                f"Command timed out after {self.timeout} seconds: {' '.join(cmd[:4])}",
                name="Timeout",
            ) from e
        finally:
            self._unregister(handle)

        if process.returncode is not None and process.returncode < 0:
            raise ProcessError(f"Command terminated: {' '.join(cmd[:4])}", name="Killed", status=process.returncode)

        response = parse_response(stdout, stderr, process.returncode)
        if check and not response.ok:
            logger.error(f"sf CLI command failed ({response.name or response.status}): {response.message}")
            raise ProcessError(response.message or "sf CLI command failed", name=response.name, status=response.status)
        return response

    def _register(self, process: subprocess.Popen) -> int:
        with self._lock:
            handle = next(self._handles)
            self._processes[handle] = process
            return handle

    def _unregister(self, handle: int) -> None:
        with self._lock:
            self._processes.pop(handle, None)

    def kill(self, handle: int) -> bool:
        """Terminate one tracked process. Returns False if it is already gone."""
        with self._lock:
            process = self._processes.pop(handle, None)
        if process is None:
            return False
        try:
            process.kill()
        except OSError as e:
            logger.debug(f"Process {handle} already exited: {e}")
            return False
        logger.info(f"Killed sf CLI process {handle}")
        return True

    def kill_all(self) -> int:
        """Terminate every tracked process. Returns how many were killed."""
        return sum(1 for handle in self.running if self.kill(handle))
