"""Base class for external tool execution."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional, Sequence

from packaging import version

from smrnaflow.exceptions import ExternalToolError
from smrnaflow.utils.logging import LogTemplates, get_logger


class ExternalTool:
    """Base class for external tool wrappers.

    Subclasses set ``tool_name`` (the executable looked up on PATH) and add
    methods that build argument lists and call :meth:`run`. Success is exit
    code zero; stdout/stderr are captured and logged.
    """

    tool_name: str = ""
    required_version: Optional[str] = None
    version_command: Optional[str] = "--version"
    version_regex: Optional[str] = r"(\d+\.\d+(?:\.\d+)*)"
    install_hint: Optional[str] = None

    # No timeout by default; aligners can run for hours on large libraries
    DEFAULT_TIMEOUT: Optional[int] = None

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        threads: int = 1,
        executable: Optional[str] = None,
    ):
        self.threads = threads
        self.executable = executable or self.tool_name
        self.logger = logger or get_logger(f"external.{self.tool_name}")
        self._check_installation()

    def check_tool_availability(self, tool_name: str) -> bool:
        """Check if a tool is available in PATH."""
        return shutil.which(tool_name) is not None

    def _get_required_tools(self) -> Sequence[str]:
        return []

    def _check_installation(self) -> None:
        """Check if the tool is installed and meets version requirements."""
        if not self.check_tool_availability(self.executable):
            hint = self.install_hint or f"conda install -c bioconda {self.tool_name}"
            raise ExternalToolError(
                f"{self.executable} not found in PATH. Please install it via: {hint}"
            )

        if self.required_version:
            current_version = self.get_tool_version()
            if current_version and not self.check_minimum_version(
                current_version, self.required_version
            ):
                raise ExternalToolError(
                    f"{self.tool_name} version {current_version} is below "
                    f"required version {self.required_version}"
                )
            self.logger.debug(f"{self.tool_name} version: {current_version}")

        for tool in self._get_required_tools():
            if not self.check_tool_availability(tool):
                raise ExternalToolError(
                    f"Required dependency '{tool}' not found for {self.tool_name}"
                )

    def get_tool_version(self) -> Optional[str]:
        """Return the version string reported by the tool, if any."""
        if not self.version_command:
            return None

        for flag in (self.version_command, "-v", "version"):
            try:
                result = subprocess.run(
                    [self.executable, flag], capture_output=True, text=True, check=False, timeout=10
                )
            except (subprocess.TimeoutExpired, OSError):
                continue
            output = result.stdout + result.stderr
            if self.version_regex:
                match = re.search(self.version_regex, output)
                if match:
                    return match.group(1)
        return None

    def check_minimum_version(self, current_version: str, required_version: str) -> bool:
        """Check if current version meets minimum requirement.

        Unparseable version strings pass with a warning.
        """
        current_match = re.search(r"(\d+\.\d+(?:\.\d+)*)", current_version)
        required_match = re.search(r"(\d+\.\d+(?:\.\d+)*)", required_version)
        if not current_match or not required_match:
            self.logger.warning(
                f"Could not compare {self.tool_name} versions "
                f"'{current_version}' and '{required_version}'; please verify manually"
            )
            return True

        try:
            current_ver = version.parse(current_match.group(1))
            required_ver = version.parse(required_match.group(1))
        except version.InvalidVersion as e:
            self.logger.warning(f"Version comparison failed ({e}); please verify manually")
            return True

        if current_ver < required_ver:
            self.logger.warning(
                f"Version {current_version} is below minimum required {required_version}"
            )
            return False
        return True

    def run(
        self,
        cmd: Sequence[Any],
        cwd: Optional[Path] = None,
        check: bool = True,
        capture_output: bool = True,
        timeout: Optional[int] = None,
        stdout_path: Optional[Path] = None,
        input_text: Optional[str] = None,
    ) -> tuple[str, str]:
        """Execute a command and log its output.

        Args:
            cmd: Command and arguments to execute
            cwd: Working directory for the command
            check: Whether to raise on non-zero exit code
            capture_output: Whether to capture stdout/stderr
            timeout: Timeout in seconds (defaults to DEFAULT_TIMEOUT if None)
            stdout_path: Write stdout to this file instead of capturing it
            input_text: Text passed on stdin

        Returns:
            Tuple of (stdout, stderr) if capture_output is True, else ("", "")
        """
        effective_timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        cmd = [str(c) for c in cmd]
        cmd_str = " ".join(cmd)
        self.logger.info(LogTemplates.TOOL_START.format(command=cmd_str))

        try:
            if stdout_path is not None:
                stdout_path.parent.mkdir(parents=True, exist_ok=True)
                with open(stdout_path, "w") as handle:
                    result = subprocess.run(
                        cmd,
                        cwd=cwd,
                        stdout=handle,
                        stderr=subprocess.PIPE,
                        input=input_text,
                        text=True,
                        check=check,
                        timeout=effective_timeout,
                    )
                stdout = ""
            else:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    capture_output=capture_output,
                    input=input_text,
                    text=True,
                    check=check,
                    timeout=effective_timeout,
                )
                stdout = result.stdout or ""

            stderr = result.stderr or ""
            if stdout:
                self.logger.debug(f"{self.tool_name} stdout: {stdout[:500]}")
            if stderr and not result.returncode:
                self.logger.debug(f"{self.tool_name} stderr: {stderr[:500]}")

            if capture_output or stdout_path is not None:
                return stdout, stderr
            return "", ""

        except subprocess.TimeoutExpired:
            self.logger.error(f"Command timed out after {effective_timeout}s: {cmd_str}")
            raise ExternalToolError(
                f"{self.tool_name} timed out",
                command=cmd,
                returncode=-1,
                stderr=f"Process timed out after {effective_timeout} seconds",
            )
        except subprocess.CalledProcessError as e:
            self.logger.error(
                LogTemplates.TOOL_FAILURE.format(tool=self.tool_name, returncode=e.returncode)
            )
            self.logger.error(f"Command: {cmd_str}")
            self.logger.error(f"Error: {e.stderr[:1000] if e.stderr else 'No error output'}")
            raise ExternalToolError(
                f"{self.tool_name} failed with exit code {e.returncode}",
                command=cmd,
                returncode=e.returncode,
                stderr=e.stderr,
            )
        except OSError as e:
            self.logger.error(f"OS error running command: {cmd_str}")
            self.logger.error(f"Error: {e}")
            raise ExternalToolError(
                f"Failed to execute {self.tool_name}", command=cmd, returncode=-1, stderr=str(e)
            )
