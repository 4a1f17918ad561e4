"""
Command Runner

Executes external programs for the managers:
- Captures stdout/stderr and exit status
- Raises ExecutionError on non-zero exit (run)
- Returns the failed result instead for best-effort call sites (try_run)
- Optional timeout, only applied when the caller asks for one
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger('vpnhub.runner')

# Exit status reported when the program itself cannot be started
EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external program invocation"""
    program: str
    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: Optional[int]

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ExecutionError(Exception):
    """External program exited with a non-zero status"""

    def __init__(self, program: str, args: Sequence[str], exit_code: Optional[int], stderr: str):
        self.program = program
        self.args_list = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "no output"
        super().__init__(f"{program} exited with {exit_code}: {detail}")

    @classmethod
    def from_result(cls, result: CommandResult) -> "ExecutionError":
        return cls(result.program, result.args, result.exit_code, result.stderr)


class CommandTimeout(ExecutionError):
    """External program did not finish within the caller's timeout"""

    def __init__(self, program: str, args: Sequence[str], timeout: float):
        self.timeout = timeout
        super().__init__(program, args, None, f"timed out after {timeout}s")


class CommandRunner:
    """
    Runs external programs with asyncio subprocesses
    """

    def __init__(self, use_sudo: bool = False):
        """
        Initialize command runner

        Args:
            use_sudo: Prefix privileged commands with sudo
        """
        self.use_sudo = use_sudo

    async def run(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
        privileged: bool = False,
    ) -> CommandResult:
        """
        Run a program and require success

        Args:
            program: Executable name or path
            args: Arguments, passed without a shell
            input: Text written to the program's stdin
            timeout: Seconds to wait before killing the program
            privileged: Needs root (prefixed with sudo when enabled)

        Returns:
            CommandResult with exit_code 0

        Raises:
            ExecutionError: non-zero exit or program not found
            CommandTimeout: timeout elapsed
        """
        result = await self.try_run(program, args, input=input, timeout=timeout, privileged=privileged)
        if result.exit_code is None:
            raise CommandTimeout(program, args, timeout)
        if not result.ok:
            raise ExecutionError.from_result(result)
        return result

    async def try_run(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
        privileged: bool = False,
    ) -> CommandResult:
        """
        Run a program and return its result whatever the exit status

        exit_code is None when the timeout elapsed and the program was killed.
        """
        argv = [program, *args]
        if privileged and self.use_sudo:
            argv = ["sudo", "-n", *argv]

        logger.debug(f"exec: {' '.join(argv)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if input is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning(f"Command not found: {argv[0]}")
            return CommandResult(program, tuple(args), "", f"{argv[0]}: command not found", EXIT_NOT_FOUND)
        except PermissionError as e:
            return CommandResult(program, tuple(args), "", str(e), EXIT_NOT_EXECUTABLE)

        data = input.encode() if input is not None else None

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(input=data), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Command timed out after {timeout}s: {program}")
            return CommandResult(program, tuple(args), "", f"timed out after {timeout}s", None)

        return CommandResult(
            program=program,
            args=tuple(args),
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            exit_code=proc.returncode,
        )
