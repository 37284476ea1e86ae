"""ffmpeg-based transcoder producing Opus voice notes.

One fixed output profile: the audio stream is encoded with libopus,
everything else is left to ffmpeg defaults.
"""

import asyncio
import logging
import subprocess
from pathlib import Path

from voicenote.lib.exceptions import DependencyUnavailableError, ProcessError
from voicenote.models.job import ProcessDiagnostics

logger = logging.getLogger(__name__)

VOICE_CODEC = "libopus"
PROBE_TIMEOUT_SECONDS = 10


def build_command(ffmpeg_bin: str, input_path: Path, output_path: Path) -> list[str]:
    """Argument list for one conversion: no stdin, overwrite output."""
    return [
        ffmpeg_bin,
        "-nostdin",
        "-y",
        "-i", str(input_path),
        "-c:a", VOICE_CODEC,
        str(output_path),
    ]


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class Transcoder:
    """
    Runs ffmpeg as a child process.

    Output streams are captured in memory and only logged in debug mode.
    A timeout or task cancellation kills the child before returning.
    """

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        timeout_seconds: float = 0,
        debug: bool = False,
    ):
        """
        Initialize the transcoder.

        Args:
            ffmpeg_bin: ffmpeg executable name or path
            timeout_seconds: Kill ffmpeg after this many seconds (0 = no limit)
            debug: Log captured stdout/stderr after each run
        """
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout_seconds = timeout_seconds
        self.debug = debug

    def check_available(self) -> str:
        """
        Verify ffmpeg can be invoked by running `ffmpeg -version`.

        Returns:
            First line of the version output

        Raises:
            DependencyUnavailableError: If ffmpeg is missing or exits non-zero
        """
        try:
            result = subprocess.run(
                [self.ffmpeg_bin, "-version"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT_SECONDS,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise DependencyUnavailableError(
                f"{self.ffmpeg_bin} is not available on this system. "
                f"Please install ffmpeg to use this bot. ({e})",
                dependency=self.ffmpeg_bin,
            ) from e

        first_line = result.stdout.splitlines()[0] if result.stdout else self.ffmpeg_bin
        return first_line

    async def convert(self, input_path: Path, output_path: Path) -> ProcessDiagnostics:
        """
        Convert input_path to an Opus file at output_path.

        Returns:
            ProcessDiagnostics of the successful run

        Raises:
            ProcessError: On spawn failure, non-zero exit or timeout
        """
        cmd = build_command(self.ffmpeg_bin, input_path, output_path)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessError(
                f"Failed to start {self.ffmpeg_bin}: {e}",
                diagnostics=ProcessDiagnostics(returncode=None, stderr=str(e)),
            ) from e

        timeout = self.timeout_seconds or None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            diagnostics = ProcessDiagnostics(returncode=proc.returncode, timed_out=True)
            raise ProcessError(
                f"{self.ffmpeg_bin} timed out after {self.timeout_seconds}s",
                diagnostics=diagnostics,
            )
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        diagnostics = ProcessDiagnostics(
            returncode=proc.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

        if self.debug:
            logger.debug(f"ffmpeg stdout: {diagnostics.stdout}")
            logger.debug(f"ffmpeg stderr: {diagnostics.stderr}")

        if proc.returncode != 0:
            raise ProcessError(
                f"{self.ffmpeg_bin} exited with status {proc.returncode}",
                diagnostics=diagnostics,
            )

        return diagnostics

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """Kill and reap a running child."""
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        logger.warning(f"Killed {self.ffmpeg_bin} (pid {proc.pid})")
