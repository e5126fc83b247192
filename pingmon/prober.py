import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from pingmon.config import PROBE_GRACE_S
from pingmon.errors import ProbeInvocationError
from pingmon.parser import PlatformFamily, parse_ping_output

log = logging.getLogger(__name__)


@dataclass
class RawProbeResult:
    stdout: str
    stderr: str
    success: bool
    returncode: Optional[int] = None
    # parsed from the reply; None on failure or when the output carries no figure
    latency_ms: Optional[float] = None

    @property
    def error_detail(self) -> Optional[str]:
        if self.success:
            return None
        detail = self.stderr.strip()
        if not detail:
            lines = [line.strip() for line in self.stdout.splitlines() if line.strip()]
            detail = lines[-1] if lines else ""
        return detail or f"ping exited with status {self.returncode}"


class Prober:
    """
    Runs one echo request against a host using the system `ping` tool.

    Unreachable hosts, lost packets and timeouts are ordinary results with
    success=False. Only a failure to run the tool at all raises
    ProbeInvocationError.
    """

    def __init__(
        self,
        executable: str = "ping",
        platform: Optional[PlatformFamily] = None,
        grace_s: float = PROBE_GRACE_S,
    ):
        self.executable = executable
        self.platform = platform or PlatformFamily.current()
        self.grace_s = grace_s

    def build_command(self, host: str, timeout_ms: int, packet_size_bytes: int) -> List[str]:
        if not host or host.startswith("-"):
            raise ProbeInvocationError(f"Refusing to ping malformed host {host!r}")
        if timeout_ms <= 0 or packet_size_bytes <= 0:
            raise ProbeInvocationError("Timeout and packet size must be positive")

        if self.platform == PlatformFamily.WINDOWS:
            return [self.executable, "-n", "1", "-w", str(timeout_ms), "-l", str(packet_size_bytes), host]
        # iputils accepts fractional seconds for -W
        wait_s = f"{timeout_ms / 1000:g}"
        return [self.executable, "-c", "1", "-W", wait_s, "-s", str(packet_size_bytes), host]

    async def probe(self, host: str, timeout_ms: int, packet_size_bytes: int) -> RawProbeResult:
        cmd = self.build_command(host, timeout_ms, packet_size_bytes)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeInvocationError(f"Could not run {self.executable}: {e}") from e

        loop = asyncio.get_running_loop()
        started = loop.time()
        timed_out = False
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout_ms / 1000 + self.grace_s
            )
        except asyncio.TimeoutError:
            timed_out = True
        finally:
            # also reached on cancellation
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
        elapsed_ms = (loop.time() - started) * 1000

        if timed_out:
            log.debug("Ping to %s exceeded %sms, killed", host, timeout_ms)
            return RawProbeResult(stdout="", stderr="timed out", success=False, returncode=proc.returncode)

        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")
        success = proc.returncode == 0
        # Windows ping exits 0 on "Destination host unreachable"
        if success and self.platform == PlatformFamily.WINDOWS and "TTL=" not in out.upper():
            success = False

        latency = parse_ping_output(out, self.platform) if success else None
        # a reply later than the requested timeout is a failure
        late = elapsed_ms > timeout_ms if latency is None else latency > timeout_ms
        if success and late:
            log.debug("Reply from %s arrived after %sms, counted as lost", host, timeout_ms)
            return RawProbeResult(
                stdout=out,
                stderr=f"no reply within {timeout_ms}ms",
                success=False,
                returncode=proc.returncode,
            )
        return RawProbeResult(stdout=out, stderr=err, success=success, returncode=proc.returncode, latency_ms=latency)
