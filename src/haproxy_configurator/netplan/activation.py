"""Make the netplan document take effect on the host."""

from __future__ import annotations

import logging
import subprocess

from haproxy_configurator.netplan.errors import ActivationError

logger = logging.getLogger(__name__)


class NetplanActivator:
    """Runs ``netplan generate`` followed by ``netplan apply``.

    Args:
        command: Netplan executable (default ``"netplan"``).
        timeout_s: Per-command timeout in seconds; ``None`` waits indefinitely.
    """

    def __init__(self, command: str = "netplan", timeout_s: float | None = None) -> None:
        self.command: str = command
        self.timeout_s: float | None = timeout_s

    def generate(self) -> str:
        """Render backend configuration without applying it.

        Returns:
            Combined stdout/stderr of the command.

        Raises:
            ActivationError: On a non-zero exit, missing binary or timeout.
        """
        return self._run("generate")

    def apply(self) -> str:
        """Generate and apply the configuration.

        Raises:
            ActivationError: If either step fails.
        """
        self.generate()
        output = self._run("apply")
        logger.info("Applied netplan configuration")
        return output

    def _run(self, subcommand: str) -> str:
        argv = [self.command, subcommand]
        logger.debug("Running %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as exc:
            raise ActivationError(argv, None, str(exc), reason="command not found") from exc
        except subprocess.TimeoutExpired as exc:
            output = _text(exc.stdout) + _text(exc.stderr)
            raise ActivationError(
                argv, None, output, reason=f"timed out after {self.timeout_s}s"
            ) from exc

        output = (proc.stdout or "") + (proc.stderr or "")
        if proc.returncode != 0:
            logger.error(
                "%s failed with exit status %d: %s", " ".join(argv), proc.returncode, output.strip()
            )
            raise ActivationError(argv, proc.returncode, output)
        return output


class NullActivator:
    """Activator that only records calls, for hosts without netplan and for tests."""

    def __init__(self) -> None:
        self.calls: int = 0

    def apply(self) -> str:
        self.calls += 1
        logger.debug("Skipping netplan apply (null activator)")
        return ""


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value
