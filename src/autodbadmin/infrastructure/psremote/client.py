"""
PSRemote Client - pywinrm Wrapper.

Tries transport and authentication combinations until one works and
remembers the winner per host+user.

Transport Priority:
1. HTTPS (5986) with certificate validation
2. HTTPS (5986) without certificate validation
3. HTTP (5985)

Auth Priority:
1. Negotiate (auto-selects Kerberos or NTLM)
2. Kerberos
3. NTLM
4. Basic (only over HTTPS)

Localhost targets skip WinRM and run powershell.exe directly.
"""

from __future__ import annotations

import logging
import os
import socket
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum

import winrm  # pywinrm

from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import LOCALHOST_NAMES, TargetReference

logger = logging.getLogger(__name__)


class Transport(Enum):
    """WinRM transport protocols."""

    HTTPS = "https"
    HTTP = "http"


class AuthMethod(Enum):
    """WinRM authentication methods."""

    NEGOTIATE = "negotiate"
    KERBEROS = "kerberos"
    NTLM = "ntlm"
    BASIC = "basic"


@dataclass
class ConnectionConfig:
    """Configuration for a PSRemote connection."""

    hostname: str
    username: str | None = None
    password: str | None = None
    port_http: int = 5985
    port_https: int = 5986
    timeout_seconds: int = 30
    operation_timeout_sec: int = 120
    max_retries_per_combo: int = 1
    verify_ssl: bool = True

    @classmethod
    def for_target(cls, target: TargetReference, settings: AdminSettings) -> ConnectionConfig:
        """Build a connection config from a target and runtime settings."""
        credential = target.credential
        return cls(
            hostname=target.computer_name,
            username=credential.username if credential else None,
            password=credential.password if credential else None,
            port_http=settings.winrm.port_http,
            port_https=settings.winrm.port_https,
            timeout_seconds=settings.timeouts.connection_timeout,
            operation_timeout_sec=settings.timeouts.powershell_command_timeout,
            max_retries_per_combo=settings.winrm.max_retries_per_combo,
            verify_ssl=settings.winrm.verify_ssl,
        )


@dataclass
class PSRemoteResult:
    """Result from a PSRemote operation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    return_code: int = -1
    transport_used: str = ""
    auth_used: str = ""
    error: str = ""


class PSRemoteClient:
    """
    PSRemote client using pywinrm.

    Tries every transport+auth combination until one works.
    Caches the successful combination for later calls.
    """

    # Class-level cache of successful connections
    _connection_cache: dict[str, tuple[Transport, AuthMethod, bool]] = {}

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self._session: winrm.Session | None = None
        self._working_transport: Transport | None = None
        self._working_auth: AuthMethod | None = None
        self._is_localhost: bool = self._detect_localhost()

    @property
    def is_localhost(self) -> bool:
        return self._is_localhost

    def _detect_localhost(self) -> bool:
        """Matches localhost, 127.0.0.1, ::1, '.', '(local)' and the local machine name."""
        hostname = self.config.hostname.lower().strip()

        if hostname in LOCALHOST_NAMES:
            logger.debug("Localhost detected: %s - using local PowerShell", hostname)
            return True

        local_name = socket.gethostname().lower()
        if hostname in (local_name, local_name.split(".")[0]):
            logger.debug("Local machine name detected: %s - using local PowerShell", hostname)
            return True

        return False

    def _combinations(self) -> list[tuple[Transport, AuthMethod, bool]]:
        combos = []
        if self.config.verify_ssl:
            for auth in (AuthMethod.NEGOTIATE, AuthMethod.KERBEROS, AuthMethod.NTLM):
                combos.append((Transport.HTTPS, auth, True))
        for auth in (AuthMethod.NEGOTIATE, AuthMethod.KERBEROS, AuthMethod.NTLM, AuthMethod.BASIC):
            combos.append((Transport.HTTPS, auth, False))
        # Never basic over HTTP
        for auth in (AuthMethod.NEGOTIATE, AuthMethod.KERBEROS, AuthMethod.NTLM):
            combos.append((Transport.HTTP, auth, False))
        return combos

    def connect(self) -> bool:
        """
        Establish a connection trying all combinations.

        For localhost, returns True immediately.
        """
        if self._is_localhost:
            return True

        cache_key = f"{self.config.hostname}:{self.config.username}"

        if cache_key in self._connection_cache:
            transport, auth, verify_ssl = self._connection_cache[cache_key]
            logger.debug("Using cached connection: %s + %s", transport.value, auth.value)
            if self._try_connect(transport, auth, verify_ssl):
                return True
            del self._connection_cache[cache_key]

        for transport, auth, verify_ssl in self._combinations():
            if self._try_connect(transport, auth, verify_ssl):
                self._connection_cache[cache_key] = (transport, auth, verify_ssl)
                if transport == Transport.HTTP:
                    logger.warning("Connected to %s over HTTP", self.config.hostname)
                elif not verify_ssl:
                    logger.warning(
                        "Connected to %s with SSL verification disabled", self.config.hostname
                    )
                return True

        logger.error("All connection attempts failed for %s", self.config.hostname)
        return False

    def _try_connect(self, transport: Transport, auth: AuthMethod, verify_ssl: bool) -> bool:
        """Try a single transport+auth combination."""
        port = (
            self.config.port_https
            if transport == Transport.HTTPS
            else self.config.port_http
        )
        endpoint = f"{transport.value}://{self.config.hostname}:{port}/wsman"

        logger.debug("Trying: %s with %s (SSL verify: %s)", endpoint, auth.value, verify_ssl)

        for attempt in range(self.config.max_retries_per_combo):
            try:
                session = winrm.Session(
                    target=endpoint,
                    auth=(self.config.username, self.config.password),
                    transport=auth.value,
                    server_cert_validation="validate" if verify_ssl else "ignore",
                    operation_timeout_sec=self.config.operation_timeout_sec,
                    read_timeout_sec=self.config.operation_timeout_sec + 10,
                )

                result = session.run_cmd("echo", ["OK"])

                if result.status_code == 0 and b"OK" in result.std_out:
                    logger.debug("Connected: %s + %s", transport.value, auth.value)
                    self._session = session
                    self._working_transport = transport
                    self._working_auth = auth
                    return True

            except Exception as e:  # pylint: disable=broad-except
                logger.debug(
                    "Attempt %d failed: %s - %s",
                    attempt + 1,
                    type(e).__name__,
                    str(e)[:100],
                )

        return False

    def _connection_info(self) -> dict[str, str]:
        return {
            "transport_used": self._working_transport.value if self._working_transport else "",
            "auth_used": self._working_auth.value if self._working_auth else "",
        }

    def run_ps(self, script: str) -> PSRemoteResult:
        """
        Execute a PowerShell script on the host.

        Args:
            script: PowerShell script content

        Returns:
            PSRemoteResult with output and status
        """
        if self._is_localhost:
            return self._run_local_ps(script)

        if not self._session:
            if not self.connect():
                return PSRemoteResult(
                    success=False,
                    error=f"Failed to establish a PowerShell remoting connection to {self.config.hostname}",
                )

        try:
            result = self._session.run_ps(script)
        except Exception as e:  # pylint: disable=broad-except
            logger.debug("PowerShell execution failed on %s", self.config.hostname, exc_info=True)
            return PSRemoteResult(success=False, error=str(e), **self._connection_info())

        return PSRemoteResult(
            success=result.status_code == 0,
            stdout=result.std_out.decode("utf-8", errors="replace"),
            stderr=result.std_err.decode("utf-8", errors="replace"),
            return_code=result.status_code,
            **self._connection_info(),
        )

    def _run_local_ps(self, script: str) -> PSRemoteResult:
        """Write the script to a temp file and run it with ExecutionPolicy Bypass."""
        logger.debug("Running PowerShell locally")

        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".ps1", delete=False, encoding="utf-8"
        ) as f:
            f.write(script)
            script_path = f.name

        cmd = [
            "powershell.exe",
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-File",
            script_path,
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.operation_timeout_sec,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return PSRemoteResult(
                success=False,
                error=f"Script timed out after {self.config.operation_timeout_sec}s",
                transport_used="local",
                auth_used="local",
            )
        except OSError as e:
            return PSRemoteResult(
                success=False,
                error=f"Cannot start powershell.exe: {e}",
                transport_used="local",
                auth_used="local",
            )
        finally:
            try:
                os.unlink(script_path)
            except OSError:
                logger.debug("Could not remove temp script %s", script_path)

        return PSRemoteResult(
            success=result.returncode == 0,
            stdout=result.stdout,
            stderr=result.stderr,
            return_code=result.returncode,
            transport_used="local",
            auth_used="local",
        )

    def close(self) -> None:
        """Close the session."""
        self._session = None
