"""Abstraction over the service management of the host.

The purge only needs three capabilities from a service manager: listing the
names of all known services, stopping a service and disabling it. They are
provided by the implementations of :py:class:`ServiceManager` for systemd,
SysV init and an in-memory variant that is used for dry runs and tests.

"""

import abc
import asyncio
import enum
import os.path
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field

import aiofiles.os

from stunnel_purge.logger import LOGGER

#: suffix of the unit files of services managed by systemd
SYSTEMD_SERVICE_SUFFIX = ".service"

#: default location of the SysV init scripts
DEFAULT_INIT_DIR = "/etc/rc.d/init.d"

#: files in the init script directory that are not services
_SYSV_EXCLUDES = frozenset(
    ("functions", "halt", "killall", "single", "linuxconf", "reboot", "boot")
)


class ServiceManagerError(RuntimeError):
    """Raised when the service manager could not perform an action."""

    def __init__(
        self, cmd: list[str], exit_code: int | None = None, stderr: str = ""
    ) -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.stderr = stderr
        msg = f"Command '{' '.join(cmd)}' failed"
        if exit_code is not None:
            msg += f" with exit code {exit_code}"
        if stderr:
            msg += f": {stderr.strip()}"
        super().__init__(msg)


@dataclass(frozen=True)
class CommandResult:
    """Result of a finished command."""

    exit_code: int
    stdout: str
    stderr: str


RunCommand = Callable[[list[str]], Awaitable[CommandResult]]


async def run_cmd(cmd: list[str]) -> CommandResult:
    """Run ``cmd`` and return its result.

    Raises:
        :py:class:`ServiceManagerError`: if the command cannot be executed or
            exits with a non-zero exit code

    """
    LOGGER.debug("Running command: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ServiceManagerError(cmd, stderr=str(exc)) from exc

    stdout, stderr = await proc.communicate()
    res = CommandResult(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if res.exit_code != 0:
        raise ServiceManagerError(cmd, exit_code=res.exit_code, stderr=res.stderr)
    return res


@enum.unique
class ServiceAction(enum.StrEnum):
    """The actions that the purge performs on a service."""

    STOP = enum.auto()
    DISABLE = enum.auto()


class ServiceManager(abc.ABC):
    """Capabilities of a service management backend."""

    @abc.abstractmethod
    async def list_services(self) -> list[str]:
        """Returns the names of all services known to the host.

        Raises:
            :py:class:`ServiceManagerError`: if the services cannot be listed

        """

    @abc.abstractmethod
    async def stop(self, name: str) -> None:
        """Stop the service ``name``."""

    @abc.abstractmethod
    async def disable(self, name: str) -> None:
        """Prevent the service ``name`` from being started on boot."""

    async def perform(self, action: ServiceAction, name: str) -> None:
        """Perform ``action`` on the service with the given name."""
        actions: dict[ServiceAction, Callable[[str], Awaitable[None]]] = {
            ServiceAction.STOP: self.stop,
            ServiceAction.DISABLE: self.disable,
        }
        await actions[action](name)


@dataclass
class SystemdServiceManager(ServiceManager):
    """Services managed by systemd, the names include the ``.service`` suffix."""

    _run_cmd: RunCommand = field(default=run_cmd)

    async def list_services(self) -> list[str]:
        res = await self._run_cmd(
            [
                "systemctl",
                "list-unit-files",
                "--type=service",
                "--all",
                "--no-legend",
                "--no-pager",
                "--plain",
            ]
        )
        units = []
        for line in res.stdout.splitlines():
            if not (line := line.strip()):
                continue
            unit = line.split()[0]
            # template units cannot be stopped or disabled by themselves
            if unit.endswith("@" + SYSTEMD_SERVICE_SUFFIX):
                continue
            units.append(unit)
        return units

    async def stop(self, name: str) -> None:
        await self._run_cmd(["systemctl", "stop", name])

    async def disable(self, name: str) -> None:
        await self._run_cmd(["systemctl", "disable", name])


@dataclass
class SysVServiceManager(ServiceManager):
    """Services provided by SysV init scripts."""

    #: directory containing the init scripts
    init_dir: str = DEFAULT_INIT_DIR

    _run_cmd: RunCommand = field(default=run_cmd)

    async def list_services(self) -> list[str]:
        try:
            entries = await aiofiles.os.listdir(self.init_dir)
        except OSError as exc:
            raise ServiceManagerError(
                ["ls", self.init_dir], stderr=str(exc)
            ) from exc

        services = []
        for entry in sorted(entries):
            if entry in _SYSV_EXCLUDES or entry.endswith((".rpmsave", ".rpmnew")):
                continue
            path = os.path.join(self.init_dir, entry)
            if await aiofiles.os.path.isfile(path) and os.access(path, os.X_OK):
                services.append(entry)
        return services

    async def stop(self, name: str) -> None:
        await self._run_cmd(["service", name, "stop"])

    async def disable(self, name: str) -> None:
        await self._run_cmd(["chkconfig", name, "off"])


@dataclass
class InMemoryServiceManager(ServiceManager):
    """Service manager that only operates on its own state.

    A disabled service is dropped from :py:attr:`services`, which mirrors the
    removal of its unit file or init script by the purge.

    """

    #: names of the services that are currently known
    services: list[str] = field(default_factory=list)

    #: actions that fail with a :py:class:`ServiceManagerError`
    failing: set[tuple[ServiceAction, str]] = field(default_factory=set)

    #: listing the services fails if set
    list_failure: bool = False

    #: every action that was performed successfully, in order
    performed: list[tuple[ServiceAction, str]] = field(default_factory=list)

    def _act(self, action: ServiceAction, name: str) -> None:
        if (action, name) in self.failing:
            raise ServiceManagerError([str(action), name], exit_code=1)
        self.performed.append((action, name))

    async def list_services(self) -> list[str]:
        if self.list_failure:
            raise ServiceManagerError(["list-services"], exit_code=1)
        return list(self.services)

    async def stop(self, name: str) -> None:
        self._act(ServiceAction.STOP, name)

    async def disable(self, name: str) -> None:
        self._act(ServiceAction.DISABLE, name)
        if name in self.services:
            self.services.remove(name)


@enum.unique
class Provider(enum.StrEnum):
    """The service management backends that can be selected."""

    SYSTEMD = enum.auto()
    SYSV = enum.auto()


def create_service_manager(
    provider: Provider | str, init_dir: str = DEFAULT_INIT_DIR
) -> ServiceManager:
    """Create the service manager for the backend with the given name."""
    if Provider(provider) == Provider.SYSV:
        return SysVServiceManager(init_dir=init_dir)
    return SystemdServiceManager()
