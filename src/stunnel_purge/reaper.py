"""Tear down services that are no longer managed.

Every rogue service is stopped and disabled and afterwards all regular files
that start with its name are removed from the watched directories. All steps
are best effort: a failing step is logged and the reaper carries on with the
next one, so that a subsequent pass can pick up whatever is left.

"""

import enum
import glob
import os.path
import stat
from dataclasses import dataclass
from dataclasses import field

import aiofiles.os

from stunnel_purge.logger import LOGGER
from stunnel_purge.service_manager import SYSTEMD_SERVICE_SUFFIX
from stunnel_purge.service_manager import ServiceAction
from stunnel_purge.service_manager import ServiceManager
from stunnel_purge.service_manager import ServiceManagerError


@enum.unique
class ReapState(enum.Enum):
    """States of a single rogue service while it is being reaped."""

    DETECTED = "detected"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STOP_FAILED = "stop_failed"
    DISABLING = "disabling"
    DISABLED = "disabled"
    DISABLE_FAILED = "disable_failed"
    PURGING = "purging"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


#: ``(in progress, succeeded, failed)`` states of each action
_ACTION_STATES: dict[ServiceAction, tuple[ReapState, ReapState, ReapState]] = {
    ServiceAction.STOP: (ReapState.STOPPING, ReapState.STOPPED, ReapState.STOP_FAILED),
    ServiceAction.DISABLE: (
        ReapState.DISABLING,
        ReapState.DISABLED,
        ReapState.DISABLE_FAILED,
    ),
}

_ACTION_VERBS = {ServiceAction.STOP: "Stopping", ServiceAction.DISABLE: "Disabling"}


@dataclass
class ServiceReapResult:
    """What happened to a single rogue service."""

    #: name of the service as reported by the service manager
    name: str

    state: ReapState = ReapState.DETECTED

    #: every state that the service went through, in order
    history: list[ReapState] = field(default_factory=lambda: [ReapState.DETECTED])

    #: files that were removed
    purged: list[str] = field(default_factory=list)

    #: matches that were left alone because they are not regular files
    refused: list[str] = field(default_factory=list)

    #: files that could not be removed
    failed: list[str] = field(default_factory=list)

    @property
    def basename(self) -> str:
        """The service's name without the systemd ``.service`` suffix."""
        return self.name.removesuffix(SYSTEMD_SERVICE_SUFFIX)

    @property
    def stopped(self) -> bool:
        return ReapState.STOPPED in self.history

    @property
    def disabled(self) -> bool:
        return ReapState.DISABLED in self.history

    def transition(self, state: ReapState) -> None:
        self.state = state
        self.history.append(state)


@dataclass
class ReapReport:
    services: list[ServiceReapResult] = field(default_factory=list)

    @property
    def purged_files(self) -> list[str]:
        return [f for res in self.services for f in res.purged]

    @property
    def refused_paths(self) -> list[str]:
        return [f for res in self.services for f in res.refused]


async def _is_regular_file(path: str) -> bool:
    st = await aiofiles.os.stat(path, follow_symlinks=False)
    return stat.S_ISREG(st.st_mode)


async def purge_file(path: str) -> bool:
    """Remove ``path`` if it is a regular file.

    Symbolic links are never followed and neither directories nor special
    files are removed.

    Returns:
        ``True`` if the file was removed, ``False`` if it was left alone

    Raises:
        :py:class:`OSError`: if ``path`` could not be inspected or removed

    """
    if not await _is_regular_file(path):
        LOGGER.debug("Refusing to Purge Non-File '%s'", path)
        return False

    LOGGER.debug("Purging File '%s'", path)
    await aiofiles.os.remove(path)
    return True


async def _perform(
    manager: ServiceManager, action: ServiceAction, result: ServiceReapResult
) -> None:
    in_progress, succeeded, failed = _ACTION_STATES[action]
    result.transition(in_progress)
    LOGGER.debug("%s Service %s", _ACTION_VERBS[action], result.basename)
    try:
        await manager.perform(action, result.name)
    except ServiceManagerError as exc:
        LOGGER.warning("Could not %s the service %s: %s", action, result.name, exc)
        result.transition(failed)
    else:
        result.transition(succeeded)


async def _purge_files(result: ServiceReapResult, watched_dirs: list[str]) -> None:
    result.transition(ReapState.PURGING)
    for directory in watched_dirs:
        pattern = os.path.join(glob.escape(directory), glob.escape(result.basename) + "*")
        for path in sorted(glob.glob(pattern)):
            try:
                if await purge_file(path):
                    result.purged.append(path)
                else:
                    result.refused.append(path)
            except OSError as exc:
                LOGGER.warning("Could not purge '%s': %s", path, exc)
                result.failed.append(path)


async def reap_service(
    name: str, watched_dirs: list[str], manager: ServiceManager
) -> ServiceReapResult:
    """Stop, disable and remove the files of the service ``name``.

    The service always ends up in :py:attr:`ReapState.DONE`, independent of
    which of the steps failed.

    """
    result = ServiceReapResult(name=name)

    await _perform(manager, ServiceAction.STOP, result)
    await _perform(manager, ServiceAction.DISABLE, result)
    await _purge_files(result, watched_dirs)

    result.transition(ReapState.DONE)
    return result


async def reap(
    rogue: list[str], watched_dirs: list[str], manager: ServiceManager
) -> ReapReport:
    """Reap all services in ``rogue`` one after another."""
    report = ReapReport()
    for name in rogue:
        report.services.append(await reap_service(name, watched_dirs, manager))
    return report
