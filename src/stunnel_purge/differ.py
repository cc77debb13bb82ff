"""Find the services that exist on the host but are no longer declared."""

from collections.abc import Iterable
from dataclasses import dataclass

from stunnel_purge.declaration import prefix_pattern
from stunnel_purge.logger import LOGGER
from stunnel_purge.service_manager import SYSTEMD_SERVICE_SUFFIX
from stunnel_purge.service_manager import ServiceManager
from stunnel_purge.service_manager import ServiceManagerError
from stunnel_purge.templates import SUMMARY_TEMPLATE
from stunnel_purge.templates import VERBOSE_SUMMARY_TEMPLATE


@dataclass(frozen=True)
class PurgePlan:
    """Result of comparing the live services with the declared ones."""

    #: services that have to be purged, in the order reported by the host
    rogue: list[str]

    #: the change summary or the unchanged directories if nothing is rogue
    summary: str | list[str]

    @property
    def changed(self) -> bool:
        return bool(self.rogue)


def normalize_service_names(live: list[str], intended: Iterable[str]) -> list[str]:
    """Append the systemd ``.service`` suffix to the intended service names if
    the host's service names carry it.

    Only the first live service name is inspected: either all names get the
    suffix or none.

    """
    if live and live[0].endswith(SYSTEMD_SERVICE_SUFFIX):
        return [name + SYSTEMD_SERVICE_SUFFIX for name in intended]
    return list(intended)


def render_summary(rogue: list[str], *, verbose: bool) -> str:
    if verbose:
        return VERBOSE_SUMMARY_TEMPLATE.render(services=rogue)
    return SUMMARY_TEMPLATE.render(services=rogue)


async def compute_rogue_set(
    prefix: str,
    intended: Iterable[str],
    manager: ServiceManager,
    *,
    dirs: list[str],
    verbose: bool = False,
    noop: bool = False,
) -> PurgePlan:
    """Compare the services of the host that start with ``prefix`` with the
    ``intended`` ones and return the services that have to be purged.

    A failure to list the services of the host is not fatal, nothing is purged
    in that case.

    """
    try:
        live_services = await manager.list_services()
    except ServiceManagerError as exc:
        LOGGER.debug("Could not list the services of the host: %s", exc)
        live_services = []

    pattern = prefix_pattern(prefix)
    live = [name for name in live_services if pattern.match(name)]
    declared = normalize_service_names(
        live, (name for name in intended if pattern.match(name))
    )

    rogue: list[str] = []
    for name in live:
        if name not in declared and name not in rogue:
            rogue.append(name)

    if not rogue:
        return PurgePlan(rogue=[], summary=dirs)

    LOGGER.debug("Found rogue services: %s", ", ".join(rogue))
    return PurgePlan(rogue=rogue, summary=render_summary(rogue, verbose=verbose or noop))
