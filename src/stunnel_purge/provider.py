"""Reconciliation of an :py:class:`~stunnel_purge.declaration.InstancePurge`
with the host.

The purge is modelled as the two phases of a property: reading the current
value of ``dirs`` (:py:meth:`PurgeProvider.dirs`) detects rogue services and
yields the change summary, while setting it (:py:meth:`PurgeProvider.set_dirs`)
tears them down. The write phase only runs if the read phase found something
to purge.

"""

import platform
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field

from stunnel_purge.catalog import Catalog
from stunnel_purge.declaration import InstancePurge
from stunnel_purge.differ import PurgePlan
from stunnel_purge.differ import compute_rogue_set
from stunnel_purge.logger import LOGGER
from stunnel_purge.reaper import ReapReport
from stunnel_purge.reaper import reap
from stunnel_purge.service_manager import ServiceManager


@dataclass
class ReconcileResult:
    """Outcome of a single reconciliation pass of an instance purge."""

    #: name (prefix) of the instance purge
    name: str

    #: change summary, the declared directories if nothing changed
    summary: str | list[str]

    #: ``True`` if rogue services were found
    changed: bool

    #: what the reaper did, ``None`` if it did not run
    report: ReapReport | None = None

    #: titles of the catalog services that are ordered after the purge
    before: list[str] = field(default_factory=list)


@dataclass
class PurgeProvider:
    """Provider purging expired ``stunnel`` instances on Linux hosts."""

    declaration: InstancePurge

    #: names of the services that are declared in the current catalog
    intended: list[str]

    manager: ServiceManager

    _plan: PurgePlan | None = None

    @staticmethod
    def suitable() -> bool:
        """The provider can only be used on Linux."""
        return platform.system() == "Linux"

    @staticmethod
    def from_catalog(
        declaration: InstancePurge, catalog: Catalog, manager: ServiceManager
    ) -> "PurgeProvider":
        return PurgeProvider(
            declaration=declaration,
            intended=catalog.service_names(declaration.name),
            manager=manager,
        )

    def change_to_s(self) -> str | list[str]:
        """The change summary of the last read phase."""
        if self._plan is None:
            return self.declaration.dirs
        return self._plan.summary

    async def dirs(self) -> str | list[str]:
        """Read phase: find the rogue services.

        Returns the declared directories unchanged if there is nothing to
        purge, so that no change is reported, or the change summary otherwise.

        """
        return (await self._read_plan()).summary

    async def _read_plan(self) -> PurgePlan:
        self._plan = await compute_rogue_set(
            self.declaration.name,
            self.intended,
            self.manager,
            dirs=self.declaration.dirs,
            verbose=self.declaration.verbose,
            noop=self.declaration.noop,
        )
        return self._plan

    async def set_dirs(self, target_dirs: Iterable[str] | str) -> ReapReport:
        """Write phase: disable all rogue services found by :py:meth:`dirs` and
        remove their files from ``target_dirs``.

        """
        if self._plan is None:
            raise RuntimeError("The rogue services are unknown, call dirs() first")

        if isinstance(target_dirs, str):
            target_dirs = [target_dirs]
        return await reap(self._plan.rogue, list(target_dirs), self.manager)

    async def reconcile(self) -> ReconcileResult:
        """Run one reconciliation pass."""
        plan = await self._read_plan()
        summary = plan.summary
        if not plan.changed:
            LOGGER.info("%s: no rogue services", self.declaration.name)
            return ReconcileResult(
                name=self.declaration.name, summary=summary, changed=False
            )

        if self.declaration.noop:
            LOGGER.info("%s: would have run: %s", self.declaration.name, summary)
            return ReconcileResult(
                name=self.declaration.name, summary=summary, changed=True
            )

        report = await self.set_dirs(self.declaration.dirs)
        LOGGER.info("%s: %s", self.declaration.name, summary)
        return ReconcileResult(
            name=self.declaration.name, summary=summary, changed=True, report=report
        )


async def reconcile_catalog(
    catalog: Catalog, manager: ServiceManager
) -> list[ReconcileResult]:
    """Run every instance purge of ``catalog`` one after another."""
    results = []
    for declaration in catalog.instance_purges:
        provider = PurgeProvider.from_catalog(declaration, catalog, manager)
        result = await provider.reconcile()
        result.before = declaration.autobefore(catalog)
        if result.before:
            LOGGER.debug(
                "%s has to run before: %s", declaration.name, ", ".join(result.before)
            )
        results.append(result)
    return results
