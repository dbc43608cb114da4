"""
Scenarios run against a connected virtual cluster.

Scenarios share a ScenarioContext instead of relying on their position in a
list: a scenario that needs the workload created by create_and_converge reads
it from ctx.workload and fails with ScenarioDependencyError if it is absent.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from vcluster_e2e.errors import (
    ConvergenceTimeoutError,
    PollTimeoutError,
    RemoteCallError,
    ScenarioDependencyError,
)
from vcluster_e2e.models.workload import (
    DEPLOYMENT,
    NAMESPACE,
    WorkloadRef,
    WorkloadSpec,
    WorkloadStatus,
    namespace_manifest,
)
from vcluster_e2e.observability.logging import HarnessLogger
from vcluster_e2e.observability.tracing import traced_operation
from vcluster_e2e.settings import Settings
from vcluster_e2e.utils.kubernetes import ClientHandle
from vcluster_e2e.utils.polling import ConditionPoller, ConditionResult


@dataclass
class ScenarioContext:
    """State shared by the scenarios of one run."""

    settings: Settings
    handle: ClientHandle | None = None
    log: HarnessLogger = field(default_factory=HarnessLogger)
    cancel_event: asyncio.Event | None = None
    workload: WorkloadRef | None = None

    @property
    def client(self) -> ClientHandle:
        if self.handle is None:
            raise ScenarioDependencyError(None, "a connected client handle")
        return self.handle

    def poller(self) -> ConditionPoller:
        return ConditionPoller(
            interval=self.settings.poll_interval_seconds,
            timeout=self.settings.poll_timeout_seconds,
            immediate=False,
            logger=self.log.logger,
        )


ScenarioFunc = Callable[[ScenarioContext], Awaitable[None]]


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    run: ScenarioFunc


def require_workload(ctx: ScenarioContext, scenario: str) -> WorkloadRef:
    if ctx.workload is None:
        raise ScenarioDependencyError(scenario, "a workload created by create_and_converge")
    return ctx.workload


@traced_operation("create_and_converge")
async def create_and_converge(ctx: ScenarioContext) -> None:
    """Create the workload and wait until all desired replicas are ready."""
    settings = ctx.settings
    spec = WorkloadSpec(
        name=settings.workload_name,
        namespace=settings.workload_namespace,
        replicas=settings.initial_replicas,
        image=settings.workload_image,
    )

    ctx.log.log_mutation("create", DEPLOYMENT.kind, spec.name, spec.namespace)
    await ctx.client.create(DEPLOYMENT, spec.to_manifest(), namespace=spec.namespace)

    created = await ctx.client.get(DEPLOYMENT, spec.name, namespace=spec.namespace)
    workload = WorkloadRef(
        name=spec.name,
        namespace=spec.namespace,
        desired_replicas=WorkloadStatus.from_resource(created).desired_replicas,
    )
    ctx.workload = workload

    async def replicas_ready() -> ConditionResult:
        try:
            resource = await ctx.client.get(
                DEPLOYMENT, workload.name, namespace=workload.namespace
            )
        except RemoteCallError as e:
            return ConditionResult.not_yet(f"read failed: {e.message}")
        status = WorkloadStatus.from_resource(resource)
        if status.ready_replicas == workload.desired_replicas:
            return ConditionResult.satisfied()
        return ConditionResult.not_yet(
            f"{status.ready_replicas}/{workload.desired_replicas} replicas ready"
        )

    description = f"{workload} to have {workload.desired_replicas} ready replicas"
    try:
        await ctx.poller().poll(
            replicas_ready, description=description, cancel_event=ctx.cancel_event
        )
    except PollTimeoutError as e:
        raise ConvergenceTimeoutError(
            f"Timeout reached waiting for {description}"
            + (f" (last observation: {e.last_reason})" if e.last_reason else ""),
            cause=e,
        ) from e


@traced_operation("scale_and_acknowledge")
async def scale_and_acknowledge(ctx: ScenarioContext) -> None:
    """Raise the workload's desired replicas; the update acknowledgment is enough."""
    workload = require_workload(ctx, "scale_and_acknowledge")
    replicas = ctx.settings.scaled_replicas

    current = await ctx.client.get(
        DEPLOYMENT, workload.name, namespace=workload.namespace
    )
    current.setdefault("spec", {})["replicas"] = replicas

    ctx.log.log_mutation("update", DEPLOYMENT.kind, workload.name, workload.namespace)
    await ctx.client.replace(DEPLOYMENT, current, namespace=workload.namespace)

    ctx.workload = workload.model_copy(update={"desired_replicas": replicas})


@traced_operation("side_effect_and_cleanup")
async def side_effect_and_cleanup(ctx: ScenarioContext) -> None:
    """Create an auxiliary namespace and delete it again."""
    name = ctx.settings.side_effect_namespace

    ctx.log.log_mutation("create", NAMESPACE.kind, name, None)
    await ctx.client.create(NAMESPACE, namespace_manifest(name))

    ctx.log.log_mutation("delete", NAMESPACE.kind, name, None)
    await ctx.client.delete(NAMESPACE, name)


DEFAULT_SCENARIOS: tuple[Scenario, ...] = (
    Scenario(
        name="create_and_converge",
        description="Deploys workload to the virtual cluster",
        run=create_and_converge,
    ),
    Scenario(
        name="scale_and_acknowledge",
        description="Scales the deployment",
        run=scale_and_acknowledge,
    ),
    Scenario(
        name="side_effect_and_cleanup",
        description="Creates and deletes a namespace",
        run=side_effect_and_cleanup,
    ),
)

SCENARIOS_BY_NAME: dict[str, Scenario] = {s.name: s for s in DEFAULT_SCENARIOS}


def select_scenarios(names: list[str] | None) -> tuple[Scenario, ...]:
    """Pick scenarios by name, keeping the default order."""
    if not names:
        return DEFAULT_SCENARIOS
    unknown = sorted(set(names) - SCENARIOS_BY_NAME.keys())
    if unknown:
        raise ValueError(
            f"Unknown scenario(s): {', '.join(unknown)}; "
            f"available: {', '.join(SCENARIOS_BY_NAME)}"
        )
    return tuple(s for s in DEFAULT_SCENARIOS if s.name in names)
