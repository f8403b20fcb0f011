"""CLI entry point for infragraph."""

import signal
import sys
from functools import partial
from typing import TYPE_CHECKING

import anyio
import click
import structlog

from . import values
from .config import Settings
from .deployment import Deployment
from .exceptions import InfragraphError, ValidationError
from .executor import NodeStatus
from .loader import load_config_values, load_program
from .log import configure_logging
from .plan import Action
from .provider import ProviderRegistry, load_provider
from .store import state_store_from_url

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable
    from typing import Any

    from .executor import ApplyResult
    from .plan import ExecutionPlan

    Operation = Callable[[Deployment], Callable[[], Awaitable[Any]]]

logger = structlog.get_logger("infragraph.cli")

EXIT_FAILED = 1
EXIT_INVALID = 2

SYMBOLS = {
    Action.CREATE: ("+", "green"),
    Action.UPDATE: ("~", "yellow"),
    Action.REPLACE: ("+-", "magenta"),
    Action.DELETE: ("-", "red"),
    Action.READ: (">", "cyan"),
    Action.NOOP: ("", None),
}


def _parse_pair(value: str, what: str, param_hint: str) -> tuple[str, str]:
    key, sep, rest = value.partition("=")
    if not sep or not key:
        raise click.BadParameter(
            f"expected {what}, got '{value}'", param_hint=param_hint
        )

    return key, rest


PROGRAM_OPTIONS = (
    click.argument("program", type=click.Path(exists=True, dir_okay=False)),
    click.option(
        "--config-file",
        type=click.Path(exists=True, dir_okay=False),
        help="YAML mapping of program config values.",
    ),
    click.option(
        "--config", "-c", "config_pairs", multiple=True, help="Config value KEY=VALUE."
    ),
    click.option(
        "--state",
        default="infragraph.state.json",
        show_default=True,
        help="State file path or valkey://host:port/key.",
    ),
    click.option(
        "--provider",
        "-p",
        "provider_refs",
        multiple=True,
        help="Provider for a type package, PACKAGE=module:attr.",
    ),
    click.option(
        "--parallelism",
        type=click.IntRange(min=1),
        help="Max number of concurrent provider operations.",
    ),
)


def program_options(fn: "Callable[..., Any]") -> "Callable[..., Any]":
    """Arguments and options shared by every command that runs a program."""
    for decorator in reversed(PROGRAM_OPTIONS):
        fn = decorator(fn)

    return fn


def _deployment(
    program: str,
    config_file: str | None,
    config_pairs: tuple[str, ...],
    state: str,
    provider_refs: tuple[str, ...],
    parallelism: int | None,
) -> Deployment:
    settings = Settings(**({"parallelism": parallelism} if parallelism else {}))
    configure_logging(settings)

    config: dict[str, "Any"] = load_config_values(config_file) if config_file else {}
    for pair in config_pairs:
        key, value = _parse_pair(pair, "KEY=VALUE", "--config")
        config[key] = value

    providers = ProviderRegistry()
    for ref in provider_refs:
        package, target = _parse_pair(ref, "PACKAGE=module:attr", "--provider")
        try:
            providers.register(package, load_provider(target))
        except (ImportError, AttributeError, ValueError, TypeError) as e:
            raise click.BadParameter(str(e), param_hint="--provider") from e

    return Deployment(
        load_program(program),
        providers=providers,
        store=state_store_from_url(state, settings),
        config=config,
        settings=settings,
    )


async def _cancel_on_signal(deployment: Deployment) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.warning("signal_received", signal=signal.Signals(signum).name)
            deployment.cancel()


async def _interruptible(
    deployment: Deployment, operation: "Callable[[], Awaitable[Any]]"
) -> "Any":
    result: "Any" = None
    error: InfragraphError | None = None

    async with anyio.create_task_group() as tg:
        tg.start_soon(_cancel_on_signal, deployment)

        try:
            result = await operation()
        except InfragraphError as e:
            # re-raised outside the task group so it is not wrapped in a group
            error = e
        finally:
            tg.cancel_scope.cancel()

    if error is not None:
        raise error

    return result


def _run(options: dict[str, "Any"], operation: "Operation") -> "Any":
    try:
        deployment = _deployment(**options)
        return anyio.run(_interruptible, deployment, operation(deployment))
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID)
    except InfragraphError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILED)


def _render_plan(plan: "ExecutionPlan") -> None:
    for node_id in plan.order:
        step = plan.steps[node_id]
        symbol, color = SYMBOLS[step.action]
        line = f"{symbol:>2} {step.action.value:<8} {node_id:<30} {step.type}"
        click.echo(click.style(line, fg=color) if color else line)

        if step.action in (Action.CREATE, Action.UPDATE, Action.REPLACE):
            for key, value in values.mask(step.preview).items():
                click.echo(f"       {key}: {value}")

    if changes := plan.changes():
        summary = ", ".join(
            f"{count} to {action.value}"
            for action, count in sorted(changes.items(), key=lambda c: c[0].value)
        )
        click.echo(f"\nPlan: {summary}.")
    else:
        click.echo("\nNo changes.")


def _render_result(result: "ApplyResult") -> None:
    for node_id in result.plan.order:
        record = result.records[node_id]
        if record.status is NodeStatus.SUCCEEDED and record.action is Action.NOOP:
            continue

        line = f"{record.status.value:<10} {record.action.value:<8} {node_id}"
        if record.status is NodeStatus.FAILED:
            click.echo(click.style(f"{line}: {record.error}", fg="red"), err=True)
        elif record.status is NodeStatus.SKIPPED:
            reason = f"blocked by {record.cause}" if record.cause else "cancelled"
            click.echo(click.style(f"{line} ({reason})", fg="yellow"))
        else:
            click.echo(line)

    failures, skipped = result.failures, result.skipped
    click.echo(
        f"\n{len(result.records) - len(failures) - len(skipped)} succeeded,"
        f" {len(failures)} failed, {len(skipped)} skipped."
    )


@click.group()
@click.version_option(package_name="infragraph")
def cli() -> None:
    """infragraph - declarative resource graphs applied through providers."""


@cli.command("plan")
@program_options
@click.option("--destroy", is_flag=True, help="Plan the removal of every resource.")
def plan_command(destroy: bool, **options: "Any") -> None:
    """Show the actions an apply would take, without changing anything."""
    plan = _run(options, lambda deployment: partial(deployment.plan, destroy=destroy))
    _render_plan(plan)


@cli.command("apply")
@program_options
def apply_command(**options: "Any") -> None:
    """Build, resolve and apply the program."""
    result = _run(options, lambda deployment: deployment.apply)
    _render_plan(result.plan)
    click.echo()
    _render_result(result)

    if not result.ok:
        sys.exit(EXIT_FAILED)


@cli.command("destroy")
@program_options
def destroy_command(**options: "Any") -> None:
    """Delete every resource recorded in state, dependents first."""
    result = _run(options, lambda deployment: deployment.destroy)
    _render_result(result)

    if not result.ok:
        sys.exit(EXIT_FAILED)
