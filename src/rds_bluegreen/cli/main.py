"""Main CLI entry point."""

import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from rds_bluegreen.config.models import ClusterBlueGreenConfig
from rds_bluegreen.config.parser import DEFAULT_CONFIG_PATH, Config, ConfigValidationError
from rds_bluegreen.resource.handler import ClusterBlueGreenResource, HandlerResult
from rds_bluegreen.state.manager import DEFAULT_STATE_DIR, StateError, StateManager
from rds_bluegreen.state.models import ResourceState
from rds_bluegreen.utils.aws_client import AWSClientManager
from rds_bluegreen.utils.errors import DeploymentError
from rds_bluegreen.utils.logging import get_logger, setup_logging
from rds_bluegreen.utils.waiter import WaiterOptions

console = Console()
logger = get_logger(__name__)

# (handler, config, prior state) -> result
ResourceAction = Callable[[ClusterBlueGreenResource, ClusterBlueGreenConfig, Optional[ResourceState]], HandlerResult]


@click.group()
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region')
@click.option('--state-dir', default=DEFAULT_STATE_DIR, help='Directory holding resource state files')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.pass_context
def cli(ctx, profile, region, state_dir, log_level):
    """RDS cluster blue/green deployment manager."""
    ctx.ensure_object(dict)
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region
    ctx.obj['state_dir'] = state_dir
    ctx.obj['log_level'] = log_level

    setup_logging(log_level)


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load and validate configuration file."""
    try:
        config = Config(config_path)
        config.load()
        return config
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)


def select_resources(cfg: Config, resource: Optional[str]) -> List[ClusterBlueGreenConfig]:
    resources = cfg.get_resources(resource)
    if resource and not resources:
        console.print(f"[red]Error:[/red] No resource named {resource} in configuration")
        sys.exit(1)
    return resources


def create_handler(ctx, cfg: Config) -> ClusterBlueGreenResource:
    """Build a resource handler bound to a validated AWS session."""
    provider = cfg.provider
    client_manager = AWSClientManager(
        profile=ctx.obj.get('profile') or provider.profile,
        region=ctx.obj.get('region') or provider.region,
    )
    client_manager.validate_credentials()

    waiters = provider.waiters
    return ClusterBlueGreenResource(
        client_manager.rds(),
        default_tags=provider.default_tags,
        waiter_options=WaiterOptions(
            poll_interval=waiters.poll_interval,
            delay=waiters.delay,
            not_found_checks=waiters.not_found_checks,
        ),
        delete_retry_timeout=waiters.delete_retry_timeout,
    )


def run_resources(
    handler: ClusterBlueGreenResource,
    state_manager: StateManager,
    resources: List[ClusterBlueGreenConfig],
    action: ResourceAction,
    parallel: bool,
    max_workers: int,
    description: str
) -> Dict[str, HandlerResult]:
    """Run one handler action per resource and persist the resulting state.

    Each resource holds its own state lock while its action runs.
    """
    def process(resource: ClusterBlueGreenConfig) -> HandlerResult:
        threading.current_thread().name = resource.name
        with state_manager.locked(resource.name) as prior:
            result = action(handler, resource, prior)
            if result.state is not None:
                state_manager.save(result.state)
            else:
                state_manager.remove(resource.name)
        return result

    results: Dict[str, HandlerResult] = {}
    workers = max_workers if parallel else 1

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task_id = progress.add_task(f"[cyan]{description}...", total=len(resources))

        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {executor.submit(process, resource): resource for resource in resources}
            for future in as_completed(futures):
                resource = futures[future]
                results[resource.name] = future.result()
                status = "[red]✗[/red]" if results[resource.name].has_errors() else "[green]✓[/green]"
                progress.update(task_id, advance=1, description=f"{status} {resource.name}")
        except KeyboardInterrupt:
            progress.update(task_id, description="[yellow]Cancelling...[/yellow]")
            handler.cancel_event.set()
            raise
        finally:
            executor.shutdown(wait=True)

    return results


def print_results(results: Dict[str, HandlerResult], title: str) -> bool:
    """Print a summary table and diagnostics.

    Returns:
        True if every resource succeeded
    """
    table = Table(title=title)
    table.add_column("Resource", style="cyan")
    table.add_column("Cluster")
    table.add_column("Engine version")
    table.add_column("Deployment")
    table.add_column("Result")

    for name in sorted(results):
        result = results[name]
        state = result.state
        deployment = "-"
        if state is not None and state.deployment_identifier:
            deployment = f"{state.deployment_identifier} ({state.deployment_status})"
        table.add_row(
            name,
            state.cluster_identifier if state else "-",
            (state.engine_version or "-") if state else "-",
            deployment,
            "[red]failed[/red]" if result.has_errors() else "[green]ok[/green]",
        )

    console.print(table)

    ok = True
    for name in sorted(results):
        for message in results[name].messages():
            ok = False
            console.print(Panel(message, title=name, border_style="red"))

    return ok


@cli.command()
@click.option('--config', default=DEFAULT_CONFIG_PATH, help='Path to configuration file')
def validate(config):
    """Validate the configuration without calling AWS."""
    cfg = load_config(config)

    failed = False
    for resource in cfg.resources:
        for diagnostic in ClusterBlueGreenResource(None).validate(resource):
            failed = True
            console.print(Panel(diagnostic.to_user_message(), title=resource.name, border_style="red"))

    if failed:
        sys.exit(1)

    console.print(f"[green]✓ Configuration is valid[/green] ({len(cfg.resources)} resource(s))")


@cli.command()
@click.option('--resource', help='Specific resource to apply')
@click.option('--parallel/--sequential', default=True, help='Process resources concurrently')
@click.option('--config', default=DEFAULT_CONFIG_PATH, help='Path to configuration file')
@click.pass_context
def apply(ctx, resource, parallel, config):
    """Create or update resources and run their blue/green workflows."""
    cfg = load_config(config)
    resources = select_resources(cfg, resource)

    console.print(Panel.fit(
        f"[bold]Applying {len(resources)} resource(s)[/bold]\n"
        f"Mode: {'parallel' if parallel else 'sequential'}",
        title="Blue/Green Apply",
        border_style="cyan"
    ))

    def action(handler, resource_config, prior):
        if prior is None:
            return handler.create(resource_config)
        return handler.update(prior, resource_config)

    _run_command(ctx, cfg, resources, action, parallel, "Applying", "Apply Results")


@cli.command()
@click.option('--resource', help='Specific resource to refresh')
@click.option('--config', default=DEFAULT_CONFIG_PATH, help='Path to configuration file')
@click.pass_context
def refresh(ctx, resource, config):
    """Sync state files with the live clusters."""
    cfg = load_config(config)
    resources = select_resources(cfg, resource)

    def action(handler, resource_config, prior):
        return handler.read(resource_config, prior)

    _run_command(ctx, cfg, resources, action, True, "Refreshing", "Refresh Results")


@cli.command()
@click.option('--resource', help='Specific resource to destroy')
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.option('--config', default=DEFAULT_CONFIG_PATH, help='Path to configuration file')
@click.pass_context
def destroy(ctx, resource, yes, config):
    """Delete blue/green deployment records and stop managing the clusters."""
    cfg = load_config(config)
    resources = select_resources(cfg, resource)

    console.print(Panel.fit(
        "[bold red]⚠ This deletes the blue/green deployment of each resource[/bold red]\n\n"
        f"Resources: {', '.join(r.name for r in resources)}\n"
        "Clusters are left in place.",
        title="Destroy",
        border_style="red"
    ))

    if not yes and not click.confirm("Do you want to continue?"):
        console.print("[yellow]Destroy cancelled[/yellow]")
        return

    def action(handler, resource_config, prior):
        return handler.delete(prior, resource_config)

    _run_command(ctx, cfg, resources, action, True, "Destroying", "Destroy Results")


@cli.command()
@click.argument('name', required=False)
@click.pass_context
def show(ctx, name):
    """Show recorded state of managed resources."""
    state_manager = StateManager(ctx.obj['state_dir'])
    names = [name] if name else state_manager.list_resources()

    if not names:
        console.print("[yellow]No resources in state[/yellow]")
        return

    try:
        states = [state_manager.load(resource_name) for resource_name in names]
    except StateError as e:
        console.print(f"[red]State error:[/red] {e}")
        sys.exit(1)

    for state in states:
        table = Table(title=state.name, show_header=False)
        table.add_column("Attribute", style="cyan")
        table.add_column("Value")
        table.add_row("arn", state.arn or "-")
        table.add_row("cluster_identifier", state.cluster_identifier)
        table.add_row("cluster_members", ", ".join(state.cluster_members) or "-")
        table.add_row("cluster_resource_id", state.cluster_resource_id or "-")
        table.add_row("engine", f"{state.engine or '-'} {state.engine_version or ''}".strip())
        table.add_row("deletion_protection", str(state.deletion_protection))
        table.add_row("backup_retention_period", str(state.backup_retention_period))
        table.add_row("deployment", state.deployment_identifier or "-")
        table.add_row("deployment_status", state.deployment_status or "-")
        table.add_row("tags_all", ", ".join(f"{k}={v}" for k, v in sorted(state.tags_all.items())) or "-")
        table.add_row("updated_at", state.updated_at.isoformat())
        console.print(table)


def _run_command(ctx, cfg, resources, action, parallel, description, title):
    try:
        handler = create_handler(ctx, cfg)
        state_manager = StateManager(ctx.obj['state_dir'])
        results = run_resources(
            handler,
            state_manager,
            resources,
            action,
            parallel=parallel,
            max_workers=cfg.provider.max_parallel,
            description=description,
        )
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(130)
    except (DeploymentError, StateError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Unexpected error while {description.lower()}")
        console.print(f"[red]Unexpected error:[/red] {e}")
        sys.exit(1)

    console.print()
    if not print_results(results, title):
        sys.exit(1)


if __name__ == '__main__':
    cli()
