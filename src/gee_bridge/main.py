import logging

import typer
from typing_extensions import Annotated

from gee_bridge import __version__, assets, tasks
from gee_bridge.ee_auth import clean_credentials, get_user_info, initialize_ee, print_authentication_status
from gee_bridge.tiles import cog_tile_url

app = typer.Typer(
    name="gee-bridge",
    help="Google Earth Engine session, asset, export and map tools",
    add_completion=False,
)
assets_app = typer.Typer(help="Manage Earth Engine assets")
app.add_typer(assets_app, name="assets")


@app.command()
def test_auth():
    """Test Earth Engine authentication status."""
    print("Testing Earth Engine authentication...")
    print_authentication_status()


@app.command()
def init(
    project: Annotated[str, typer.Option(help="Google Cloud project")] = None,
    service_account: Annotated[str, typer.Option(help="Service account e-mail")] = None,
    key_file: Annotated[str, typer.Option(help="Service account JSON key")] = None,
):
    """Initialize Earth Engine and show the session."""
    session = initialize_ee(project=project, service_account=service_account, key_file=key_file)
    print(f"✓ Earth Engine initialized with project: {session['project']}")


@app.command()
def user_info(
    project: Annotated[str, typer.Option(help="Google Cloud project")] = None,
):
    """Show the current user, project and asset roots."""
    initialize_ee(project=project, quiet=True)
    for key, value in get_user_info().items():
        print(f"{key}: {value}")


@app.command("tasks")
def list_tasks(
    state: Annotated[list[str], typer.Option(help="Only tasks in this state (repeatable)")] = None,
    limit: Annotated[int, typer.Option(help="Maximum number of tasks to show")] = 20,
):
    """List recent Earth Engine tasks."""
    initialize_ee(quiet=True)
    for task in tasks.list_tasks(states=state)[:limit]:
        print(f"{task['id']}  {task['state']:<10}  {task.get('description', '')}")


@app.command()
def wait(
    task_id: str,
    interval: Annotated[float, typer.Option(help="Seconds between status checks")] = None,
    timeout: Annotated[float, typer.Option(help="Give up after this many seconds")] = None,
):
    """Wait for a task to finish."""
    initialize_ee(quiet=True)
    try:
        tasks.wait_for_task(task_id, poll_interval=interval, timeout=timeout)
    except (tasks.TaskFailedError, TimeoutError) as e:
        print(f"✗ {e}")
        raise typer.Exit(code=1)
    print(f"✓ Task {task_id} completed")


@app.command()
def cancel(
    task_id: Annotated[str, typer.Argument()] = None,
    all_tasks: Annotated[bool, typer.Option("--all", help="Cancel every active task")] = False,
):
    """Cancel one task, or all active tasks with --all."""
    if task_id is None and not all_tasks:
        print("Give a TASK_ID or --all")
        raise typer.Exit(code=2)
    initialize_ee(quiet=True)
    if all_tasks:
        print(f"Cancelled {tasks.cancel_all_tasks()} task(s)")
    else:
        tasks.cancel_task(task_id)
        print(f"Cancelled {task_id}")


@assets_app.command("ls")
def assets_ls(
    parent: str,
    recursive: Annotated[bool, typer.Option("--recursive", "-r")] = False,
):
    """List assets under a folder or collection."""
    initialize_ee(quiet=True)
    for asset in assets.list_assets(parent, recursive=recursive):
        print(f"{asset['type']:<16}{asset['id']}")


@assets_app.command("mkdir")
def assets_mkdir(path: str):
    """Create a folder, including missing parents."""
    initialize_ee(quiet=True)
    assets.create_assets_folder(path)
    print(f"✓ {path}")


@assets_app.command("rm")
def assets_rm(
    asset_id: str,
    recursive: Annotated[bool, typer.Option("--recursive", "-r")] = False,
):
    """Delete an asset."""
    initialize_ee(quiet=True)
    assets.delete_asset(asset_id, recursive=recursive)
    print(f"✓ Deleted {asset_id}")


@app.command()
def cog_url(
    url: str,
    vmin: Annotated[float, typer.Option("--min")] = None,
    vmax: Annotated[float, typer.Option("--max")] = None,
    palette: Annotated[str, typer.Option(help="Colormap name or comma-separated colors")] = None,
    endpoint: Annotated[str, typer.Option(help="Tile server URL")] = None,
):
    """Print the tile URL template of a public Cloud-Optimized GeoTIFF."""
    vis_params = {}
    if vmin is not None:
        vis_params['min'] = vmin
    if vmax is not None:
        vis_params['max'] = vmax
    if palette:
        vis_params['palette'] = palette
    print(cog_tile_url(url, vis_params, endpoint=endpoint))


@app.command("clean-credentials")
def clean_credentials_command():
    """Delete the stored Earth Engine user credentials."""
    if clean_credentials():
        print("✓ Credentials removed")
    else:
        print("No stored credentials found")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Log progress messages")] = False,
):
    """Main entry point for the gee-bridge CLI."""
    if version:
        print(f"gee-bridge-python version {__version__}")
        raise typer.Exit()

    if verbose:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if ctx.invoked_subcommand is None:
        print("gee-bridge: Earth Engine tools")
        print("\nUse --help to see available commands")


if __name__ == "__main__":
    app()
