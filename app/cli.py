"""
MaskWise CLI - Command line interface for job lifecycle operations.

Usage:
    maskwise --help                      Show all commands
    maskwise serve                       Start the API server
    maskwise migrate                     Run database migrations
    maskwise stats --owner USER_ID       Job counts by status for a user
    maskwise cancel-stale                Cancel RUNNING jobs that stopped reporting
"""

import asyncio

import typer

app = typer.Typer(
    name="maskwise",
    help="MaskWise CLI - Job lifecycle tooling",
    no_args_is_help=True,
)


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def stats(
    owner: str = typer.Option(..., "--owner", "-o", help="User id owning the jobs"),
):
    """Show job counts by status for a user."""
    from app.core.database import AsyncSessionLocal
    from app.core.logging import setup_logging
    from app.services.job_store import get_job_stats

    setup_logging()

    async def run() -> dict[str, int]:
        async with AsyncSessionLocal() as db:
            return await get_job_stats(db, owner)

    counts = asyncio.run(run())
    typer.echo(f"\nJobs for {owner}:")
    for key in ("queued", "running", "completed", "failed", "cancelled", "total"):
        typer.echo(f"  {key:<10} {counts[key]}")


@app.command("cancel-stale")
def cancel_stale(
    older_than_hours: int | None = typer.Option(
        None,
        "--older-than-hours",
        help="Cutoff in hours (default: lifecycle.stale_running_hours from config.yml)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="List without cancelling"),
):
    """Cancel RUNNING jobs with no progress since the cutoff."""
    from app.config import get_config
    from app.core.database import AsyncSessionLocal
    from app.core.errors import LifecycleError
    from app.core.locks import DatasetLocks
    from app.core.logging import setup_logging
    from app.services.lifecycle import cancel_job, find_stale_running_jobs

    setup_logging()
    hours = older_than_hours
    if hours is None:
        hours = get_config().lifecycle.stale_running_hours

    async def run() -> tuple[int, int]:
        locks = DatasetLocks()
        cancelled = failed = 0

        async with AsyncSessionLocal() as db:
            stale = await find_stale_running_jobs(db, hours)
            targets = [(job.id, job.dataset.project.user_id) for job in stale]

        typer.echo(f"\nFound {len(targets)} RUNNING job(s) idle for more than {hours}h")
        if dry_run:
            for job_id, _ in targets:
                typer.echo(f"  {job_id}")
            return 0, 0

        for job_id, owner_id in targets:
            async with AsyncSessionLocal() as db:
                try:
                    await cancel_job(db, job_id, owner_id, locks=locks)
                except LifecycleError as e:
                    # The job may have finished since it was listed
                    _print_warning(f"{job_id}: {e.message}")
                    failed += 1
                else:
                    _print_success(f"Cancelled {job_id}")
                    cancelled += 1
        return cancelled, failed

    cancelled, failed = asyncio.run(run())
    typer.echo(f"\n{cancelled} cancelled, {failed} skipped")
    if failed and not cancelled:
        _print_error("No stale jobs could be cancelled")
        raise typer.Exit(1)


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
