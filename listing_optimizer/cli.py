"""Flask CLI commands for running and inspecting optimization jobs."""
import json

import click

from listing_optimizer.errors import OptimizerError
from listing_optimizer.extensions import get_orchestrator


def _echo_snapshot(snapshot):
    progress = snapshot.progress
    click.echo(f"Job {snapshot.job_id}: {snapshot.status.value} ({snapshot.current_step})")
    click.echo(
        f"  Images: {progress.completed} completed, {progress.failed} failed of {progress.total}"
    )
    if snapshot.error:
        click.echo(f"  Error: {snapshot.error}")
    for pair in snapshot.image_pairs:
        state = pair.optimized.status.value if pair.optimized else pair.original.status.value
        click.echo(f"  {pair.file_name:<20} {pair.room_type:<12} {state}")


def register_cli(app):
    @app.cli.command("optimize")
    @click.argument("url")
    @click.option("--max-images", type=int, default=None, help="Images to process (1-20)")
    @click.option("--wait/--no-wait", default=False, help="Block until the job finishes")
    @click.option("--json", "as_json", is_flag=True, help="Print the final snapshot as JSON")
    def optimize(url, max_images, wait, as_json):
        """Submit a listing URL for optimization."""
        orchestrator = get_orchestrator()
        try:
            job_id = orchestrator.submit_job(url, max_images=max_images)
        except OptimizerError as e:
            raise click.ClickException(e.message)

        click.echo(f"Submitted job {job_id}")
        if not wait:
            return

        snapshot = orchestrator.wait(job_id)
        if as_json:
            click.echo(json.dumps(snapshot.to_dict(), indent=2))
        else:
            _echo_snapshot(snapshot)

    @app.cli.command("job-status")
    @click.argument("job_id")
    def job_status(job_id):
        """Show progress for one job."""
        try:
            snapshot = get_orchestrator().get_job_snapshot(job_id)
        except OptimizerError as e:
            raise click.ClickException(e.message)
        _echo_snapshot(snapshot)

    @app.cli.command("sweep-expired")
    def sweep_expired():
        """Expire stale jobs and purge old finished ones."""
        orchestrator = get_orchestrator()
        expired = orchestrator.sweep_expired_jobs()
        purged = orchestrator.purge_finished_jobs()
        click.echo(f"Expired {expired} jobs, purged {purged} jobs.")
