"""CLI entry-point: worker, queue operations, prompts and approvals."""

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from replygate.config import get_settings
from replygate.errors import ReplyGateError
from replygate.jobs import Worker, build_processors
from replygate.safety import record_opt_in, record_opt_out
from replygate.schemas import JobOptions, JobType, PromptCreate
from replygate.services import Services, build_services

app = typer.Typer(help="Safety-gated AI reply pipeline")


def _services() -> Services:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    return build_services(settings)


@app.command()
def worker(
    poll_interval: float = typer.Option(None, help="Seconds to sleep when the queue is empty"),
    once: bool = typer.Option(False, "--once", help="Process at most one job and exit"),
):
    """Run the job worker until SIGTERM / Ctrl-C."""
    console = Console()
    svc = _services()
    w = Worker(
        svc.queue,
        build_processors(svc.orchestrator),
        poll_interval=poll_interval or svc.settings.replygate_poll_interval,
    )
    try:
        if once:
            ran = w.run_once()
            console.print("Processed one job." if ran else "No job ready.")
            return
        w.install_signal_handlers()
        w.run()
    finally:
        svc.queue.close()


@app.command()
def enqueue(
    conversation_id: str = typer.Argument(..., help="Conversation to draft a reply for"),
    message_id: str | None = typer.Option(None, help="Inbound message that triggered the reply"),
    tenant_id: str | None = typer.Option(None, help="Tenant override"),
    priority: int = typer.Option(0, help="Higher runs sooner (-500..500)"),
    max_attempts: int = typer.Option(3, help="Attempts before dead-lettering"),
):
    """Enqueue an ai_generation job."""
    console = Console()
    svc = _services()
    key = f"ai_generation:{conversation_id}:{message_id}" if message_id else None
    try:
        job = svc.queue.add_job(
            JobType.AI_GENERATION,
            {"conversation_id": conversation_id, "message_id": message_id, "tenant_id": tenant_id},
            JobOptions(priority=priority, max_attempts=max_attempts, idempotency_key=key),
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if job is None:
        console.print(f"[yellow]Duplicate: a job with key {key} already exists.[/yellow]")
        return
    console.print(f"Enqueued {job.id}")


@app.command()
def stats():
    """Show job counts per status."""
    console = Console()
    svc = _services()
    counts = svc.queue.get_stats()
    table = Table(title="Job queue")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in counts.model_dump().items():
        table.add_row(status, str(count))
    console.print(table)


@app.command("dead-letters")
def dead_letters(limit: int = typer.Option(20, help="Max jobs to show")):
    """List dead-lettered jobs with their last error."""
    console = Console()
    svc = _services()
    jobs = svc.queue.list_dead_letters(limit=limit)
    if not jobs:
        console.print("No dead-lettered jobs.")
        return
    table = Table(title="Dead letters")
    for col in ("Job", "Type", "Attempts", "Last error"):
        table.add_column(col)
    for job in jobs:
        table.add_row(job.id, job.type.value, str(job.attempts), (job.last_error or "")[:80])
    console.print(table)


@app.command()
def requeue(job_id: str = typer.Argument(..., help="Dead-lettered job id")):
    """Put a dead-lettered job back on the queue with a fresh attempt budget."""
    console = Console()
    svc = _services()
    job = svc.queue.requeue_dead_letter(job_id)
    if job is None:
        console.print(f"[red]Error: {job_id} is not a dead-lettered job[/red]")
        raise typer.Exit(1)
    console.print(f"Requeued {job.id}")


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Pending job id")):
    """Cancel a job that has not been claimed yet."""
    console = Console()
    svc = _services()
    if not svc.queue.cancel_job(job_id):
        console.print(f"[red]Error: {job_id} is not pending (or does not exist)[/red]")
        raise typer.Exit(1)
    console.print(f"Cancelled {job_id}")


@app.command("prompt-create")
def prompt_create(
    path: str = typer.Argument(..., help="JSON file with the prompt fields"),
    activate: bool = typer.Option(False, "--activate", help="Activate after creating"),
):
    """Register a new prompt version from a JSON file."""
    console = Console()
    svc = _services()
    try:
        data = PromptCreate.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))
        prompt = svc.resolver.create_prompt(data)
        if activate:
            prompt = svc.resolver.activate_prompt(prompt.id)
    except (FileNotFoundError, ValueError, ReplyGateError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    state = "active" if prompt.is_active else "inactive"
    console.print(f"Created {prompt.id} ({prompt.name} v{prompt.version}, {state})")


@app.command("prompt-activate")
def prompt_activate(prompt_id: str = typer.Argument(..., help="Prompt id")):
    """Activate a prompt version and retire its siblings."""
    console = Console()
    svc = _services()
    try:
        prompt = svc.resolver.activate_prompt(prompt_id)
    except ReplyGateError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Activated {prompt.name} v{prompt.version}[/green]")


@app.command()
def prompts(
    tenant_id: str | None = typer.Option(None, help="Tenant (default: global prompts)"),
    name: str | None = typer.Option(None, help="Filter by prompt name"),
):
    """List prompt versions."""
    console = Console()
    svc = _services()
    table = Table(title=f"Prompts ({tenant_id or 'global'})")
    for col in ("Id", "Name", "Version", "Model", "Active"):
        table.add_column(col)
    for p in svc.resolver.list_prompts(tenant_id, name):
        table.add_row(p.id, p.name, p.version, p.model, "yes" if p.is_active else "")
    console.print(table)


@app.command()
def approve(
    generation_id: str = typer.Argument(..., help="Generation awaiting approval"),
    approver: str = typer.Option(..., "--approver", help="Approving agent id"),
    edited: str | None = typer.Option(None, "--edited", help="Replacement text to send instead"),
):
    """Approve a pending draft (optionally edited) and send it."""
    console = Console()
    svc = _services()
    try:
        generation = svc.orchestrator.approve_and_send(generation_id, approver, edited)
    except ReplyGateError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{generation.status.value}[/green] → message {generation.outbound_message_id}")


@app.command("opt-out")
def opt_out(
    tenant_id: str = typer.Argument(..., help="Tenant id"),
    phone: str = typer.Argument(..., help="Phone number"),
    reason: str = typer.Option("manual", help="Reason to record"),
):
    """Stop all messages to a number."""
    svc = _services()
    record_opt_out(svc.store, tenant_id, phone, reason=reason)
    Console().print(f"{phone} opted out")


@app.command("opt-in")
def opt_in(
    tenant_id: str = typer.Argument(..., help="Tenant id"),
    phone: str = typer.Argument(..., help="Phone number"),
):
    """Re-enable messages to a number."""
    console = Console()
    svc = _services()
    if record_opt_in(svc.store, tenant_id, phone) is None:
        console.print(f"[yellow]{phone} was not opted out[/yellow]")
        return
    console.print(f"{phone} opted in")


if __name__ == "__main__":
    app()
