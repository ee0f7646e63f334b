import typer
from typing import List, Optional
from sprintkeeper.core.logging import setup_logging, get_logger

# Initialize logging before anything else
setup_logging()
logger = get_logger(__name__)

app = typer.Typer()


def build_engine():
    """Lifecycle engine wired from settings. Patched in tests."""
    from sprintkeeper.services.lifecycle_engine import SprintLifecycleEngine
    return SprintLifecycleEngine()


def build_commitment_service():
    from sprintkeeper.services.commitment_service import CommitmentService
    return CommitmentService(build_engine())


@app.command()
def version():
    """Show version."""
    from sprintkeeper import __version__
    print(f"SprintKeeper v{__version__}")


@app.command()
def init_db():
    """Create the sprint tables."""
    from sprintkeeper.utils.db import init_db as _init_db
    _init_db()
    print("Tables created successfully.")


@app.command()
def reconcile(owner_id: str = typer.Argument(..., help="Owner whose sprints should be brought up to date")):
    """Bring one owner's sprints in line with the clock."""
    from sprintkeeper.core.exceptions import SprintKeeperError

    engine = build_engine()
    try:
        result = engine.reconcile(owner_id)
    except SprintKeeperError as e:
        logger.error("reconcile_command_failed", owner_id=owner_id, error=str(e))
        print(f"❌ {type(e).__name__}: {e}")
        raise typer.Exit(code=1)

    if result.transitioned:
        print(
            f"✅ {owner_id}: sprint {result.current_index} is current "
            f"({result.created} created, {result.relabeled} relabeled, {result.deleted} deleted)"
        )
    else:
        print(f"✅ {owner_id}: no transition needed (sprint {result.current_index} is current)")


@app.command()
def advance(
    owner: Optional[List[str]] = typer.Option(None, help="Owner to reconcile (repeatable). Defaults to every known owner."),
):
    """Reconcile every owner. Exits with status 1 if any owner failed."""
    engine = build_engine()
    report = engine.reconcile_all(owner or None)

    print(f"Sprint transition to sprint {report.current_index}")
    print(f"  Owners processed: {report.owners_processed}")
    print(f"  Sprint updates:   {report.total_writes}")

    for outcome in report.failures:
        print(f"  ❌ {outcome.owner_id}: {outcome.error_type}: {outcome.error}")

    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def summary(owner_id: str = typer.Argument(..., help="Owner to summarize")):
    """Show the rolling-window commitment summary for an owner."""
    engine = build_engine()
    stats = engine.summarize(owner_id)

    print(f"Sprint {stats.current_index} ({stats.days_remaining_in_current} days remaining)")
    print(f"  Build:       {stats.build_count}")
    print(f"  Test:        {stats.test_count}")
    print(f"  PTO:         {stats.pto_count}")
    print(f"  Uncommitted: {stats.uncommitted_count}")
    print(f"  Valid:       {'yes' if stats.valid else 'no'}")
    for issue in stats.errors:
        print(f"  ❌ {issue.rule}: {issue.message}")
    for issue in stats.warnings:
        print(f"  ⚠️  {issue.rule}: {issue.message}")


@app.command()
def complete(
    owner_id: str = typer.Argument(..., help="Owner who finished their dashboard"),
    user_name: Optional[str] = typer.Option(None, help="Display name for the notification. Defaults to the owner id."),
):
    """Send the dashboard-completion notification. Exits with status 1 if it was not delivered."""
    from sprintkeeper.core.exceptions import SprintKeeperError

    service = build_commitment_service()
    try:
        result = service.complete_dashboard(owner_id, user_name=user_name)
    except SprintKeeperError as e:
        logger.error("complete_command_failed", owner_id=owner_id, error=str(e))
        print(f"❌ {type(e).__name__}: {e}")
        raise typer.Exit(code=1)

    if not result.delivered:
        print(f"❌ {owner_id}: dashboard completion was not delivered")
        raise typer.Exit(code=1)
    print(f"✅ {owner_id}: dashboard completion sent")


if __name__ == "__main__":
    app()
