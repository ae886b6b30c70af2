import asyncio
import logging
import sys

import click

from echoforge.config import get_settings
from echoforge.db import get_session_factory, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """echoforge - two-host podcast series generator"""
    ctx.ensure_object(dict)
    settings = get_settings()
    ctx.obj["settings"] = settings
    init_db(settings.database_url)
    ctx.obj["session_factory"] = get_session_factory(settings.database_url)


def _project_store(ctx: click.Context):
    from echoforge.services.project_store import ProjectStore

    return ProjectStore(ctx.obj["session_factory"])


@cli.command(name="init-db")
@click.pass_context
def init_db_cmd(ctx: click.Context) -> None:
    """Initialize the database schema."""
    click.echo("Database initialized.")


@cli.command()
@click.option("--topic", required=True, help="Series topic.")
@click.option("--episodes", type=click.IntRange(min=1), default=3, show_default=True,
              help="Number of episodes to generate.")
@click.option("--host-a", default="Host A", show_default=True, help="Name of the first host.")
@click.option("--host-b", default="Host B", show_default=True, help="Name of the second host.")
@click.option("--title", default=None, help="Optional series title.")
@click.pass_context
def generate(
    ctx: click.Context, topic: str, episodes: int, host_a: str, host_b: str, title: str | None,
) -> None:
    """Generate a podcast series, printing progress as it streams in."""
    from echoforge.models.schemas import PodcastGenerationRequest

    settings = ctx.obj["settings"]
    try:
        settings.require_api_key()
    except ValueError as e:
        click.echo(f"[FAIL] {e}", err=True)
        sys.exit(1)

    request = PodcastGenerationRequest(
        topic=topic,
        episode_count=episodes,
        host_a_name=host_a,
        host_b_name=host_b,
        project_title=title,
    )
    project = asyncio.run(_run_generation(settings, _project_store(ctx), request))

    if project is None:
        click.echo("[FAIL] generation produced no output", err=True)
        sys.exit(1)
    if project.status.value == "failed":
        click.echo(f"[FAIL] {project.id}: {project.error_message}", err=True)
        sys.exit(1)
    click.echo(f"[OK] {project.id}: {project.title or project.topic} "
               f"({len(project.episodes)} episodes, {project.status.value})")


async def _run_generation(settings, store, request):
    from echoforge.core.generation import PodcastGenerationService, new_project
    from echoforge.core.supervisor import GenerationSupervisor
    from echoforge.services.gemini_client import GeminiClient

    service = PodcastGenerationService(
        GeminiClient(settings), store, autosave_delay=settings.autosave_delay,
    )
    supervisor = GenerationSupervisor(service)
    initial = new_project(request)
    supervisor.start(initial, request)
    subscription = supervisor.subscribe(initial.id)

    latest = None
    reported: dict[int, str] = {}
    try:
        async for snapshot in subscription:
            for episode in snapshot.episodes:
                if reported.get(episode.number) != episode.status.value:
                    reported[episode.number] = episode.status.value
                    click.echo(f"  Episode {episode.number} [{episode.status.value}] "
                               f"{episode.title or '(untitled)'} ({len(episode.lines)} lines)")
            latest = snapshot
    except asyncio.CancelledError:
        supervisor.cancel(initial.id)
        raise
    finally:
        subscription.close()
        await supervisor.wait()
    return latest


@cli.command(name="list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List saved projects, newest first."""
    projects = asyncio.run(_project_store(ctx).load_all())
    if not projects:
        click.echo("No projects found.")
        return

    for p in projects:
        title = (p.title or p.topic)[:50]
        click.echo(
            f"{p.id}  {p.status.value:<10}  {len(p.episodes):>2}/{p.episode_count_requested:<2} "
            f"eps  {p.last_updated_at:%Y-%m-%d %H:%M}  {title}"
        )


@cli.command()
@click.option("--project-id", required=True, help="Project ID.")
@click.pass_context
def show(ctx: click.Context, project_id: str) -> None:
    """Show a project's episodes and transcripts."""
    try:
        project = asyncio.run(_project_store(ctx).load(project_id))
    except ValueError as e:
        click.echo(f"[FAIL] {e}", err=True)
        sys.exit(1)

    click.echo(f"Title:    {project.title or '(untitled)'}")
    click.echo(f"Topic:    {project.topic}")
    click.echo(f"Status:   {project.status.value}")
    if project.description:
        click.echo(f"About:    {project.description}")
    if project.error_message:
        click.echo(f"Error:    {project.error_message}")
    click.echo(f"Hosts:    {', '.join(h.name for h in project.hosts)}")

    for episode in project.episodes:
        click.echo("")
        click.echo(f"Episode {episode.number}: {episode.title or '(untitled)'} [{episode.status.value}, "
                   f"audio {episode.audio_status.value}]")
        if episode.summary:
            click.echo(f"  {episode.summary}")
        for line in episode.lines:
            click.echo(f"  {project.host_name(line.speaker) or line.speaker.value}: {line.text}")


@cli.command()
@click.option("--project-id", required=True, help="Project ID.")
@click.option("--episode", "episode_number", type=int, required=True, help="Episode number.")
@click.pass_context
def audio(ctx: click.Context, project_id: str, episode_number: int) -> None:
    """Generate audio for one completed episode."""
    settings = ctx.obj["settings"]
    store = _project_store(ctx)
    try:
        settings.require_api_key()
        project = asyncio.run(store.load(project_id))
    except ValueError as e:
        click.echo(f"[FAIL] {e}", err=True)
        sys.exit(1)

    episode = project.episode_by_number(episode_number)
    if episode is None:
        click.echo(f"[FAIL] Episode {episode_number} not found in {project_id}", err=True)
        sys.exit(1)

    final = asyncio.run(_run_audio(settings, store, project_id, episode.id))
    result = final.episode_by_id(episode.id) if final else None
    if result is None or result.audio is None or result.audio.status.value != "ready":
        message = result.audio.error_message if result and result.audio else "no audio produced"
        click.echo(f"[FAIL] {project_id} episode {episode_number}: {message}", err=True)
        sys.exit(1)
    click.echo(f"[OK] {project_id} episode {episode_number} -> {result.audio.file_name}")


async def _run_audio(settings, store, project_id: str, episode_id: str):
    from echoforge.core.audio import EpisodeAudioService
    from echoforge.core.retry import RetryPolicy
    from echoforge.core.supervisor import AudioSupervisor
    from echoforge.services.audio_store import EpisodeAudioStore
    from echoforge.services.gemini_client import GeminiSpeechClient, is_retryable_error

    service = EpisodeAudioService(
        GeminiSpeechClient(settings),
        store,
        EpisodeAudioStore(settings.audio_dir),
        should_retry=is_retryable_error,
        retry_policy=RetryPolicy.from_settings(settings),
        host_a_voice=settings.host_a_voice,
        host_b_voice=settings.host_b_voice,
    )
    supervisor = AudioSupervisor(service)
    supervisor.start(project_id, episode_id)
    subscription = supervisor.subscribe((project_id, episode_id))

    latest = None
    try:
        async for snapshot in subscription:
            latest = snapshot
    finally:
        subscription.close()
        await supervisor.wait()
    return latest


@cli.command()
@click.option("--project-id", required=True, help="Project ID.")
@click.pass_context
def delete(ctx: click.Context, project_id: str) -> None:
    """Delete a project and its audio files."""
    from echoforge.services.audio_store import EpisodeAudioStore

    settings = ctx.obj["settings"]
    asyncio.run(_project_store(ctx).delete(project_id))
    EpisodeAudioStore(settings.audio_dir).delete_all_audio(project_id)
    click.echo(f"[OK] deleted {project_id}")


@cli.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List Gemini models that support generateContent."""
    from echoforge.services.gemini_client import GeminiModelsClient

    settings = ctx.obj["settings"]
    try:
        settings.require_api_key()
        descriptors = asyncio.run(GeminiModelsClient(settings).list_models())
    except Exception as e:
        click.echo(f"[FAIL] {e}", err=True)
        sys.exit(1)

    for m in descriptors:
        if "generateContent" not in m.supported_generation_methods:
            continue
        click.echo(f"{m.id:<40} {m.display_name or ''}")

