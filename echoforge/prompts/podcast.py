"""NDJSON podcast script prompt template (one batch of episodes)."""


def build_batch_prompt(
    topic: str,
    total_episodes: int,
    first_episode: int,
    last_episode: int,
    host_a_name: str,
    host_b_name: str,
    include_project_header: bool = True,
    include_done_marker: bool = False,
    prior_episodes_recap: str | None = None,
    project_title: str | None = None,
) -> str:
    """Build the prompt for episodes ``first_episode..last_episode``.

    Args:
        topic: Podcast topic.
        total_episodes: Size of the whole series (for context).
        first_episode: First episode number this batch must produce.
        last_episode: Last episode number this batch must produce.
        host_a_name: Display name for HOST_A.
        host_b_name: Display name for HOST_B.
        include_project_header: Ask for the project header object.
        include_done_marker: Ask for a trailing done object.
        prior_episodes_recap: ASCII recap of earlier episodes, if any.
        project_title: Title the caller already chose, if any.

    Returns:
        Prompt string.
    """
    title = (project_title or "").strip()
    if first_episode == last_episode:
        episode_scope = f"episode {first_episode}"
    else:
        episode_scope = f"episodes {first_episode} to {last_episode}"

    schema = []
    if include_project_header:
        schema.append(
            """\
Project header (exactly once, first):
  {"type":"project","topic":string,"episode_count":int,"title":string,"description":string,
   "hosts":[{"id":"HOST_A","name":string,"persona":string},{"id":"HOST_B","name":string,"persona":string}]}"""
        )
    schema.append(
        """\
Episode header (once per episode, before any lines for that episode):
  {"type":"episode","episode_number":int,"title":string,"summary":string}"""
    )
    schema.append(
        """\
Dialogue line (many per episode):
  {"type":"line","episode_number":int,"speaker":"HOST_A"|"HOST_B","text":string}"""
    )
    schema.append(
        """\
Episode end marker (exactly once per episode):
  {"type":"episode_end","episode_number":int}"""
    )
    if include_done_marker:
        schema.append(
            """\
Done marker (exactly once at the end):
  {"type":"done"}"""
        )
    schema_text = "\n\n".join(f"{i}) {entry}" for i, entry in enumerate(schema, start=1))

    order = []
    if include_project_header:
        order.append("- Produce the project header FIRST.")
    order.append(f"- Then for episode_number {first_episode}..{last_episode} in order:")
    order.append("  - emit the episode header")
    order.append("  - emit 24 to 48 dialogue lines")
    order.append("  - emit episode_end")
    if include_done_marker:
        order.append("- Finally emit done.")
    else:
        order.append("- Do NOT emit a done marker; more episodes follow in a later request.")
    order_text = "\n".join(order)

    title_line = f"- Podcast title (use exactly): {title}\n" if title else ""
    recap_section = ""
    if prior_episodes_recap:
        recap_section = f"""
PRIOR EPISODES (already produced; continue the series, do not repeat them):
{prior_episodes_recap}
"""

    return f"""\
You are generating a multi-episode, two-host dialogue podcast script.
This request covers {episode_scope} of {total_episodes}.

CRITICAL OUTPUT RULES:
- Output MUST be NDJSON: exactly one JSON object per line.
- Do NOT wrap the output in Markdown code fences.
- Do NOT emit any non-JSON text.
- Do NOT include literal newline characters inside string values.
- Use only ASCII characters.
- Only emit objects for episode_number {first_episode}..{last_episode}.

SCHEMA (each line is ONE of these objects):
{schema_text}

CONTENT REQUIREMENTS:
- Topic: {topic}
- Total episodes in the series: {total_episodes}
{title_line}- Host A name: {host_a_name}
- Host B name: {host_b_name}
- Make each episode meaningfully different: new angle, new examples, and a brief recap tying back to prior episodes.
- Two-person conversation: alternate speakers frequently (no long monologues).
- Keep language natural and podcast-like.
{recap_section}
FORMAT REQUIREMENTS:
{order_text}

Now start streaming NDJSON. Remember: ONE JSON OBJECT PER LINE.
"""
