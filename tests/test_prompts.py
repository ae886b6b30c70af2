from echoforge.prompts.podcast import build_batch_prompt


def _prompt(**kwargs) -> str:
    defaults = dict(
        topic="Coral reefs",
        total_episodes=5,
        first_episode=1,
        last_episode=2,
        host_a_name="Ana",
        host_b_name="Ben",
    )
    defaults.update(kwargs)
    return build_batch_prompt(**defaults)


class TestBuildBatchPrompt:
    def test_first_batch(self):
        prompt = _prompt()
        assert "episodes 1 to 2 of 5" in prompt
        assert "Project header (exactly once, first)" in prompt
        assert "Produce the project header FIRST." in prompt
        assert "Do NOT emit a done marker" in prompt
        assert "PRIOR EPISODES" not in prompt
        assert "Topic: Coral reefs" in prompt
        assert "Host A name: Ana" in prompt
        assert "Host B name: Ben" in prompt

    def test_later_batch_without_header_with_recap(self):
        prompt = _prompt(
            first_episode=5, last_episode=5,
            include_project_header=False,
            prior_episodes_recap="Episode 4: Bleaching - Heat stress",
        )
        assert "episode 5 of 5" in prompt
        assert "Project header" not in prompt
        assert "1) Episode header" in prompt
        assert "PRIOR EPISODES" in prompt
        assert "Episode 4: Bleaching - Heat stress" in prompt
        assert "episode_number 5..5" in prompt

    def test_done_marker_requested(self):
        prompt = _prompt(include_done_marker=True)
        assert '{"type":"done"}' in prompt
        assert "Finally emit done." in prompt

    def test_title_line(self):
        assert "Podcast title (use exactly): Reef Life" in _prompt(project_title=" Reef Life ")
        assert "Podcast title" not in _prompt(project_title="  ")

    def test_prompt_is_ascii(self):
        assert _prompt().isascii()
