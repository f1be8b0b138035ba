from patchwright.agents.patcher import build_patch_prompt
from patchwright.agents.reviewer import build_review_prompt
from patchwright.collector import IssueSnapshot, PullRequestSnapshot


def _issue(**overrides) -> IssueSnapshot:
    data = dict(
        issue_number=42,
        title="Button does nothing",
        body="Clicking `Save` is a no-op; expected $HOME/`rm -rf` to be quoted.",
        file_list=("README.md", "src/app.js"),
    )
    data.update(overrides)
    return IssueSnapshot(**data)


def test_patch_prompt_embeds_metadata_verbatim():
    snap = _issue()
    prompt = build_patch_prompt(snap)

    assert "Issue #42" in prompt
    assert "Title: Button does nothing" in prompt
    assert snap.body in prompt
    assert "README.md, src/app.js" in prompt


def test_patch_prompt_states_contract():
    prompt = build_patch_prompt(_issue())

    for key in ('"skip"', '"reason"', '"branch"', '"commitMessage"', '"changes"', '"path"', '"content"'):
        assert key in prompt
    assert '"branch": "autofix/issue-42"' in prompt
    assert "single JSON object and nothing else" in prompt
    assert "no code fence" in prompt
    assert 'set "skip": true' in prompt
    assert "Keep changes minimal and match existing code style." in prompt


def test_patch_prompt_is_deterministic():
    assert build_patch_prompt(_issue()) == build_patch_prompt(_issue())


def test_patch_prompt_limits_listed_files():
    files = tuple(f"f{i:03}.txt" for i in range(200))
    prompt = build_patch_prompt(_issue(file_list=files), max_prompt_files=80)

    assert "f079.txt" in prompt
    assert "f080.txt" not in prompt


def test_patch_prompt_changes_with_limit():
    files = tuple(f"f{i}.txt" for i in range(10))
    snap = _issue(file_list=files)
    assert build_patch_prompt(snap, max_prompt_files=3) != build_patch_prompt(snap, max_prompt_files=5)


def _pr(**overrides) -> PullRequestSnapshot:
    data = dict(pr_number=9, title="Add cache", body="Adds an LRU.", diff_text="+cache = {}\n")
    data.update(overrides)
    return PullRequestSnapshot(**data)


def test_review_prompt_embeds_pr_and_diff():
    prompt = build_review_prompt(_pr())

    assert "PR #9" in prompt
    assert "Title: Add cache" in prompt
    assert "Adds an LRU." in prompt
    assert "```diff\n+cache = {}\n\n```" in prompt


def test_review_prompt_placeholder_for_empty_body():
    prompt = build_review_prompt(_pr(body=""))
    assert "(No description provided)" in prompt


def test_review_prompt_states_contract():
    prompt = build_review_prompt(_pr())

    for key in ('"summary"', '"suggestions"', '"severity"', '"suggestedCode"', '"approved"'):
        assert key in prompt
    assert "no code fence" in prompt


def test_review_prompt_is_deterministic():
    assert build_review_prompt(_pr()) == build_review_prompt(_pr())
