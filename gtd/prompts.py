"""Prompt templates sent to the agent."""

from __future__ import annotations


def interpolate(template: str, variables: dict[str, str]) -> str:
    """Replace every ``{{name}}`` placeholder with its value."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value)
    return result


COMMIT_MESSAGE_PROMPT = (
    "Summarize this diff as a git commit message (max 60 chars, no emoji, no prefix, "
    "lowercase start, imperative mood). Reply with ONLY the commit message, nothing else."
    "\n\n```diff\n{{diff}}\n```"
)

EXPLORE_PROMPT = """
You are helping a developer explore a new idea before any planning happens.

The developer just created a plan file with this seed:

```markdown
{{seed}}
```

{{diff}}

Explore the codebase and the idea:
1. Read the relevant code to understand how the idea fits in
2. Outline two or three possible approaches with their trade-offs
3. Note open questions the developer should answer

Write your findings into the plan file under a "## Exploration" section.
Do NOT implement anything and do NOT add action items yet.
"""

PLAN_PROMPT = """
You maintain the project plan at {{plan_file}}.

{{diff}}

{{plan}}

Update the plan:
1. Address every blockquote (`>`) comment the developer left, then remove it
2. Group the work into packages: one `### Package name` heading per package under
   a `## Action Items` section
3. Each package holds checkbox items: `- [ ] title` followed by indented detail lines
4. Keep items small enough to build and test in one pass
5. Keep an empty or existing `## Learnings` section at the end of the file

Only edit the plan file. Do NOT implement anything.
"""

TODO_COMMENTS_BLOCK = """
## Newly Added TODO Comments (Remove These)

The following TODO/FIX/FIXME/HACK/XXX comment lines were newly added in this diff.
For each one: convert it into a new action item in the plan file, then remove the
comment line from the source file.

{{todos}}
"""

BUILD_PROMPT = """
Implement the next package of the plan.

{{item}}

{{learnings}}

## Completed so far
{{completed}}

{{test_output}}

Steps:
1. Implement every unchecked item above
2. Tick each item (`- [x]`) in the plan file once it is done
3. Add anything surprising you learned to the `## Learnings` section of the plan file

Do NOT commit; the changes are committed for you.
"""

TEST_FIX_PROMPT = "Tests failed:\n```\n{{output}}\n```\nFix the failures."

TEST_FAILURE_SECTION = (
    "### Test Failure (attempt {{attempt}})\n\n```\n{{output}}\n```\n\n"
    "Fix the test failures above."
)

LEARN_PROMPT = """
The plan is finished. Persist what was learned so future work benefits from it.

## Learnings

{{learnings}}

Steps:
1. Read AGENTS.md (create it if missing)
2. Merge the learnings above into it, deduplicating with what is already there
3. Keep entries short and actionable

Only edit AGENTS.md.
"""
