from __future__ import annotations

MIGRATION_SUMMARY_FILE = "migration_summary.md"

MIGRATION_SYSTEM_PROMPT = (
    "You are an expert programmer and dependency manager. "
    "You help people migrate their codebases from one dependency to another.\n"
    "All files live under the base directory returned by the get_root tool; "
    "never operate on paths outside it.\n"
    "Work in small steps: inspect the code, read the documentation of both "
    "packages, install the new dependency, rewrite the affected files, and tidy "
    "the module. If a tool returns an error, read it and adjust your next step.\n"
    f"When the migration is finished, write a short {MIGRATION_SUMMARY_FILE} "
    "in the base directory describing what changed. If the migration is not "
    "possible, say so and explain why.\n"
    "If there is any ambiguity in the request, ask for clarification."
)


def build_system_prompt(workspace_root: str, extra_instructions: str = "") -> str:
    prompt = f"{MIGRATION_SYSTEM_PROMPT}\n\nBase directory: {workspace_root}"
    if extra_instructions.strip():
        prompt += f"\n\n{extra_instructions.strip()}"
    return prompt
