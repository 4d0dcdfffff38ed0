"""Hook entry points invoked by the editor."""

import typer

hook_app = typer.Typer(help="Editor hook entry points (JSON on stdin, JSON on stdout)")


@hook_app.command("session-start")
def hook_session_start():
    """Print the session context banner."""
    from mindvault.hooks.claude import run_hook

    run_hook("session-start")


@hook_app.command("post-tool-use")
def hook_post_tool_use():
    """Capture one tool invocation as an observation."""
    from mindvault.hooks.claude import run_hook

    run_hook("post-tool-use")


@hook_app.command("stop")
def hook_stop():
    """Record files changed in this session."""
    from mindvault.hooks.claude import run_hook

    run_hook("stop")
