"""Console front end for the task API.

Every invocation loads the list from the server, applies one action through
``TaskClient`` and redraws the board (active tasks, then completed ones).
The dark/light palette is the persisted client preference.
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .client import TaskClient
from .models import Priority

logger = logging.getLogger(__name__)

PALETTES: Dict[str, Dict[str, str]] = {
    "light": {
        "header": "bold #476EAE",
        "title": "black",
        "muted": "grey50",
        "done": "grey50 strike",
        "High": "red",
        "Medium": "dark_orange3",
        "Low": "green4",
        "error": "bold white on red",
    },
    "dark": {
        "header": "bold #A7C7FF",
        "title": "bright_white",
        "muted": "grey62",
        "done": "grey42 strike",
        "High": "bright_red",
        "Medium": "yellow",
        "Low": "bright_green",
        "error": "bold white on dark_red",
    },
}

PRIORITY_ALIASES = {
    "l": "Low", "low": "Low",
    "m": "Medium", "medium": "Medium", "med": "Medium",
    "h": "High", "high": "High",
}


def _priority(value: str) -> str:
    try:
        return PRIORITY_ALIASES[value.strip().lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(
            f"priority must be one of: {', '.join(p.value for p in Priority)}"
        )


def _task_table(title: str, tasks: List[dict], palette: Dict[str, str], completed: bool) -> Table:
    table = Table(title=f"{title} ({len(tasks)})", title_style=palette["header"],
                  title_justify="left", expand=True)
    table.add_column("ID", style=palette["muted"], no_wrap=True)
    table.add_column("Task", ratio=3)
    table.add_column("Priority", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    for t in tasks:
        text = Text(t.get("title", ""), style=palette["done"] if completed else palette["title"])
        if t.get("description"):
            text.append("\n" + t["description"], style=palette["muted"])
        priority = t.get("priority", "")
        table.add_row(
            t.get("id", ""),
            text,
            Text(priority, style=palette.get(priority, palette["muted"])),
            t.get("status", ""),
        )
    return table


def render(client: TaskClient, console: Optional[Console] = None) -> None:
    console = console or Console()
    palette = PALETTES["dark" if client.dark_mode else "light"]

    console.rule(f"[{palette['header']}]My Todo App[/]")
    if client.error:
        console.print(Panel(Text(client.error), style=palette["error"]))

    if not client.tasks:
        console.print(f"[{palette['muted']}]No tasks yet. Add one with `taskboard add TITLE`.[/]")
        return

    if client.pending_tasks:
        console.print(_task_table("Active Tasks", client.pending_tasks, palette, completed=False))
    if client.completed_tasks:
        console.print(_task_table("Completed Tasks", client.completed_tasks, palette, completed=True))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskboard", description="Track tasks from the terminal.")
    parser.add_argument("--api-url", default=None, help="task API base URL (default: $TASKBOARD_API_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log request failures")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("list", help="show all tasks")

    p_add = sub.add_parser("add", help="create a task")
    p_add.add_argument("title")
    p_add.add_argument("-d", "--description", default="")
    p_add.add_argument("-p", "--priority", type=_priority, default=Priority.MEDIUM.value)

    p_toggle = sub.add_parser("toggle", help="flip a task between Pending and Completed")
    p_toggle.add_argument("id")

    p_edit = sub.add_parser("edit", help="replace a task's fields")
    p_edit.add_argument("id")
    p_edit.add_argument("-t", "--title")
    p_edit.add_argument("-d", "--description")
    p_edit.add_argument("-p", "--priority", type=_priority)

    p_delete = sub.add_parser("delete", help="remove a task")
    p_delete.add_argument("id")

    sub.add_parser("theme", help="switch between dark and light display")
    return parser


def run(args: argparse.Namespace, client: TaskClient, console: Optional[Console] = None) -> int:
    client.load_tasks()

    command = args.command or "list"
    if command == "add":
        client.add_task(args.title, args.description, args.priority)
    elif command == "toggle":
        task = client.find(args.id)
        if task is None:
            client.error = f"No task with id {args.id}"
        else:
            client.toggle_task(task)
    elif command == "edit":
        fields = {k: v for k, v in (("title", args.title), ("description", args.description),
                                     ("priority", args.priority)) if v is not None}
        client.update_task(args.id, **fields)
    elif command == "delete":
        client.delete_task(args.id)
    elif command == "theme":
        client.toggle_dark_mode()

    render(client, console)
    return 1 if client.error else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(args, TaskClient(base_url=args.api_url))


if __name__ == "__main__":
    sys.exit(main())
