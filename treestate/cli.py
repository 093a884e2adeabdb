#!/usr/bin/env python3
"""treestate CLI entrypoint."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

from treestate.engine import GitEngine
from treestate.git.diff import parse_diff
from treestate.git.models import DiffType, HunkAction, LineKind, Result
from treestate.lib.config import load_config
from treestate.lib.validate import SchemaError

console = Console()

LINE_STYLES = {
    LineKind.HEADER: "bold",
    LineKind.META: "cyan",
    LineKind.ADD: "green",
    LineKind.REMOVE: "red",
    LineKind.WARNING: "yellow",
}

# Characters for heatmap buckets, by commits per day
ACTIVITY_LEVELS = [(0, "·"), (1, "░"), (3, "▒"), (6, "▓"), (10, "█")]


def _fail(result: Result) -> int:
    """Print a failed result. Returns exit code 1."""
    where = f" ({result.step})" if result.step else ""
    console.print(f"[red]ERROR{where}:[/red] {result.message}")
    return 1


def _print_records(title: str, records, style: str) -> None:
    if not records:
        return
    console.print(f"[bold]{title}[/bold] ({len(records)})")
    for record in records:
        name = f"{record.old_path} -> {record.path}" if record.old_path else record.path
        console.print(f"  [{style}]{record.status_code}[/{style}] {name}")


async def cmd_status(args, engine: GitEngine) -> int:
    result = await engine.load_status(args.repo, force=args.force)
    if not result.ok:
        return _fail(result)
    snap = result.value

    if snap.total_count == 0:
        console.print("Working tree clean")
    _print_records("Conflicts", snap.conflicts, "red")
    _print_records("Staged", snap.staged, "green")
    _print_records("Unstaged", snap.unstaged, "yellow")
    _print_records("Untracked", snap.untracked, "dim")

    if snap.has_upstream:
        counts = await engine.ahead_behind(args.repo)
        if counts.ok:
            console.print(
                f"\n{counts.value.branch} -> {snap.tracking_branch}: "
                f"{counts.value.ahead} ahead, {counts.value.behind} behind"
            )
        commits = [("↑", c) for c in snap.outgoing_commits] + [("↓", c) for c in snap.incoming_commits]
    else:
        console.print("\nNo upstream")
        commits = [(" ", c) for c in snap.local_commits]

    for arrow, c in commits[:args.limit]:
        console.print(f"{c.graph_lane or '*'} {arrow} [yellow]{c.short_hash}[/yellow] {c.message} [dim]({c.author}, {c.relative_time})[/dim]")
    return 0


def _print_diff(text: str) -> None:
    parsed = parse_diff(text)
    for line in parsed.lines:
        old = line.old_line_number if line.old_line_number is not None else ""
        new = line.new_line_number if line.new_line_number is not None else ""
        prefix = {LineKind.ADD: "+", LineKind.REMOVE: "-", LineKind.CONTEXT: " "}.get(line.kind, "")
        row = Text(f"{old:>5} {new:>5} ", style="dim")
        row.append(prefix + line.text, style=LINE_STYLES.get(line.kind, ""))
        console.print(row)
    console.print(f"[green]+{parsed.additions}[/green] [red]-{parsed.deletions}[/red]")


async def cmd_diff(args, engine: GitEngine) -> int:
    if args.commit:
        result = await engine.load_commit_diff(args.repo, args.commit)
        if not result.ok:
            return _fail(result)
        _print_diff(result.value)
        return 0

    if not args.path:
        console.print("[red]ERROR:[/red] path or --commit required")
        return 2
    result = await engine.load_diff(args.repo, args.path, args.type)
    if not result.ok:
        return _fail(result)
    if result.value.binary:
        console.print("Binary file")
        return 0
    _print_diff(result.value.text)
    return 0


async def cmd_hunk(args, engine: GitEngine) -> int:
    hunks = await engine.load_hunks(args.repo, args.path, args.type)
    if not hunks.ok:
        return _fail(hunks)

    if args.index is None:
        for i, hunk in enumerate(hunks.value):
            console.print(f"[bold]{i}[/bold] {hunk.header}")
        return 0

    if not 0 <= args.index < len(hunks.value):
        console.print(f"[red]ERROR:[/red] hunk {args.index} out of range (0-{len(hunks.value) - 1})")
        return 2
    hunk = hunks.value[args.index]
    result = await engine.apply_hunk(args.repo, args.path, args.type, args.action, hunk.patch_text)
    if not result.ok:
        return _fail(result)
    console.print(f"{args.action} hunk {args.index}: {hunk.header}")
    return 0


async def cmd_conflict(args, engine: GitEngine) -> int:
    result = await engine.load_conflict(args.repo, args.path)
    if not result.ok:
        return _fail(result)
    versions = result.value
    for label, content in (("base", versions.base), ("ours", versions.ours), ("theirs", versions.theirs)):
        console.rule(label)
        console.print(Text(content or "(missing)"))
    return 0


async def cmd_resolve(args, engine: GitEngine) -> int:
    if args.take:
        versions = await engine.load_conflict(args.repo, args.path)
        if not versions.ok:
            return _fail(versions)
        content = getattr(versions.value, args.take)
    else:
        content = Path(args.file).read_text(encoding="utf-8")

    result = await engine.resolve_conflict(args.repo, args.path, content)
    if not result.ok:
        return _fail(result)
    console.print(f"Resolved {args.path}")
    return 0


async def cmd_commit(args, engine: GitEngine) -> int:
    if args.amend:
        result = await engine.amend(args.repo, args.message)
    elif args.all:
        result = await engine.commit_all(args.repo, args.message)
    else:
        result = await engine.commit(args.repo, args.message)
    if not result.ok:
        return _fail(result)
    console.print("Committed")
    return 0


async def cmd_undo(args, engine: GitEngine) -> int:
    result = await engine.undo_last_commit(args.repo)
    if not result.ok:
        return _fail(result)
    console.print("Undid last commit; changes are staged")
    return 0


async def cmd_revert(args, engine: GitEngine) -> int:
    result = await engine.revert_commit(args.repo, args.hash)
    if not result.ok:
        return _fail(result)
    console.print(f"Reverted {args.hash}")
    return 0


async def cmd_stash(args, engine: GitEngine) -> int:
    action = args.stash_cmd or "list"

    if action == "list":
        result = await engine.stash_list(args.repo)
        if not result.ok:
            return _fail(result)
        if not result.value:
            console.print("No stashes")
        for stash in result.value:
            console.print(f"[yellow]{stash.ref}[/yellow] {stash.message} [dim]({stash.relative_time})[/dim]")
        return 0

    if action == "push":
        result = await engine.stash_changes(
            args.repo, path=args.path, message=args.message, include_untracked=args.include_untracked
        )
    elif action == "show":
        result = await engine.stash_show(args.repo, args.ref)
        if result.ok:
            _print_diff(result.value)
            return 0
    elif action == "apply":
        result = await engine.stash_apply(args.repo, args.ref)
    elif action == "pop":
        result = await engine.stash_pop(args.repo, args.ref)
    else:
        result = await engine.stash_drop(args.repo, args.ref)

    if not result.ok:
        return _fail(result)
    if result.value is not None and result.value.conflicts:
        kept = " (stash kept)" if result.value.kept else ""
        console.print(f"[yellow]Applied with conflicts{kept}[/yellow]")
        return 1
    console.print(f"stash {action}: done")
    return 0


def _activity_char(count: int) -> str:
    char = ACTIVITY_LEVELS[0][1]
    for threshold, level in ACTIVITY_LEVELS:
        if count >= threshold:
            char = level
    return char


async def cmd_activity(args, engine: GitEngine) -> int:
    result = await engine.activity(args.repo, days=args.days)
    if not result.ok:
        return _fail(result)
    days = result.value.series
    # one row per week, oldest first
    for start in range(0, len(days), 7):
        week = days[start:start + 7]
        console.print(f"[dim]{week[0].date}[/dim] " + "".join(_activity_char(d.count) for d in week))
    console.print(f"{result.value.total} commits in {len(days)} days")
    return 0


async def cmd_branches(args, engine: GitEngine) -> int:
    if args.switch:
        result = await engine.switch_branch(args.repo, args.switch)
        if not result.ok:
            for line in getattr(result.error, "changes", []):
                console.print(f"  {line}")
            return _fail(result)
        console.print(f"Switched to {result.value}")
        return 0

    result = await engine.load_branches(args.repo)
    if not result.ok:
        return _fail(result)
    table = Table(show_header=True, header_style="bold")
    table.add_column("")
    table.add_column("Branch")
    table.add_column("Commit")
    table.add_column("Date")
    table.add_column("Subject")
    for b in result.value:
        table.add_row(
            "*" if b.is_current else "",
            Text(b.name, style="dim" if b.is_remote else ""),
            b.commit, b.date, b.message,
        )
    console.print(table)
    return 0


async def cmd_worktrees(args, engine: GitEngine) -> int:
    action = args.worktree_cmd or "list"

    if action == "add":
        result = await engine.add_worktree(args.repo, args.path, args.branch, create_branch=args.new)
        if not result.ok:
            return _fail(result)
        console.print(f"Added worktree {result.value} on {args.branch}")
        return 0

    if action == "remove":
        result = await engine.remove_worktree(args.repo, args.path, force=args.force)
        if not result.ok:
            return _fail(result)
        console.print(f"Removed worktree {args.path}")
        return 0

    result = await engine.load_worktrees(args.repo)
    if not result.ok:
        return _fail(result)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Path")
    table.add_column("Branch")
    table.add_column("HEAD")
    for wt in result.value:
        if wt.is_bare:
            branch = "(bare)"
        elif wt.is_detached:
            branch = "(detached)"
        else:
            branch = wt.branch or ""
        label = wt.path + (" (main)" if wt.is_main else "") + (" (locked)" if wt.is_locked else "")
        table.add_row(Text(label, style="bold" if wt.is_main else ""), branch, (wt.head or "")[:7])
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='treestate', description='Working-tree state engine CLI')
    parser.add_argument('--repo', '-C', default='.', help='Repository path (default: .)')
    parser.add_argument('--config', help='Config file (default: $TREESTATE_CONFIG)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    diff_types = [t.value for t in DiffType]

    # treestate status
    p_status = subparsers.add_parser('status', help='Show working tree status')
    p_status.add_argument('--force', '-f', action='store_true', help='Bypass the cache')
    p_status.add_argument('--limit', '-n', type=int, default=10, help='Commits to show')
    p_status.set_defaults(func=cmd_status)

    # treestate diff
    p_diff = subparsers.add_parser('diff', help='Show a file or commit diff')
    p_diff.add_argument('path', nargs='?', help='File path relative to the repository')
    p_diff.add_argument('--type', '-t', choices=diff_types, default='unstaged')
    p_diff.add_argument('--commit', help='Show a commit instead')
    p_diff.set_defaults(func=cmd_diff)

    # treestate hunk
    p_hunk = subparsers.add_parser('hunk', help='List hunks, or stage/unstage/discard one')
    p_hunk.add_argument('path', help='File path relative to the repository')
    p_hunk.add_argument('index', nargs='?', type=int, help='Hunk index (omit to list)')
    p_hunk.add_argument('--type', '-t', choices=diff_types, default='unstaged')
    p_hunk.add_argument('--action', '-a', choices=[a.value for a in HunkAction], default='stage')
    p_hunk.set_defaults(func=cmd_hunk)

    # treestate conflict
    p_conflict = subparsers.add_parser('conflict', help='Show base/ours/theirs for a conflicted file')
    p_conflict.add_argument('path')
    p_conflict.set_defaults(func=cmd_conflict)

    # treestate resolve
    p_resolve = subparsers.add_parser('resolve', help='Write resolved content and stage it')
    p_resolve.add_argument('path')
    source = p_resolve.add_mutually_exclusive_group(required=True)
    source.add_argument('--take', choices=['base', 'ours', 'theirs'], help='Use one side as-is')
    source.add_argument('--file', help='Read resolved content from a file')
    p_resolve.set_defaults(func=cmd_resolve)

    # treestate commit
    p_commit = subparsers.add_parser('commit', help='Commit staged changes')
    p_commit.add_argument('--message', '-m', help='Commit message')
    p_commit.add_argument('--all', '-a', action='store_true', help='Stage everything first')
    p_commit.add_argument('--amend', action='store_true', help='Amend the last commit')
    p_commit.set_defaults(func=cmd_commit)

    # treestate undo
    p_undo = subparsers.add_parser('undo', help='Undo the last commit, keeping changes staged')
    p_undo.set_defaults(func=cmd_undo)

    # treestate revert
    p_revert = subparsers.add_parser('revert', help='Revert a commit')
    p_revert.add_argument('hash')
    p_revert.set_defaults(func=cmd_revert)

    # treestate stash
    p_stash = subparsers.add_parser('stash', help='Stash operations (default: list)')
    p_stash.set_defaults(func=cmd_stash)
    stash_sub = p_stash.add_subparsers(dest='stash_cmd')

    p_stash_push = stash_sub.add_parser('push', help='Stash changes')
    p_stash_push.add_argument('path', nargs='?', help='Stash a single file')
    p_stash_push.add_argument('--message', '-m')
    p_stash_push.add_argument('--include-untracked', '-u', action='store_true')

    stash_sub.add_parser('list', help='List stashes')
    for name, help_text in (
        ('show', 'Show a stash diff'),
        ('apply', 'Apply a stash and keep it'),
        ('pop', 'Apply a stash and drop it'),
        ('drop', 'Drop a stash'),
    ):
        p = stash_sub.add_parser(name, help=help_text)
        p.add_argument('ref', nargs='?', default='stash@{0}')

    # treestate activity
    p_activity = subparsers.add_parser('activity', help='Daily commit activity')
    p_activity.add_argument('--days', '-d', type=int, default=None, help='Lookback window')
    p_activity.set_defaults(func=cmd_activity)

    # treestate branches
    p_branches = subparsers.add_parser('branches', help='List or switch branches')
    p_branches.add_argument('--switch', '-s', metavar='BRANCH', help='Check out a branch')
    p_branches.set_defaults(func=cmd_branches)

    # treestate worktrees
    p_worktrees = subparsers.add_parser('worktrees', help='Worktree operations (default: list)')
    p_worktrees.set_defaults(func=cmd_worktrees)
    worktree_sub = p_worktrees.add_subparsers(dest='worktree_cmd')

    worktree_sub.add_parser('list', help='List worktrees')

    p_wt_add = worktree_sub.add_parser('add', help='Check out a branch in a new worktree')
    p_wt_add.add_argument('path')
    p_wt_add.add_argument('branch')
    p_wt_add.add_argument('--new', '-b', action='store_true', help='Create the branch')

    p_wt_remove = worktree_sub.add_parser('remove', help='Remove a linked worktree')
    p_wt_remove.add_argument('path')
    p_wt_remove.add_argument('--force', '-f', action='store_true')

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(Path(args.config) if args.config else None)
    except SchemaError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        return 2

    engine = GitEngine(config=config)
    engine.set_repository(args.repo)
    return asyncio.run(args.func(args, engine))


if __name__ == '__main__':
    sys.exit(main())
