"""Command-line interface for Trellis.

Usage::

    trellis new blog
    trellis generate entity Post title:string[searchable] author_id:uuid->User
    trellis update --skip-conflicts
    trellis addon add audit-log
    trellis check
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich.prompt import Confirm, Prompt
from rich.table import Table

from trellis import __version__
from trellis import addons
from trellis.config import (
    BackendSection,
    ProjectSection,
    TrellisConfig,
)
from trellis.errors import TrellisError
from trellis.scaffolder.entity import parse_entity
from trellis.scaffolder.generator import EntityGenerator, ProjectGenerator, project_marker_checks
from trellis.scaffolder.markers import validate_markers
from trellis.tracking.manifest import Manifest
from trellis.tracking.relations import load_pending
from trellis.tracking.updater import (
    ConflictResolution,
    UpdateItem,
    UpdatePlan,
    apply_plan,
    generate_diff,
    initialize_baseline,
    plan_update,
)
from trellis.utils import (
    console,
    print_error,
    print_section,
    print_success,
    print_summary_table,
    print_warning,
)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_new(args: argparse.Namespace) -> None:
    backend = BackendSection(port=args.port, database_url=args.database_url, api_prefix=args.api_prefix)
    config = TrellisConfig(
        project=ProjectSection(name=args.name, description=args.description),
        backend=backend,
    )
    print_section(f"Creating project '{args.name}'")
    project_root = ProjectGenerator(config).generate(args.output)
    print_success(f"Project created at {project_root}")
    console.print(f"\n  cd {project_root}\n  trellis generate entity Post title:string body:text?\n")


def cmd_generate_entity(args: argparse.Namespace) -> None:
    root = Path(args.project_dir)
    entity = parse_entity(args.name, args.fields)
    config = TrellisConfig.load_with_env(root, args.env)
    print_section(f"Generating entity '{entity.class_name}'")
    EntityGenerator(root, config=config).generate(entity)


def _print_plan(plan: UpdatePlan) -> None:
    print_summary_table(plan.counts(), title="Update plan")
    for item in plan.deleted:
        print_warning(f"  {item.output_path} was deleted and will not be restored")
    for item in plan.new_but_present:
        print_warning(f"  {item.output_path} exists but is not tracked")


def _conflict_resolver(args: argparse.Namespace):
    if args.overwrite_conflicts:
        return lambda item: ConflictResolution.OVERWRITE
    if args.skip_conflicts:
        return lambda item: ConflictResolution.SKIP

    def ask(item: UpdateItem) -> ConflictResolution:
        while True:
            choice = Prompt.ask(
                f"[yellow]Conflict[/yellow] in {item.output_path}",
                choices=["overwrite", "skip", "diff"],
                default="skip",
            )
            if choice == "diff":
                diff = generate_diff(item.current_content or "", item.new_content, item.output_path)
                console.print(diff, markup=False, highlight=False)
                continue
            return ConflictResolution(choice)

    return ask


def _existing_confirmer(args: argparse.Namespace):
    if args.overwrite_conflicts:
        return lambda item: True
    if args.skip_conflicts:
        return lambda item: False
    return lambda item: Confirm.ask(
        f"{item.output_path} exists but is not tracked. Replace it with the template?",
        default=False,
    )


def cmd_update(args: argparse.Namespace) -> None:
    root = Path(args.project_dir)

    if args.init:
        config = TrellisConfig.load(root)
        manifest = initialize_baseline(root, config)
        if manifest is None:
            print_warning("A manifest already exists; nothing to initialise.")
            return
        print_success(f"Baseline created with {len(manifest.files)} tracked file(s).")
        return

    plan = plan_update(root)
    _print_plan(plan)
    if not plan.has_changes:
        print_success("Everything is up to date.")
        return
    if args.dry_run:
        return

    report = apply_plan(
        root,
        plan,
        Manifest.load(root),
        resolve_conflict=_conflict_resolver(args),
        confirm_existing=_existing_confirmer(args),
    )
    print_success(f"Update complete: {report.written} file(s) written, {len(report.skipped)} skipped.")


def cmd_addon(args: argparse.Namespace) -> None:
    root = Path(args.project_dir)
    kind = addons.parse_addon(args.name)
    if args.addon_command == "add":
        addons.install(root, kind)
    else:
        addons.uninstall(root, kind)


def cmd_check(args: argparse.Namespace) -> None:
    root = Path(args.project_dir)
    TrellisConfig.load(root)
    validate_markers(project_marker_checks(root))
    print_success("All markers present.")

    pending = load_pending(root)
    if pending:
        table = Table(title="Pending relations", show_header=True, header_style="bold cyan")
        table.add_column("Source")
        table.add_column("Target")
        table.add_column("Kind")
        for relation in pending:
            table.add_row(relation.source_entity, relation.target_entity, relation.relation_kind.value)
        console.print(table)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trellis",
        description="Trellis -- FastAPI project scaffolding that stays updatable",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  trellis new blog\n"
            "  trellis generate entity Post title:string body:text? author_id:uuid->User\n"
            "  trellis update --init\n"
            "  trellis update --skip-conflicts\n"
            "  trellis addon add soft-delete\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--project-dir", "-C",
        default=".",
        help="Project root (default: current directory)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    new = subparsers.add_parser("new", help="Scaffold a new project")
    new.add_argument("name", help="Project name (also the directory name)")
    new.add_argument("--output", "-o", default=".", help="Parent directory (default: .)")
    new.add_argument("--description", default=None, help="Short project description")
    new.add_argument("--port", type=int, default=8000, help="Backend port (default: 8000)")
    new.add_argument(
        "--database-url",
        default="sqlite:///./app.db",
        help="SQLAlchemy database URL (default: sqlite:///./app.db)",
    )
    new.add_argument("--api-prefix", default=None, help="API route prefix (default: /api)")
    new.set_defaults(func=cmd_new)

    generate = subparsers.add_parser("generate", help="Generate code in an existing project")
    generate_sub = generate.add_subparsers(dest="generate_command", required=True)
    entity = generate_sub.add_parser(
        "entity",
        help="Generate an entity model and router",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Field forms:\n"
            "  title:string              plain column\n"
            "  body:text?                optional column\n"
            "  slug:string[unique,searchable]\n"
            "  author_id:uuid->User      belongs-to foreign key\n"
            "  comments:has_many->Comment\n"
            "  tags:m2m->Tag\n"
        ),
    )
    entity.add_argument("name", help="Entity name, e.g. Post")
    entity.add_argument("fields", nargs="*", help="Field specs (name:type)")
    entity.add_argument("--env", default=None, help="Configuration overlay to apply (default: $TRELLIS_ENV)")
    entity.set_defaults(func=cmd_generate_entity)

    update = subparsers.add_parser("update", help="Update scaffold files to the current templates")
    update.add_argument("--init", action="store_true", help="Record the current files as the baseline")
    update.add_argument("--dry-run", action="store_true", help="Show the plan without writing")
    resolution = update.add_mutually_exclusive_group()
    resolution.add_argument(
        "--overwrite-conflicts", action="store_true", help="Replace conflicting files without asking"
    )
    resolution.add_argument(
        "--skip-conflicts", action="store_true", help="Keep conflicting files without asking"
    )
    update.set_defaults(func=cmd_update)

    addon = subparsers.add_parser("addon", help="Install or remove addons")
    addon_sub = addon.add_subparsers(dest="addon_command", required=True)
    for action, help_text in (("add", "Install an addon"), ("remove", "Remove an addon")):
        sub = addon_sub.add_parser(action, help=help_text)
        sub.add_argument("name", help=", ".join(kind.value for kind in addons.AddonKind))
        sub.set_defaults(func=cmd_addon)

    check = subparsers.add_parser("check", help="Verify every marker the generators rely on")
    check.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``trellis`` and ``python -m trellis``."""
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except TrellisError as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        print_error("Aborted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
