"""CLI entrypoint for the event store."""

import argparse
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from eventstore.config.loader import DEFAULT_CONFIG_PATH, load_config_or_defaults
from eventstore.database.event_repo import decode_parameters, list_events
from eventstore.database.sqlite_client import session_context
from eventstore.errors import ConfigError, RenderError
from eventstore.runners.listen import consume_file, load_templates_or_exit
from eventstore.runners.listen import main as listen_main
from eventstore.templates.models import EventLevel
from eventstore.templates.renderer import TemplateRenderer, check_templates
from eventstore.utils.logging import get_logger, setup_logging
from eventstore.utils.time import parse_since, utc_now

logger = get_logger(__name__)

LEVEL_NAMES = {level.name: level for level in EventLevel}


def _load_runtime_config(args: argparse.Namespace) -> Dict[str, Any]:
    config_path = getattr(args, "config", None)
    return load_config_or_defaults(Path(config_path) if config_path else None)


def _catalog_path(args: argparse.Namespace, config: Dict[str, Any]) -> str:
    return getattr(args, "catalog", None) or config["templates"]["path"]


def _parse_params(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """Parse key=value pairs; values are read as YAML scalars (numbers, booleans, strings)."""
    params: Dict[str, Any] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Invalid --param '{pair}'. Use key=value")
        key, raw = pair.split("=", 1)
        try:
            params[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            params[key] = raw
    return params


def cmd_templates_list(args: argparse.Namespace) -> None:
    """List loaded event templates."""
    config = _load_runtime_config(args)
    store = load_templates_or_exit(_catalog_path(args, config))

    if not len(store):
        print("No templates configured.")
        return

    print(f"{'Code':<40} {'Level':<8} {'Title':<50}")
    print("-" * 100)
    for code in store.codes():
        template = store[code]
        print(f"{code:<40} {template.event_level.name:<8} {template.title:<50}")


def cmd_templates_check(args: argparse.Namespace) -> None:
    """Compile every template and report syntax errors."""
    config = _load_runtime_config(args)
    store = load_templates_or_exit(_catalog_path(args, config))

    problems = check_templates(store, TemplateRenderer())
    if not problems:
        print(f"✓ {len(store)} template(s) OK")
        return

    print(f"✗ {len(problems)} problem(s) found:")
    for code, field, error in problems:
        print(f"  - {code} [{field}]: {error}")
    sys.exit(1)


def cmd_templates_render(args: argparse.Namespace) -> None:
    """Render one template with the given parameters."""
    config = _load_runtime_config(args)
    store = load_templates_or_exit(_catalog_path(args, config))

    template = store.get(args.code)
    if template is None:
        logger.error(f"Template not found: {args.code}")
        sys.exit(1)

    params = _parse_params(args.param)
    renderer = TemplateRenderer()
    try:
        title = renderer.render(template.title, params)
        message = renderer.render(template.message, params)
    except RenderError as e:
        logger.error(f"Cannot render {args.code}: {e}")
        sys.exit(1)

    print(f"Level:   {template.event_level.name}")
    print(f"Title:   {title}")
    print(f"Message: {message}")


def cmd_consume(args: argparse.Namespace) -> None:
    """Replay a JSON-lines file of bus envelopes into the store."""
    input_path = Path(args.input)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")

    config_path = Path(args.config) if args.config else None
    summary = consume_file(input_path, config_path)

    print(f"Published:     {summary['published']}")
    print(f"Handled:       {summary['handled']}")
    print(f"Failed:        {summary['failed']}")
    print(f"Dead-lettered: {summary['dead_lettered']}")


def cmd_listen(args: argparse.Namespace) -> None:
    """Run the background listener fed from stdin."""
    listen_main(Path(args.config) if args.config else None)


def cmd_events_list(args: argparse.Namespace) -> None:
    """List stored events."""
    config = _load_runtime_config(args)
    sqlite_path = config["storage"]["sqlite_path"]

    level = LEVEL_NAMES[args.level] if args.level else None
    since = utc_now() - parse_since(args.since) if args.since else None

    with session_context(sqlite_path) as session:
        events = list_events(
            session,
            username=args.username,
            level=level,
            since=since,
            limit=args.limit,
        )

        if not events:
            print("No events found.")
            return

        print(f"{'ID':<6} {'Date':<28} {'Level':<8} {'User':<16} {'Title':<40}")
        print("-" * 100)
        for event in events:
            level_name = EventLevel(event.level).name
            print(f"{event.id:<6} {event.event_date_utc:<28} {level_name:<8} {event.username:<16} {event.title:<40}")
            if args.verbose:
                print(f"       {event.message}")
                print(f"       parameters: {decode_parameters(event)}")


def cmd_init(args: argparse.Namespace) -> None:
    """Initialize configuration files from examples."""
    config_dir = Path("config")
    config_dir.mkdir(exist_ok=True)

    pairs = [
        (Path("eventstore.config.example.yaml"), DEFAULT_CONFIG_PATH),
        (config_dir / "event-templates.example.yaml", config_dir / "event-templates.yaml"),
    ]

    for example, _ in pairs:
        if not example.exists():
            logger.error(f"Example file not found: {example}")
            return

    created = []
    skipped = []
    for example, target in pairs:
        if target.exists() and not args.force:
            skipped.append(f"{target} (already exists, use --force to overwrite)")
            continue
        try:
            shutil.copy(example, target)
        except OSError as e:
            logger.error(f"Failed to create {target}: {e}")
            return
        created.append(str(target))
        print(f"Created {target}")

    if created:
        print(f"\n✓ Initialized {len(created)} config file(s): {', '.join(created)}")
        print("  Next steps:")
        print("  1. Review and customize config/event-templates.yaml")
        print("  2. Run: eventstore templates check")

    if skipped:
        print(f"\n⚠ Skipped {len(skipped)} file(s):")
        for item in skipped:
            print(f"  - {item}")


def main() -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="eventstore",
        description="Store event notifications from the message bus as rendered event records",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help=f"Runtime config file (default: {DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # templates commands
    templates_parser = subparsers.add_parser("templates", help="Event template utilities")
    templates_subparsers = templates_parser.add_subparsers(
        dest="templates_subcommand", help="Templates subcommands", required=True
    )
    templates_list_parser = templates_subparsers.add_parser("list", help="List loaded templates")
    templates_list_parser.add_argument("--catalog", type=str, default=None, help="Template catalog YAML file")
    templates_list_parser.set_defaults(func=cmd_templates_list)

    templates_check_parser = templates_subparsers.add_parser("check", help="Check template syntax")
    templates_check_parser.add_argument("--catalog", type=str, default=None, help="Template catalog YAML file")
    templates_check_parser.set_defaults(func=cmd_templates_check)

    templates_render_parser = templates_subparsers.add_parser("render", help="Render a template")
    templates_render_parser.add_argument("code", type=str, help="Template code (e.g. billing.invoice.overdue)")
    templates_render_parser.add_argument(
        "--param",
        action="append",
        default=[],
        help="Template parameter as key=value (repeatable)",
    )
    templates_render_parser.add_argument("--catalog", type=str, default=None, help="Template catalog YAML file")
    templates_render_parser.set_defaults(func=cmd_templates_render)

    # consume command
    consume_parser = subparsers.add_parser("consume", help="Replay a JSON-lines file of bus messages")
    consume_parser.add_argument("--input", type=str, required=True, help="JSON-lines file of envelopes")
    consume_parser.set_defaults(func=cmd_consume)

    # listen command
    listen_parser = subparsers.add_parser("listen", help="Run the listener on messages read from stdin")
    listen_parser.set_defaults(func=cmd_listen)

    # events commands
    events_parser = subparsers.add_parser("events", help="Stored event queries")
    events_subparsers = events_parser.add_subparsers(
        dest="events_subcommand", help="Events subcommands", required=True
    )
    events_list_parser = events_subparsers.add_parser("list", help="List stored events")
    events_list_parser.add_argument("--username", type=str, default=None, help="Only events for this user")
    events_list_parser.add_argument(
        "--level",
        type=str,
        choices=list(LEVEL_NAMES),
        default=None,
        help="Only events at this level",
    )
    events_list_parser.add_argument("--since", type=str, default=None, help="Time window (e.g. 30m, 24h, 7d)")
    events_list_parser.add_argument("--limit", type=int, default=20, help="Maximum events to show (default: 20)")
    events_list_parser.add_argument("--verbose", action="store_true", help="Show message and parameters")
    events_list_parser.set_defaults(func=cmd_events_list)

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize configuration files from examples")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing config files",
    )
    init_parser.set_defaults(func=cmd_init)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    try:
        config = load_config_or_defaults(Path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config["logging"]["level"])

    try:
        args.func(args)
    except Exception as e:
        logger.error(f"Error running command '{args.command}': {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
