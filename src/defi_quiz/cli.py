"""CLI entry point: defi-quiz

Subcommands:
    generate   Build an episode from a snapshot JSON file
    templates  List the registered question templates
    matrix     Validate and print a slot matrix
    schedule   Show the episode type scheduled for a date

Usage:
    defi-quiz generate snapshot.json --output episode.json
    defi-quiz generate snapshot.json --date 2024-06-03 --llm-explanations
    defi-quiz templates --type chain
    defi-quiz matrix --type protocol
    defi-quiz schedule 2024-06-03 --days 7
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path


def _setup_logging(args: argparse.Namespace) -> None:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _slots_dir(args: argparse.Namespace) -> Path | None:
    return Path(args.slots_dir) if args.slots_dir else None


def _cmd_generate(args: argparse.Namespace) -> int:
    """Build an episode from a snapshot."""
    from .builder import build_episode, episode_type_for_date
    from .data.snapshot import load_snapshot

    _setup_logging(args)
    logger = logging.getLogger("defi_quiz.cli")

    try:
        ctx = load_snapshot(args.snapshot, date=args.date, episode_type=args.type)
        scheduled = episode_type_for_date(ctx.date)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if scheduled != ctx.episode_type:
        logger.warning(
            "%s is a %s day but the snapshot topic is a %s", ctx.date, scheduled, ctx.episode_type
        )

    explainer = None
    if args.llm_explanations:
        from .explain import LLMExplainer

        explainer = LLMExplainer(model=args.model or None)

    try:
        episode = build_episode(ctx, slots_dir=_slots_dir(args), explainer=explainer)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    data = episode.to_dict()
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(data, f, indent=2)
        print(f"Episode {episode.episode_id}: {len(episode.questions)} questions")
        for question in episode.questions:
            print(f"  {question.qid} [{question.slot}] {question.draft.template_id:<28} {question.draft.prompt}")
        if episode.degraded:
            print(f"  Unfilled slots: {', '.join(episode.unfilled_slots)}")
        print(f"Episode saved to {output_path}")
    else:
        print(json.dumps(data, indent=2))
    return 0


def _cmd_templates(args: argparse.Namespace) -> int:
    """List registered templates."""
    from .templates import TEMPLATES

    for template in TEMPLATES.values():
        if args.type and template.type not in (args.type, "both"):
            continue
        print(f"{template.id:<28} {template.type:<9} {template.name}")
        print(f"    {template.config.description}")
        print(f"    topics: {', '.join(template.semantic_topics)}")
    return 0


def _cmd_matrix(args: argparse.Namespace) -> int:
    """Validate and print a slot matrix."""
    from .slots import load_fallback_specs, load_slot_matrix, validate_matrix
    from .templates import TEMPLATES

    try:
        matrix = load_slot_matrix(args.type, _slots_dir(args))
        fallbacks = load_fallback_specs(args.type, _slots_dir(args))
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"{matrix.episode_type} slot matrix")
    for spec in matrix.slots:
        print(f"  {spec.name} ({spec.target}): {', '.join(spec.templates)}")
        print(f"      formats: {', '.join(spec.allowed_formats)}")
    by_difficulty: dict[str, int] = {}
    for fallback in fallbacks:
        by_difficulty[fallback.difficulty] = by_difficulty.get(fallback.difficulty, 0) + 1
    summary = ", ".join(f"{count} {level}" for level, count in sorted(by_difficulty.items()))
    print(f"  fallbacks: {len(fallbacks)} ({summary})")

    errors = validate_matrix(matrix, set(TEMPLATES))
    if errors:
        print("\nValidation errors:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    print("\nMatrix is valid")
    return 0


def _cmd_schedule(args: argparse.Namespace) -> int:
    """Show the episode types scheduled from a date."""
    from .builder import day_name, episode_type_for_date

    try:
        start = datetime.strptime(args.date, "%Y-%m-%d")
    except ValueError:
        print(f"Error: Date must be YYYY-MM-DD, got '{args.date}'", file=sys.stderr)
        return 1

    for offset in range(max(1, args.days)):
        date = (start + timedelta(days=offset)).strftime("%Y-%m-%d")
        print(f"{date}  {day_name(date):<9}  {episode_type_for_date(date)}")
    return 0


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="defi-quiz",
        description="Deterministic daily DeFi trivia episode generator",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    gen_parser = subparsers.add_parser("generate", help="Build an episode from a snapshot")
    gen_parser.add_argument("snapshot", help="Path to snapshot JSON file")
    gen_parser.add_argument("--date", default=None, help="Override the snapshot date (YYYY-MM-DD)")
    gen_parser.add_argument(
        "--type", choices=["protocol", "chain"], default=None, help="Override the episode type"
    )
    gen_parser.add_argument("--output", "-o", default="", help="Write episode JSON here")
    gen_parser.add_argument(
        "--llm-explanations",
        action="store_true",
        help="Write explanations with the Anthropic API (needs ANTHROPIC_API_KEY)",
    )
    gen_parser.add_argument("--model", default="", help="Explanation model")
    gen_parser.add_argument("--slots-dir", default="", help="Directory with slot YAML files")

    # --- templates ---
    tpl_parser = subparsers.add_parser("templates", help="List question templates")
    tpl_parser.add_argument("--type", choices=["protocol", "chain"], default=None, help="Filter by type")

    # --- matrix ---
    mtx_parser = subparsers.add_parser("matrix", help="Validate and print a slot matrix")
    mtx_parser.add_argument(
        "--type", choices=["protocol", "chain"], default="protocol", help="Episode type"
    )
    mtx_parser.add_argument("--slots-dir", default="", help="Directory with slot YAML files")

    # --- schedule ---
    sch_parser = subparsers.add_parser("schedule", help="Show the episode type for a date")
    sch_parser.add_argument("date", help="Date (YYYY-MM-DD)")
    sch_parser.add_argument("--days", type=int, default=1, help="Number of days to show")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    handlers = {
        "generate": _cmd_generate,
        "templates": _cmd_templates,
        "matrix": _cmd_matrix,
        "schedule": _cmd_schedule,
    }

    handler = handlers.get(args.command)
    if handler:
        sys.exit(handler(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
