"""CLI commands for Platewise."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from platewise.config import settings
from platewise.database import Base, engine
from platewise.services.analysis_schemas import (
    AnalysisRequest,
    NutritionGoal,
    UserNutritionContext,
)
from platewise.services.orchestrator import AnalysisOrchestrator
from platewise.services.tool_invoker import AnalysisError


def init_db() -> None:
    """Create all tables."""
    import platewise.models  # noqa: F401  registers the models on Base

    Base.metadata.create_all(bind=engine)
    print(f"Database initialized: {settings.database_url}")


def analyze(
    image_path: str | None = None,
    text: str | None = None,
    goal: str | None = None,
) -> None:
    """Run one analysis against the live model and print the JSON output."""
    image = None
    if image_path:
        path = Path(image_path)
        if not path.is_file():
            print(f"Error: Image '{image_path}' not found.")
            sys.exit(1)
        image = path.read_bytes()

    context = UserNutritionContext(goal=NutritionGoal(goal)) if goal else UserNutritionContext()
    request = AnalysisRequest(image=image, transcript=text, user_context=context)

    orchestrator = AnalysisOrchestrator.with_claude()
    try:
        result, metadata = asyncio.run(orchestrator.analyze(request))
    except AnalysisError as e:
        print(f"Error: {type(e).__name__}: {e}")
        sys.exit(1)

    output = {
        "result": result.to_wire(),
        "metadata": metadata.model_dump(by_alias=True, mode="json"),
    }
    print(json.dumps(output, indent=2))


def main():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Platewise CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-db command
    subparsers.add_parser("init-db", help="Create database tables")

    # analyze command
    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze a meal photo and/or description"
    )
    analyze_parser.add_argument("--image", help="Path to a meal photo")
    analyze_parser.add_argument("--text", help="Meal description")
    analyze_parser.add_argument(
        "--goal",
        choices=[g.value for g in NutritionGoal],
        help="Nutrition goal used to prioritize micronutrients",
    )

    args = parser.parse_args()

    if args.command == "init-db":
        init_db()
    elif args.command == "analyze":
        if not args.image and not args.text:
            print("Error: Provide --image and/or --text.")
            sys.exit(1)
        analyze(args.image, args.text, args.goal)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
