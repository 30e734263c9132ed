#!/usr/bin/env python3
"""Ad hoc query runner for the sommelier recommendation engine.

Run one recommendation request from the command line.

Usage:
    python query.py "What should I open with roast lamb?"
    python query.py --debug "Your query"              # Show full JSON response
    python query.py --level beginner "Your query"     # beginner | intermediate | advanced
    python query.py --food "grilled salmon" --occasion "dinner party" "Your query"
    python query.py --inventory cellar.json "Your query"  # JSON list of wines
    python query.py --no-knowledge "Your query"       # Skip the vector knowledge base
    python query.py --index --inventory cellar.json "Your query"  # Index the cellar first
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markdown import Markdown

from sommelier.agents.agent import index_inventory, initialize_recommendation_engine
from sommelier.models.models import (
    RecommendationContext,
    RecommendationRequest,
    RecommendationResponse,
    Wine,
)
from sommelier.utils.logger import logger

console = Console()

USAGE = (
    'Usage: python query.py [--debug] [--level LEVEL] [--food TEXT] [--occasion TEXT] '
    '[--inventory PATH] [--index] [--no-knowledge] "<your query>"'
)


def load_inventory(path: str) -> List[Wine]:
    """Load a JSON list of wines.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If an entry is not a valid wine.
    """
    inventory_file = Path(path)
    if not inventory_file.exists():
        raise FileNotFoundError(f"Inventory file not found: {path}")
    with open(inventory_file, "r", encoding="utf-8") as f:
        return [Wine.model_validate(item) for item in json.load(f)]


def render_response(response: RecommendationResponse) -> str:
    """Render a response as markdown."""
    lines = [response.reasoning, ""]
    for index, rec in enumerate(response.recommendations, start=1):
        if rec.suggested_wine:
            wine = rec.suggested_wine
            vintage = f" {wine.vintage}" if wine.vintage else ""
            title = f"{wine.producer}{vintage} {', '.join(wine.varietal)} ({wine.type})"
        elif rec.wine_id:
            title = f"From your cellar: {rec.wine_id}"
        else:
            title = rec.type.capitalize()
        lines.append(f"{index}. **{title}** - {rec.reasoning} _(confidence {rec.confidence:.2f})_")
        if rec.educational_context:
            lines.append(f"   > {rec.educational_context}")
    if response.educational_notes:
        lines.extend(["", f"**Notes:** {response.educational_notes}"])
    if response.follow_up_questions:
        lines.extend(["", *[f"- {question}" for question in response.follow_up_questions]])
    lines.extend(["", f"_Overall confidence: {response.confidence:.2f}_"])
    return "\n".join(lines)


def run_query(
    query: str,
    debug: bool = False,
    level: str = "intermediate",
    food: Optional[str] = None,
    occasion: Optional[str] = None,
    inventory_path: Optional[str] = None,
    use_knowledge: bool = True,
    index: bool = False,
) -> None:
    """Execute a single ad hoc query and print the response.

    Args:
        query: Free-text request.
        debug: If True, display the full JSON response.
        level: Experience level of the user.
        food: Optional food pairing.
        occasion: Optional occasion.
        inventory_path: Optional JSON file with the user's wines.
        use_knowledge: If False, skip the vector knowledge base.
        index: If True, index the inventory into the knowledge base before querying.
    """
    try:
        engine = initialize_recommendation_engine(use_knowledge=use_knowledge)
        inventory = load_inventory(inventory_path) if inventory_path else None
        if index and inventory:
            if use_knowledge:
                asyncio.run(index_inventory(inventory))
            else:
                logger.warning("Knowledge base disabled, skipping --index")

        request = RecommendationRequest(
            user_id="cli",
            query=query,
            context=RecommendationContext(occasion=occasion, food_pairing=food),
            inventory=inventory,
            experience_level=level,
        )

        logger.info(f"Running query: {query}")
        logger.info("---")
        response = asyncio.run(engine.generate_recommendations(request))
        logger.info("---")
        console.print()

        if debug:
            console.print("[bold cyan]Debug Mode: Full Response[/bold cyan]")
            console.print("[dim]" + "=" * 60 + "[/dim]")
            console.print_json(data=response.model_dump(mode="json"))
            console.print("[dim]" + "=" * 60 + "[/dim]")
            console.print()

        if not response.response_metadata.validation_passed:
            console.print("[yellow]Note: " + "; ".join(response.response_metadata.validation_errors) + "[/yellow]")
        console.print(Markdown(render_response(response)))

    except KeyboardInterrupt:
        logger.info("\nQuery interrupted by user.")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Query execution failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(USAGE)
        print("")
        print("Examples:")
        print('  python query.py "What should I open with roast lamb?"')
        print('  python query.py --level beginner --food "grilled salmon" "Something for tonight?"')
        sys.exit(1)

    options = {"debug": False, "level": "intermediate", "food": None, "occasion": None,
               "inventory_path": None, "use_knowledge": True, "index": False}
    value_flags = {"--level": "level", "--food": "food", "--occasion": "occasion", "--inventory": "inventory_path"}
    argv_start = 1

    while argv_start < len(sys.argv) and sys.argv[argv_start].startswith("--"):
        flag = sys.argv[argv_start]
        if flag == "--debug":
            options["debug"] = True
            argv_start += 1
        elif flag == "--index":
            options["index"] = True
            argv_start += 1
        elif flag == "--no-knowledge":
            options["use_knowledge"] = False
            argv_start += 1
        elif flag in value_flags:
            argv_start += 1
            if argv_start >= len(sys.argv):
                print(f"Error: {flag} flag requires a value")
                sys.exit(1)
            options[value_flags[flag]] = sys.argv[argv_start]
            argv_start += 1
        else:
            print(f"Unknown flag: {flag}")
            sys.exit(1)

    if options["level"] not in ("beginner", "intermediate", "advanced"):
        print(f"Error: --level must be beginner, intermediate or advanced, got: {options['level']}")
        sys.exit(1)

    if options["index"] and not options["inventory_path"]:
        print("Error: --index requires --inventory")
        sys.exit(1)

    if argv_start >= len(sys.argv):
        print("Error: No query provided")
        print(USAGE)
        sys.exit(1)

    # Join all arguments after flags as the query (handles queries with spaces)
    run_query(" ".join(sys.argv[argv_start:]), **options)
