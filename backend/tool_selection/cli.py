"""Run the tool-selection graph for a single query."""

import argparse
import asyncio
import json
import logging

from dotenv import load_dotenv

from .config import EngineConfig
from .domain.models import RunContext
from .graph import ToolSelectionGraph


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Answer a query with tool selection and multishot execution.")
    parser.add_argument("query", type=str, help="User query to process.")
    parser.add_argument("--search-query", type=str, default=None, help="Pinned search query to use instead of a rewrite.")
    parser.add_argument(
        "--structured-query",
        type=str,
        default=None,
        help="Structured query template; {{USER_INPUT}} is replaced with the query.",
    )
    parser.add_argument("--no-multishot", action="store_true", help="Disable query decomposition.")
    parser.add_argument("--json", action="store_true", help="Print the full JSON result.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


async def run_query(args: argparse.Namespace) -> int:
    engine = ToolSelectionGraph.from_config(EngineConfig.from_env())
    context = RunContext(
        search_query=args.search_query,
        structured_query=args.structured_query,
        multishot_enabled=not args.no_multishot,
    )
    result = await engine.run(args.query, context)

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        print(f"Tool used: {result.tool_used}")
        if result.sub_questions:
            print("Sub-questions:")
            for sq in result.sub_questions:
                deps = f" (depends on {', '.join(sq.depends_on)})" if sq.depends_on else ""
                print(f" - {sq.id} [{sq.tool.value}] {sq.text}{deps}")
        print(f"\nAnswer:\n{result.response}")
    return 0


def main(argv=None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    return asyncio.run(run_query(args))


if __name__ == "__main__":
    raise SystemExit(main())
