"""Command-line interface for searching and maintaining the vector index."""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any

import anyio
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from novel_search.config import Settings
from novel_search.errors import ReindexCancelled, VectorSearchError
from novel_search.search.engine import SearchMode, SearchResult
from novel_search.service import VectorService
from novel_search.vector.base import EntityType

console = Console()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--json",
        action="store_true",
        help="Emit result as JSON to stdout.",
    )

    search_options = argparse.ArgumentParser(add_help=False)
    search_options.add_argument("--limit", type=int, default=None, help="Maximum results.")
    search_options.add_argument(
        "--min-similarity",
        type=float,
        default=None,
        help="Minimum cosine similarity for a result.",
    )
    search_options.add_argument(
        "--type",
        dest="entity_types",
        action="append",
        choices=[entity_type.value for entity_type in EntityType],
        default=None,
        help="Restrict to an entity type (repeatable).",
    )
    search_options.add_argument(
        "--exclude",
        dest="exclude_ids",
        action="append",
        default=None,
        help="Entity ID to exclude (repeatable).",
    )
    search_options.add_argument(
        "--mode",
        type=str,
        choices=[mode.value for mode in SearchMode],
        default=None,
        help="Search mode.",
    )

    parser = argparse.ArgumentParser(
        description="Semantic search over a novel project's knowledge and chapters."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    search_parser = subparsers.add_parser(
        "search", parents=[common, search_options], help="Search a project by text."
    )
    search_parser.add_argument("--project", type=int, required=True, help="Project ID.")
    search_parser.add_argument("--query", type=str, required=True, help="Search text.")

    similar_parser = subparsers.add_parser(
        "similar",
        parents=[common, search_options],
        help="Find entities similar to an indexed entity.",
    )
    similar_parser.add_argument("--project", type=int, required=True, help="Project ID.")
    similar_parser.add_argument(
        "--entity-type",
        type=str,
        required=True,
        choices=[entity_type.value for entity_type in EntityType],
        help="Type of the reference entity.",
    )
    similar_parser.add_argument(
        "--entity-id", type=str, required=True, help="ID of the reference entity."
    )

    index_knowledge_parser = subparsers.add_parser(
        "index-knowledge", parents=[common], help="Index one knowledge note."
    )
    index_knowledge_parser.add_argument("knowledge_id", type=str)

    index_chapter_parser = subparsers.add_parser(
        "index-chapter", parents=[common], help="Index one chapter."
    )
    index_chapter_parser.add_argument("chapter_id", type=str)

    reindex_parser = subparsers.add_parser(
        "reindex", parents=[common], help="Rebuild a project's index."
    )
    reindex_parser.add_argument("--project", type=int, required=True, help="Project ID.")

    similarity_parser = subparsers.add_parser(
        "similarity", parents=[common], help="Cosine similarity of two texts."
    )
    similarity_parser.add_argument("text1", type=str)
    similarity_parser.add_argument("text2", type=str)

    remove_parser = subparsers.add_parser(
        "remove", parents=[common], help="Remove an entity from the index."
    )
    remove_parser.add_argument(
        "--entity-type",
        type=str,
        required=True,
        choices=[EntityType.KNOWLEDGE.value, EntityType.CHAPTER.value],
    )
    remove_parser.add_argument("--entity-id", type=str, required=True)
    remove_parser.add_argument("--project", type=int, required=True, help="Project ID.")

    return parser.parse_args(argv)


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        console.print("[red]Configuration error:[/red]")
        for error in exc.errors():
            field = error.get("loc", ("unknown",))[0]
            msg = error.get("msg", "Invalid value")
            console.print(f"  [yellow]{field}[/yellow]: {msg}")
        raise


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    for noisy in ("openai", "httpx", "sentence_transformers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _search_options(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if args.limit is not None:
        options["limit"] = args.limit
    if args.min_similarity is not None:
        options["min_similarity"] = args.min_similarity
    if args.entity_types:
        options["entity_types"] = args.entity_types
    if args.exclude_ids:
        options["exclude_ids"] = args.exclude_ids
    if args.mode is not None:
        options["search_mode"] = args.mode
    return options


def _print_results(results: list[SearchResult], as_json: bool) -> None:
    if as_json:
        print(json.dumps([result.to_dict() for result in results]))
        return
    if not results:
        console.print("[dim]No results.[/dim]")
        return

    table = Table(title=f"{len(results)} results")
    table.add_column("Similarity", justify="right")
    table.add_column("Type")
    table.add_column("ID")
    table.add_column("Content", overflow="ellipsis", max_width=60)
    for result in results:
        table.add_row(
            f"{result.similarity:.3f}",
            result.entity_type.value,
            result.entity_id,
            result.content.replace("\n", " ").strip(),
        )
    console.print(table)


async def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    async with VectorService(settings) as service:
        if args.command == "search":
            results = await service.search(args.project, args.query, _search_options(args))
            _print_results(results, args.json)
        elif args.command == "similar":
            results = await service.find_similar(
                args.project, args.entity_type, args.entity_id, _search_options(args)
            )
            _print_results(results, args.json)
        elif args.command in ("index-knowledge", "index-chapter"):
            if args.command == "index-knowledge":
                entity_id = args.knowledge_id
                await service.index_knowledge(entity_id)
            else:
                entity_id = args.chapter_id
                await service.index_chapter(entity_id)
            if args.json:
                print(json.dumps({"indexed": entity_id}))
            else:
                console.print(f"Indexed {entity_id}")
        elif args.command == "reindex":
            report = await service.reindex_project(args.project)
            if args.json:
                print(json.dumps(report.to_dict()))
            else:
                console.print(
                    f"Reindexed project {report.project_id}: {report.indexed} indexed, "
                    f"{report.skipped} skipped, {len(report.failures)} failed"
                )
                for failure in report.failures:
                    console.print(
                        f"  [red]{failure.entity_type.value} {failure.entity_id}[/red]: "
                        f"{failure.error}"
                    )
            if report.failures:
                return 1
        elif args.command == "similarity":
            score = await service.calculate_similarity(args.text1, args.text2)
            if args.json:
                print(json.dumps({"similarity": score}))
            else:
                console.print(f"Similarity: {score:.4f}")
        elif args.command == "remove":
            if args.entity_type == EntityType.KNOWLEDGE.value:
                removed = await service.remove_knowledge_index(args.entity_id, args.project)
            else:
                removed = await service.remove_chapter_index(args.entity_id, args.project)
            if args.json:
                print(json.dumps({"removed": removed}))
            else:
                console.print("Removed" if removed else "Not indexed")
        else:
            return 1
    return 0


async def _run(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings()
    except ValidationError:
        return 1
    _configure_logging(settings.log_level)

    try:
        return await _run_command(args, settings)
    except ReindexCancelled as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        return 1
    except VectorSearchError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    return anyio.run(_run, args)


if __name__ == "__main__":
    raise SystemExit(main())
