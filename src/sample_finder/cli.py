"""
Sample Finder CLI - Entry point

Offline-first sample library: ingest audio, tag it, find similar sounds,
group sounds into palettes, keep license receipts, and push everything to a
cloud store when one is configured.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger
from rich.markup import escape
from rich.panel import Panel

from sample_finder.core.capabilities import Capabilities, detect_capabilities
from sample_finder.core.config import (
    Config,
    ensure_directories,
    get_data_dir,
    load_config,
)
from sample_finder.core.console import get_console, print_table, safe_print
from sample_finder.core.output import log, setup_logging_from_config
from sample_finder.domain.library import (
    LibraryState,
    LibraryStore,
    LocalDataset,
    StateCorruptedError,
    StateVersionError,
)
from sample_finder.domain.sync.remote_store import RemoteStoreError


ID_COLUMN = ("ID", {"style": "dim"})
DURATION_COLUMN = ("Duration", {"justify": "right"})


@dataclass
class AppContext:
    config: Config
    capabilities: Capabilities
    store: LibraryStore


def format_duration(duration_ms: int) -> str:
    """1530 -> '1.53s'."""
    return f"{duration_ms / 1000:.2f}s"


def _error(message: str) -> int:
    log(f"Error: {message}", level="error")
    return 1


def _expand_paths(paths: List[str]) -> List[Path]:
    """Files as given; directories contribute their files, sorted."""
    expanded = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            expanded.extend(sorted(p for p in path.iterdir() if p.is_file()))
        else:
            expanded.append(path)
    return expanded


def _maybe_show_signup_prompt(context: AppContext) -> None:
    store = context.store
    if not store.should_show_signup_prompt():
        return
    if context.capabilities.cloud_sync:
        hint = "Run 'sample-finder migrate --user <id>' to back up your library."
    else:
        hint = "Configure [sync] database_url to back up your library to the cloud."
    get_console().print(Panel(hint, title="Keep your palettes safe", style="cyan"))
    store.mark_signup_prompt_shown()


def _resolve_tier(context: AppContext, user_id: Optional[str]) -> Optional[str]:
    """Subscription tier of ``user_id``, or None when no account applies."""
    if not user_id or not context.capabilities.cloud_sync:
        return None

    from sample_finder.domain.billing import get_tier
    from sample_finder.domain.sync import open_remote_store

    remote = open_remote_store(context.config.sync.database_url)
    return asyncio.run(get_tier(remote, user_id, context.config.billing))


# ----------------------------------------------------------------------
# Assets
# ----------------------------------------------------------------------


def cmd_ingest(context: AppContext, args: argparse.Namespace) -> int:
    from sample_finder.domain.library.ingest import ingest_files
    from sample_finder.domain.similarity import create_embedding_provider

    paths = _expand_paths(args.files)
    if not paths:
        return _error("No files given")

    provider = create_embedding_provider(context.config, context.capabilities)
    library = context.config.library
    assets = asyncio.run(
        ingest_files(
            context.store,
            provider,
            paths,
            supported_formats=library.supported_formats,
            max_files=library.max_files,
            tags=args.tag,
            skip_duplicates=args.skip_duplicates,
        )
    )

    if not assets:
        return _error("Nothing was ingested (unsupported or unreadable files)")

    print_table(
        f"Ingested {len(assets)} sample(s)",
        [ID_COLUMN, "Title", DURATION_COLUMN, "Descriptor"],
        [
            (
                asset.id,
                escape(asset.title),
                format_duration(asset.duration_ms),
                escape(asset.descriptor),
            )
            for asset in assets
        ],
    )
    return 0


def cmd_list(context: AppContext, args: argparse.Namespace) -> int:
    assets = context.store.get_assets()
    if not assets:
        safe_print("Library is empty. Add samples with 'sample-finder ingest FILE...'", "yellow")
        return 0

    print_table(
        f"{len(assets)} sample(s)",
        [ID_COLUMN, "Title", DURATION_COLUMN, "Tags"],
        [
            (
                asset.id,
                escape(asset.title),
                format_duration(asset.duration_ms),
                escape(", ".join(asset.tags)),
            )
            for asset in assets
        ],
    )
    return 0


def cmd_show(context: AppContext, args: argparse.Namespace) -> int:
    asset = context.store.get_asset(args.asset_id)
    if asset is None:
        return _error(f"Asset not found: {args.asset_id}")

    centroid = (
        f"{asset.spectral_centroid:.0f} Hz" if asset.spectral_centroid is not None else "-"
    )
    lines = [
        f"File:        {escape(asset.original_filename)}",
        f"Duration:    {format_duration(asset.duration_ms)}",
        f"RMS:         {asset.rms:.4f}",
        f"Centroid:    {centroid}",
        f"Tags:        {escape(', '.join(asset.tags)) or '-'}",
        f"Descriptor:  {escape(asset.descriptor)}",
        f"Hash:        {asset.content_hash}",
    ]

    palettes = [p.name for p in context.store.get_palettes() if asset.id in p.asset_ids]
    lines.append(f"Palettes:    {escape(', '.join(palettes)) or '-'}")

    receipt = context.store.get_receipt_for_asset(asset.id)
    if receipt is not None:
        flags = ", ".join(name for name, value in receipt.license_flags.items() if value)
        lines.append(f"Source:      {escape(receipt.source_url) or '-'}")
        lines.append(f"License:     {flags or '-'}")

    get_console().print(Panel("\n".join(lines), title=escape(asset.title)))
    return 0


def cmd_delete(context: AppContext, args: argparse.Namespace) -> int:
    if not context.store.delete_asset(args.asset_id):
        return _error(f"Asset not found: {args.asset_id}")
    log(f"Deleted asset {args.asset_id}")
    return 0


def cmd_tag(context: AppContext, args: argparse.Namespace) -> int:
    from sample_finder.domain.library.ingest import retag_asset
    from sample_finder.domain.similarity import create_embedding_provider

    provider = create_embedding_provider(context.config, context.capabilities)
    asset = asyncio.run(retag_asset(context.store, provider, args.asset_id, args.tags))
    if asset is None:
        return _error(f"Asset not found: {args.asset_id}")
    safe_print(f"Tags for {escape(asset.title)}: {escape(', '.join(asset.tags))}", "green")
    return 0


def cmd_similar(context: AppContext, args: argparse.Namespace) -> int:
    from sample_finder.domain.billing import UNLIMITED, get_tier_limits
    from sample_finder.domain.similarity import find_similar

    limit = args.limit
    tier = _resolve_tier(context, args.user)
    if tier is not None:
        max_results = get_tier_limits(tier)["max_similarity_results"]
        if max_results != UNLIMITED and limit > max_results:
            logger.info(f"Capping similar results at {max_results} for {tier} plan")
            limit = max_results

    results = find_similar(
        context.store, args.asset_id, limit=limit, use_embeddings=not args.text_only
    )
    if not results:
        safe_print("No other samples to compare against.", "yellow")
        return 0

    print_table(
        "Similar samples",
        [("Score", {"justify": "right"}), ID_COLUMN, "Title", DURATION_COLUMN],
        [
            (
                f"{result.score:.3f}",
                result.asset.id,
                escape(result.asset.title),
                format_duration(result.asset.duration_ms),
            )
            for result in results
        ],
    )

    _maybe_show_signup_prompt(context)
    return 0


# ----------------------------------------------------------------------
# Palettes
# ----------------------------------------------------------------------


def cmd_palette(context: AppContext, args: argparse.Namespace) -> int:
    store = context.store
    action = args.palette_command

    if action == "create":
        tier = _resolve_tier(context, args.user)
        if tier is not None:
            from sample_finder.domain.billing import get_tier_limits, within_limit

            max_palettes = get_tier_limits(tier)["max_palettes"]
            if not within_limit(max_palettes, len(store.get_palettes())):
                return _error(f"The {tier} plan allows {max_palettes} palettes")
        palette = store.create_palette(args.name, notes=args.notes or "")
        log(f"Created palette {palette.name} ({palette.id})")
        return 0

    if action == "list":
        palettes = store.get_palettes()
        if not palettes:
            safe_print("No palettes yet.", "yellow")
            return 0
        print_table(
            f"{len(palettes)} palette(s)",
            [ID_COLUMN, "Name", ("Samples", {"justify": "right"}), "Notes"],
            [
                (
                    palette.id,
                    escape(palette.name),
                    str(len(palette.asset_ids)),
                    escape(palette.notes),
                )
                for palette in palettes
            ],
        )
        return 0

    if action == "add":
        added = 0
        for asset_id in args.asset_ids:
            if store.add_asset_to_palette(args.palette_id, asset_id):
                added += 1
        log(f"Added {added} sample(s) to palette")
        _maybe_show_signup_prompt(context)
        return 0

    if action == "remove":
        if not store.remove_asset_from_palette(args.palette_id, args.asset_id):
            return _error(f"Asset {args.asset_id} is not in palette {args.palette_id}")
        log("Removed sample from palette")
        return 0

    if action == "delete":
        if not store.delete_palette(args.palette_id):
            return _error(f"Palette not found: {args.palette_id}")
        log(f"Deleted palette {args.palette_id}")
        return 0

    if action == "export":
        from sample_finder.domain.library.export import export_palette

        archive = export_palette(store, args.palette_id, Path(args.out).expanduser())
        log(f"Exported palette to {archive}")
        return 0

    return _error(f"Unknown palette command: {action}")


# ----------------------------------------------------------------------
# Receipts
# ----------------------------------------------------------------------

LICENSE_FLAG_OPTIONS = ("royalty_free", "commercial_use", "attribution_required", "exclusive")


def cmd_receipt(context: AppContext, args: argparse.Namespace) -> int:
    store = context.store

    if args.receipt_command == "set":
        flags = {
            name: getattr(args, name)
            for name in LICENSE_FLAG_OPTIONS
            if getattr(args, name) is not None
        }
        receipt = store.upsert_receipt_for_asset(
            args.asset_id,
            source_url=args.source_url,
            notes=args.notes,
            license_flags=flags,
        )
        log(f"Saved receipt {receipt.id} for asset {args.asset_id}")
        return 0

    receipt = store.get_receipt_for_asset(args.asset_id)
    if receipt is None:
        return _error(f"No receipt for asset {args.asset_id}")

    rows = [
        ("Source", escape(receipt.source_url) or "-"),
        ("Notes", escape(receipt.notes) or "-"),
    ]
    rows.extend(
        (name.replace("_", " "), "yes" if value else "no")
        for name, value in receipt.license_flags.items()
    )
    print_table(f"Receipt {receipt.id}", ["Field", "Value"], rows, show_header=False)
    return 0


# ----------------------------------------------------------------------
# Sync, import and maintenance
# ----------------------------------------------------------------------


def cmd_migrate(context: AppContext, args: argparse.Namespace) -> int:
    from sample_finder.domain.sync import migrate, open_remote_store

    if not context.capabilities.cloud_sync:
        return _error("Cloud sync is not configured (set [sync] database_url)")

    remote = open_remote_store(context.config.sync.database_url)
    dataset = context.store.export_payload()
    email = args.email or context.config.sync.user_email or None
    result = asyncio.run(migrate(args.user, dataset, remote, email=email))

    log(
        f"Synced {result.assets_count} assets, {result.palettes_count} palettes, "
        f"{result.receipts_count} receipts"
    )
    if result.failures:
        log(
            f"{len(result.failures)} item(s) failed; run migrate again to retry",
            level="warning",
        )
        for failure in result.failures:
            log(f"  - {failure}", level="warning")
        return 1

    context.store.mark_synced_to_cloud()
    return 0


def cmd_import_legacy(context: AppContext, args: argparse.Namespace) -> int:
    path = Path(args.file).expanduser()
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
        state = LibraryState.from_document(document)
    except OSError as e:
        return _error(f"Could not read {path}: {e}")
    except (json.JSONDecodeError, StateCorruptedError, StateVersionError) as e:
        return _error(f"Invalid library export {path}: {e}")

    added = context.store.merge_dataset(
        LocalDataset(assets=state.assets, palettes=state.palettes, receipts=state.receipts)
    )
    log(
        f"Imported {added['assets']} assets, {added['palettes']} palettes, "
        f"{added['receipts']} receipts"
    )
    return 0


def cmd_status(context: AppContext, args: argparse.Namespace) -> int:
    state = context.store.snapshot()
    engagement = state.engagement
    capabilities = context.capabilities

    def on_off(value: bool) -> str:
        return "[green]on[/green]" if value else "[dim]off[/dim]"

    rows = [
        ("Data directory", escape(str(get_data_dir(context.config)))),
        ("Samples", str(len(state.assets))),
        ("Palettes", str(len(state.palettes))),
        ("Receipts", str(len(state.receipts))),
        ("Similarity searches", str(engagement.similarity_search_count)),
        ("Synced to cloud", "yes" if engagement.synced_to_cloud else "no"),
        ("Remote embeddings", on_off(capabilities.remote_embeddings)),
        ("Cloud sync", on_off(capabilities.cloud_sync)),
        ("Billing", on_off(capabilities.billing)),
    ]

    tier = _resolve_tier(context, args.user)
    if tier is not None:
        rows.append(("Plan", tier))

    print_table("Sample Finder status", ["Field", "Value"], rows, show_header=False)
    _maybe_show_signup_prompt(context)
    return 0


def cmd_clear(context: AppContext, args: argparse.Namespace) -> int:
    if not args.yes:
        return _error("This deletes every sample, palette and receipt. Re-run with --yes")
    context.store.clear()
    log("Library cleared")
    return 0


def cmd_webhook(context: AppContext, args: argparse.Namespace) -> int:
    from sample_finder.domain.billing import (
        WebhookError,
        handle_webhook_event,
        parse_webhook_payload,
    )
    from sample_finder.domain.sync import open_remote_store

    path = Path(args.file).expanduser()
    try:
        event = parse_webhook_payload(path.read_text(encoding="utf-8"))
    except OSError as e:
        return _error(f"Could not read {path}: {e}")
    except WebhookError as e:
        print(json.dumps({"ok": False, "reason": "invalid_json"}))
        logger.warning(f"Rejected webhook payload {path}: {e}")
        return 1

    remote = (
        open_remote_store(context.config.sync.database_url)
        if context.capabilities.cloud_sync
        else None
    )
    result = asyncio.run(
        handle_webhook_event(event, remote, app_name=context.config.billing.app_name)
    )
    print(json.dumps(result))
    return 0 if result.get("ok") else 1


COMMANDS: Dict[str, Callable[[AppContext, argparse.Namespace], int]] = {
    "ingest": cmd_ingest,
    "list": cmd_list,
    "show": cmd_show,
    "delete": cmd_delete,
    "tag": cmd_tag,
    "similar": cmd_similar,
    "palette": cmd_palette,
    "receipt": cmd_receipt,
    "migrate": cmd_migrate,
    "import-legacy": cmd_import_legacy,
    "status": cmd_status,
    "clear": cmd_clear,
    "webhook": cmd_webhook,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sample-finder",
        description="Sample Finder - offline-first sample library with similarity search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to config.toml")

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Add audio files or folders")
    ingest_parser.add_argument("files", nargs="+", help="Audio files or directories")
    ingest_parser.add_argument(
        "--tag", action="append", default=[], help="Tag to apply (repeatable)"
    )
    ingest_parser.add_argument(
        "--skip-duplicates",
        action="store_true",
        help="Skip files whose audio is already in the library",
    )

    subparsers.add_parser("list", help="List samples")

    show_parser = subparsers.add_parser("show", help="Show one sample")
    show_parser.add_argument("asset_id")

    delete_parser = subparsers.add_parser("delete", help="Delete a sample")
    delete_parser.add_argument("asset_id")

    tag_parser = subparsers.add_parser("tag", help="Replace a sample's tags")
    tag_parser.add_argument("asset_id")
    tag_parser.add_argument("tags", nargs="*", help="New tags (none clears them)")

    similar_parser = subparsers.add_parser("similar", help="Find similar samples")
    similar_parser.add_argument("asset_id")
    similar_parser.add_argument("--limit", type=int, default=10)
    similar_parser.add_argument("--user", help="Account id, to apply its plan's result cap")
    similar_parser.add_argument(
        "--text-only", action="store_true", help="Ignore embeddings when ranking"
    )

    palette_parser = subparsers.add_parser("palette", help="Manage palettes")
    palette_sub = palette_parser.add_subparsers(dest="palette_command", required=True)
    create_parser = palette_sub.add_parser("create", help="Create a palette")
    create_parser.add_argument("name")
    create_parser.add_argument("--notes")
    create_parser.add_argument("--user", help="Account id, to apply its plan's palette cap")
    palette_sub.add_parser("list", help="List palettes")
    add_parser = palette_sub.add_parser("add", help="Add samples to a palette")
    add_parser.add_argument("palette_id")
    add_parser.add_argument("asset_ids", nargs="+")
    remove_parser = palette_sub.add_parser("remove", help="Remove a sample from a palette")
    remove_parser.add_argument("palette_id")
    remove_parser.add_argument("asset_id")
    palette_delete = palette_sub.add_parser("delete", help="Delete a palette")
    palette_delete.add_argument("palette_id")
    export_parser = palette_sub.add_parser("export", help="Export a palette as a ZIP")
    export_parser.add_argument("palette_id")
    export_parser.add_argument("--out", default=".", help="Destination directory")

    receipt_parser = subparsers.add_parser("receipt", help="Manage license receipts")
    receipt_sub = receipt_parser.add_subparsers(dest="receipt_command", required=True)
    set_parser = receipt_sub.add_parser("set", help="Create or update a sample's receipt")
    set_parser.add_argument("asset_id")
    set_parser.add_argument("--source-url")
    set_parser.add_argument("--notes")
    for name in LICENSE_FLAG_OPTIONS:
        set_parser.add_argument(
            f"--{name.replace('_', '-')}",
            dest=name,
            action=argparse.BooleanOptionalAction,
            default=None,
        )
    receipt_show = receipt_sub.add_parser("show", help="Show a sample's receipt")
    receipt_show.add_argument("asset_id")

    migrate_parser = subparsers.add_parser("migrate", help="Sync the library to the cloud store")
    migrate_parser.add_argument("--user", required=True, help="Account id")
    migrate_parser.add_argument("--email")

    import_parser = subparsers.add_parser(
        "import-legacy", help="Merge a JSON library export into this library"
    )
    import_parser.add_argument("file")

    status_parser = subparsers.add_parser("status", help="Library and service status")
    status_parser.add_argument("--user", help="Account id, to show the subscription plan")

    clear_parser = subparsers.add_parser("clear", help="Delete everything in the library")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    webhook_parser = subparsers.add_parser(
        "webhook", help="Apply a subscription webhook event from a JSON file"
    )
    webhook_parser.add_argument("file")

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv`` and run the chosen command. Returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        return 1

    config = load_config(Path(args.config).expanduser() if args.config else None)
    setup_logging_from_config(config)
    ensure_directories(config)

    context = AppContext(
        config=config,
        capabilities=detect_capabilities(config),
        store=LibraryStore.in_directory(get_data_dir(config)),
    )

    try:
        return COMMANDS[args.subcommand](context, args)
    except KeyError as e:
        return _error(str(e.args[0]) if e.args else str(e))
    except (ValueError, StateVersionError) as e:
        return _error(str(e))
    except RemoteStoreError as e:
        logger.error(f"Remote store failure in {args.subcommand}: {e}")
        return _error(f"Cloud store unavailable: {e}")


def main() -> None:
    """Main entry point for the sample-finder command."""
    sys.exit(run())


if __name__ == "__main__":
    main()
