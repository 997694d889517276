"""CLI entry point for stockpilot."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import StockpilotConfig, load_config
from .db import CatalogDB, DocumentDB
from .documents import DocumentWorkflow
from .errors import StockpilotError
from .extraction import Extractor
from .reconcile import Reconciler


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="stockpilot",
        description="Extract receipts, invoices and products from images and post them to the catalog",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--db", type=str, default=None, help="Override the database path"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("analyze", "Extract financial fields from a receipt or invoice"),
        ("product", "Extract a product from a photo or label"),
        ("image", "Describe an arbitrary image"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("image", type=str, help="Image file")

    purchase_parser = sub.add_parser(
        "purchase", help="Extract a purchase with line items"
    )
    purchase_parser.add_argument("image", type=str, help="Image file")
    purchase_parser.add_argument(
        "--post", action="store_true", help="Post the purchase to the catalog"
    )
    purchase_parser.add_argument(
        "--new-supplier", action="store_true",
        help="Create a new supplier even if one with the same name exists",
    )

    upload_parser = sub.add_parser(
        "upload", help="Store documents and extract their fields"
    )
    upload_parser.add_argument("images", type=str, nargs="+", help="Image files")

    docs_parser = sub.add_parser("documents", help="List stored documents")
    docs_parser.add_argument(
        "--status", type=str, default=None, help="Only show documents in this status"
    )

    for name in ("approve", "reject"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a completed document")
        p.add_argument("document_id", type=str)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv()
    config = load_config(args.config)
    if args.db:
        config.database.path = args.db

    try:
        match args.command:
            case "analyze" | "product" | "image":
                asyncio.run(_cmd_extract(config, args))
            case "purchase":
                asyncio.run(_cmd_purchase(config, args))
            case "upload":
                asyncio.run(_cmd_upload(config, args))
            case "documents":
                _cmd_documents(config, args)
            case "approve" | "reject":
                _cmd_review(config, args)
    except (StockpilotError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _read_image(path: str) -> tuple[bytes, str, str]:
    p = Path(path)
    mime_type = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
    return p.read_bytes(), mime_type, p.name


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


async def _cmd_extract(config: StockpilotConfig, args) -> None:
    extractor = Extractor.from_config(config)
    data, mime_type, filename = _read_image(args.image)
    match args.command:
        case "analyze":
            result = await extractor.analyze(data, mime_type, filename)
        case "product":
            result = await extractor.extract_product(data, mime_type)
        case _:
            result = await extractor.analyze_image(data, mime_type)
    _print_json(result.to_dict())


async def _cmd_purchase(config: StockpilotConfig, args) -> None:
    extractor = Extractor.from_config(config)
    data, mime_type, filename = _read_image(args.image)
    purchase = await extractor.extract_purchase(data, mime_type, filename)
    if not args.post:
        _print_json(purchase.to_dict())
        return

    catalog = CatalogDB(config.database.path)
    try:
        result = Reconciler(catalog).post_purchase(
            purchase, create_new_supplier=args.new_supplier
        )
    finally:
        catalog.close()
    _print_json({"extraction": purchase.to_dict(), "posting": result.to_dict()})


async def _cmd_upload(config: StockpilotConfig, args) -> None:
    store = DocumentDB(config.database.path)
    workflow = DocumentWorkflow(Extractor.from_config(config), store)
    try:
        ids = []
        for path in args.images:
            data, mime_type, filename = _read_image(path)
            document = await workflow.upload(data, mime_type, filename)
            ids.append(document["id"])
        await workflow.wait_idle()
        _print_json([_document_summary(store.get_document(i)) for i in ids])
    finally:
        store.close()


def _cmd_documents(config: StockpilotConfig, args) -> None:
    store = DocumentDB(config.database.path)
    try:
        _print_json([_document_summary(d) for d in store.list_documents(args.status)])
    finally:
        store.close()


def _cmd_review(config: StockpilotConfig, args) -> None:
    store = DocumentDB(config.database.path)
    workflow = DocumentWorkflow(Extractor.from_config(config), store)
    try:
        if args.command == "approve":
            document = workflow.approve(args.document_id)
        else:
            document = workflow.reject(args.document_id)
        _print_json(_document_summary(document))
    finally:
        store.close()


def _document_summary(document: dict | None) -> dict | None:
    if document is None:
        return None
    return {k: v for k, v in document.items() if k != "original_data"}


if __name__ == "__main__":
    main()
