#!/usr/bin/env python3
"""Command-line interface for card scanning."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from .config import ScannerConfig
from .image_utils import image_to_data_url, write_data_url
from .models import ScanResult
from .scanner import CardScanner

app = typer.Typer(help="Turn a photographed card into hero stats and a portrait.")

SUPPORTED = [".png", ".webp", ".jpg", ".jpeg"]

StateDirOption = typer.Option(None, "--state-dir", help="Directory holding the saved card and API key.")


def _scanner(state_dir: Optional[Path]) -> CardScanner:
    overrides = {"state_dir": state_dir.expanduser().resolve()} if state_dir else {}
    return CardScanner(ScannerConfig.from_env(**overrides))


def _echo_result(result: ScanResult, print_json: bool) -> None:
    if print_json:
        typer.echo(json.dumps(result.model_dump(exclude={"character_image"}), indent=2, ensure_ascii=False))
        return
    if result.name:
        typer.echo(f"  Name:   {result.name}")
    typer.echo(f"  Attack: {result.attack}")
    typer.echo(f"  Health: {result.health}")
    typer.echo(f"  Portrait: {'yes' if result.character_image else 'none'}")


@app.command()
def scan(
    path: Optional[Path] = typer.Argument(None, help="Card photo. Omit for quick-play demo values."),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Remote vision API key for this run only."),
    save_image: Optional[Path] = typer.Option(None, "--save-image", help="Write the character portrait here (PNG)."),
    print_json: bool = typer.Option(False, "--print", help="Print the result as JSON.", show_default=False),
    state_dir: Optional[Path] = StateDirOption,
) -> None:
    """Scan a card photo and print the resulting stats."""

    image_data_url = None
    if path is not None:
        target = path.expanduser().resolve()
        if not target.is_file():
            raise typer.BadParameter(f"Path not found: {target}", param_name="path")
        if target.suffix.lower() not in SUPPORTED:
            raise typer.BadParameter(f"Unsupported file type: {target.suffix}", param_name="path")
        typer.echo(f"\nProcessing: {target}")
        image_data_url = image_to_data_url(target)

    scanner = _scanner(state_dir)
    if api_key:
        scanner.set_api_key(api_key)

    async def _run() -> ScanResult:
        async with scanner:
            return await scanner.scan(image_data_url, lambda status: typer.echo(f"  {status}"))

    result = asyncio.run(_run())
    _echo_result(result, print_json)

    if save_image and result.character_image:
        try:
            write_data_url(result.character_image, save_image.expanduser())
            typer.echo(f"  Saved portrait: {save_image}")
        except (OSError, ValueError) as exc:
            typer.echo(f"  ERROR while writing {save_image}: {exc}")


@app.command("set-key")
def set_key(
    key: str = typer.Argument(..., help="API key for the remote vision service."),
    state_dir: Optional[Path] = StateDirOption,
) -> None:
    """Store the remote vision API key for later scans."""
    _scanner(state_dir).save_api_key(key)
    typer.echo("API key saved.")


@app.command()
def show(
    print_json: bool = typer.Option(False, "--print", help="Print the card as JSON.", show_default=False),
    state_dir: Optional[Path] = StateDirOption,
) -> None:
    """Show the last scanned card."""
    result = _scanner(state_dir).load_saved_card()
    if result is None:
        typer.echo("No saved card.")
        raise typer.Exit(code=1)
    _echo_result(result, print_json)


@app.command()
def clear(state_dir: Optional[Path] = StateDirOption) -> None:
    """Forget the last scanned card."""
    _scanner(state_dir).clear_saved_card()
    typer.echo("Saved card cleared.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
