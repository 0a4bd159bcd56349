"""
Style DNA Studio — CLI

Usage:
  python -m stylegen.main --style refs/ --subject "a red fox"
  python -m stylegen.main --style refs/ --composition-view Isometric --remove-background
  python -m stylegen.main --style-text "moody watercolor" --subject "a lighthouse" --model imagen
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.rule import Rule
from rich.table import Table

from .config import ASPECT_RATIOS, COMPOSITION_VIEWS, DEFAULT_IMAGE_COUNT, check_env
from .errors import StudioError
from .exporter import export_images
from .imaging import load_images
from .models import GenerationModel, ImageAsset, StructuredStyle, parse_style_document
from .studio import StyleStudio
from .suggestions import KeywordDiff, keyword_diff, modified_style_paths

console = Console()

OUTPUTS_ROOT = Path("outputs")

_MODELS = {m.label: m for m in GenerationModel}


# ── CLI ───────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Style DNA Studio — generate images in the style of your references"
    )
    parser.add_argument(
        "--style", action="append", default=[], metavar="PATH",
        help="Style reference image or directory (repeatable)",
    )
    parser.add_argument("--style-text", default="", help="Free-form style description")
    parser.add_argument(
        "--style-json", default=None, metavar="FILE",
        help="Use an existing Style DNA document instead of running analysis",
    )
    parser.add_argument("--subject", default="", help="What to depict")
    parser.add_argument("--positive", default="", help="Comma-separated supportive keywords")
    parser.add_argument("--negative", default="", help="Comma-separated keywords to avoid")
    parser.add_argument("--aspect-ratio", choices=ASPECT_RATIOS, default="1:1")
    parser.add_argument("--model", choices=sorted(_MODELS), default="flash")
    parser.add_argument("--count", type=int, default=DEFAULT_IMAGE_COUNT)
    parser.add_argument(
        "--remove-background", action="store_true",
        help="Ask for an isolated subject on a transparent background",
    )

    composition = parser.add_mutually_exclusive_group()
    composition.add_argument("--composition-image", default=None, metavar="FILE")
    composition.add_argument("--composition-view", choices=COMPOSITION_VIEWS, default=None)

    parser.add_argument(
        "--subject-ref", action="append", default=[], metavar="PATH",
        help="Subject reference image or directory (repeatable)",
    )
    parser.add_argument(
        "--no-ai-analysis", action="store_true",
        help="Skip Style DNA analysis and use --style-text as the style",
    )
    parser.add_argument(
        "--no-style-guidance", action="store_true",
        help="Omit the execution instructions block from the prompt",
    )
    parser.add_argument(
        "--output", default=None,
        help="Output directory (default: outputs/<timestamp>)",
    )
    parser.add_argument("--zip", action="store_true", help="Export everything as one ZIP")
    parser.add_argument(
        "--no-interactive", action="store_true",
        help="Generate once, export and exit",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # google-genai and httpx are chatty at INFO
    for noisy in ("httpx", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ── Display helpers ───────────────────────────────────────────────────────────

def display_style(style_description: str) -> None:
    doc = parse_style_document(style_description)
    if isinstance(doc, StructuredStyle):
        d = doc.description
        table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
        table.add_column("Field", style="bold", width=20)
        table.add_column("Value")
        table.add_row("Aesthetic", d.overall_aesthetic)
        table.add_row("Dominant colors", ", ".join(d.color_palette.dominant_colors))
        table.add_row("Accent colors", ", ".join(d.color_palette.accent_colors))
        table.add_row("Material", d.material_and_texture.material)
        table.add_row("Texture", d.material_and_texture.surface_texture)
        table.add_row("Lighting", d.lighting.style)
        table.add_row("Shape language", d.composition.shape_language)
        table.add_row("Post-processing", ", ".join(d.post_processing_effects))
        console.print(Panel(table, title="Style DNA", border_style="magenta"))
    else:
        console.print(Panel(doc.text, title="Style (raw text)", border_style="yellow"))


def _format_diff(diff: KeywordDiff) -> str:
    parts = [f"[green]+ {k}[/green]" for k in diff.added]
    parts += [f"[red]- {k}[/red]" for k in diff.removed]
    parts += [f"[dim]{k}[/dim]" for k in diff.unchanged]
    return ", ".join(parts) or "[dim](empty)[/dim]"


def display_history(studio: StyleStudio) -> None:
    table = Table(box=box.SIMPLE)
    table.add_column("#", style="bold cyan")
    table.add_column("Time")
    table.add_column("Model")
    table.add_column("Images")
    table.add_column("Prompt")
    for i, session in enumerate(studio.history, 1):
        table.add_row(
            str(i),
            time.strftime("%H:%M:%S", time.localtime(session.timestamp)),
            session.model.label,
            str(len(session.result_images)),
            session.prompt_text[:60],
        )
    console.print(table)


# ── Human-in-the-loop ─────────────────────────────────────────────────────────

def review_suggestions(studio: StyleStudio) -> None:
    """Show the critique's proposals and apply the ones the user accepts."""
    with console.status("Analyzing result for refinement suggestions..."):
        suggestions = studio.wait_for_suggestions()
    if suggestions is None:
        console.print("  [yellow]⚠ Could not retrieve suggestions.[/yellow]")
        return

    inputs = studio.inputs
    console.print(Rule("[bold]Refinement suggestions[/bold]"))

    paths = modified_style_paths(inputs.style_description, suggestions.style_description)
    if paths is None:
        console.print(Panel(suggestions.style_description, title="Suggested style", border_style="cyan"))
    elif paths:
        console.print(f"  Style DNA changes: [cyan]{', '.join(paths)}[/cyan]")
    else:
        console.print("  [dim]Style DNA unchanged.[/dim]")

    positive = keyword_diff(inputs.supportive_prompt, suggestions.positive_prompt)
    negative = keyword_diff(inputs.negative_prompt, suggestions.negative_prompt)
    console.print(f"  Positive: {_format_diff(positive)}")
    console.print(f"  Negative: {_format_diff(negative)}\n")

    fields = []
    if Confirm.ask("  Apply suggested style?", default=bool(paths)):
        fields.append("style")
    if Confirm.ask("  Apply suggested positive prompt?", default=positive.changed):
        fields.append("positive")
    if Confirm.ask("  Apply suggested negative prompt?", default=negative.changed):
        fields.append("negative")

    studio.apply_suggestions(fields)
    if fields:
        console.print(f"  [green]✓ Applied: {', '.join(fields)}[/green]")


def _restore_from_history(studio: StyleStudio) -> None:
    display_history(studio)
    choice = IntPrompt.ask("  Session #", default=1)
    sessions = studio.history.sessions
    if not 1 <= choice <= len(sessions):
        console.print(f"  [yellow]⚠ Session {choice} not found.[/yellow]")
        return
    if studio.restore(sessions[choice - 1], confirm=lambda q: Confirm.ask(f"  {q}")):
        console.print(f"  [green]✓ {studio.status_message}[/green]")


def _edit_result(studio: StyleStudio, output_dir: Path) -> None:
    n = len(studio.current_results or [])
    index = IntPrompt.ask(f"  Result to edit (1-{n})", default=1)
    if not 1 <= index <= n:
        console.print(f"  [yellow]⚠ Result {index} not found.[/yellow]")
        return
    mask_path = Path(Prompt.ask("  Mask image (painted area = editable)"))
    if not mask_path.is_file():
        console.print(f"  [yellow]⚠ {mask_path} not found.[/yellow]")
        return
    instruction = Prompt.ask("  Edit instruction").strip()

    with console.status("Editing..."):
        data_url = studio.edit_image(index - 1, instruction, ImageAsset.from_path(mask_path))
    saved = export_images([data_url], output_dir / "edits")
    console.print(f"  [dim]Saved → {saved[0]}[/dim]")


def refinement_loop(studio: StyleStudio, output_dir: Path, count: int) -> None:
    """
    Interactive loop after the first generation.

      again   — review suggestions, then regenerate
      edit    — mask-edit one of the current results
      restore — load inputs and results from an earlier session
      quit    — export and exit
    """
    round_no = 1
    while True:
        console.print(Rule("[bold]Review[/bold]"))
        action = Prompt.ask(
            "  Next", choices=["again", "edit", "restore", "quit"], default="again"
        )

        if action == "quit":
            break

        try:
            if action == "edit":
                _edit_result(studio, output_dir)
            elif action == "restore":
                _restore_from_history(studio)
            else:
                if studio.inputs.generation_model is GenerationModel.FLASH_IMAGE:
                    review_suggestions(studio)
                round_no += 1
                _run_round(studio, output_dir, round_no, count)
        except StudioError as e:
            console.print(f"  [red]✗ {e}[/red]")


def _run_round(studio: StyleStudio, output_dir: Path, round_no: int, count: int) -> None:
    console.print(f"\n[bold]Round {round_no} — generating {count} image(s)[/bold]")
    session = studio.generate(count)
    paths = export_images(session.result_images, output_dir / f"round_{round_no}")
    for path in paths:
        console.print(f"    {path}")


# ── Main ──────────────────────────────────────────────────────────────────────

def _build_studio(args: argparse.Namespace) -> StyleStudio:
    studio = StyleStudio()
    if args.style:
        studio.add_images(load_images(args.style))
    if args.subject_ref:
        studio.set_subject_references(load_images(args.subject_ref))
    if args.composition_image:
        studio.set_composition_image(ImageAsset.from_path(args.composition_image))
    elif args.composition_view:
        studio.set_composition_view(args.composition_view)

    studio.update(
        free_form_style_text=args.style_text,
        subject_prompt=args.subject,
        supportive_prompt=args.positive,
        negative_prompt=args.negative,
        aspect_ratio=args.aspect_ratio,
        remove_background=args.remove_background,
        generation_model=_MODELS[args.model],
        use_ai_style_analysis=not args.no_ai_analysis,
        use_style_guidance=not args.no_style_guidance,
    )
    if args.style_json:
        studio.update(style_description=Path(args.style_json).read_text(encoding="utf-8"))
    return studio


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    _setup_logging(args.verbose)
    _check_env()
    pipeline_start = time.time()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(args.output) if args.output else OUTPUTS_ROOT / timestamp
    output_dir.mkdir(parents=True, exist_ok=True)

    console.print(Rule("[bold magenta]Style DNA Studio[/bold magenta]"))

    with _build_studio(args) as studio:
        inputs = studio.inputs
        console.print(
            f"  Model: [bold]{args.model}[/bold]  |  "
            f"Style refs: [bold]{len(inputs.uploaded_images)}[/bold]  |  "
            f"Output: [bold]{output_dir}[/bold]"
        )

        try:
            # ── Step 1: Style analysis ───────────────────────────────────────
            wants_analysis = (
                inputs.use_ai_style_analysis
                and not inputs.style_description
                and (inputs.uploaded_images or inputs.free_form_style_text.strip())
            )
            if wants_analysis:
                console.print("\n[bold]Step 1/2 — Analyzing style (Gemini)[/bold]")
                t0 = time.time()
                with console.status("Extracting Style DNA..."):
                    studio.analyze_style()
                console.print(f"  [green]✓ Done in {time.time() - t0:.1f}s[/green]")
            if studio.inputs.style_description:
                display_style(studio.inputs.style_description)
                (output_dir / "style.json").write_text(studio.inputs.style_description, encoding="utf-8")

            # ── Step 2: Generate ─────────────────────────────────────────────
            console.print("\n[bold]Step 2/2 — Generating[/bold]")
            _run_round(studio, output_dir, 1, args.count)
        except StudioError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            sys.exit(1)

        if not args.no_interactive:
            refinement_loop(studio, output_dir, args.count)

        exported = studio.export_all(output_dir / "all", as_zip=args.zip)
        console.print(
            Panel(
                f"{len(studio.history)} generation(s) in [bold]{time.time() - pipeline_start:.0f}s[/bold]\n"
                f"{len(exported)} file(s) exported to: [bold]{output_dir / 'all'}[/bold]",
                title="[bold green]Done[/bold green]",
                border_style="green",
            )
        )


def _check_env() -> None:
    """Check required environment variables."""
    missing = check_env()
    if missing:
        console.print(f"[bold red]Error:[/bold red] {', '.join(missing)} not set.")
        console.print("Create a .env file from .env.example and add your key.")
        sys.exit(1)


if __name__ == "__main__":
    main()
