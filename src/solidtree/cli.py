"""Click CLI entry point for solidtree."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

import click
import numpy as np

from solidtree import __version__
from solidtree.errors import SolidTreeError
from solidtree.evaluator import Outcome, evaluate_scene
from solidtree.expanded_yaml import render_expanded_yaml
from solidtree.exporter import export_glb, export_json
from solidtree.logging_config import setup_logging
from solidtree.parser import LoadedScene, load_scene
from solidtree.resolution import ResolutionContext
from solidtree.warning_policy import WarningPolicy


def _build_warning_policy(
    warn_as_error: str | None, suppress_warning: str | None
) -> WarningPolicy | None:
    try:
        return WarningPolicy.from_options(warn_as_error, suppress_warning)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _evaluation_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the commands that evaluate geometry."""
    options = [
        click.option("--fn", type=int, default=None, help="Fixed number of fragments for curved primitives."),
        click.option("--fa", type=float, default=None, help="Minimum angle per fragment, in degrees."),
        click.option("--fs", type=float, default=None, help="Minimum fragment length."),
        click.option(
            "-j",
            "--jobs",
            type=click.IntRange(min=1),
            default=1,
            show_default=True,
            help="Worker threads used for sibling operands.",
        ),
        click.option(
            "--warn-as-error",
            "warn_as_error",
            type=str,
            default=None,
            help="Comma-separated W-codes to treat as errors (e.g. W01,W02).",
        ),
        click.option(
            "--suppress-warning",
            "suppress_warning",
            type=str,
            default=None,
            help="Comma-separated W-codes to suppress (e.g. W03).",
        ),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _load(input_file: Path) -> LoadedScene:
    try:
        return load_scene(input_file)
    except SolidTreeError as e:
        raise click.ClickException(str(e))


def _resolution(scene: LoadedScene, fn: int | None, fa: float | None, fs: float | None) -> ResolutionContext:
    try:
        return scene.resolution.push(fn=fn, fa=fa, fs=fs)
    except SolidTreeError as e:
        raise click.ClickException(str(e))


def _evaluate(
    scene: LoadedScene,
    resolution: ResolutionContext,
    jobs: int,
    policy: WarningPolicy | None,
) -> Outcome:
    outcome = evaluate_scene(scene.root, resolution, max_workers=jobs, policy=policy)
    if outcome.status == "aborted":
        raise click.ClickException("evaluation aborted")
    if outcome.status == "failed":
        record = outcome.error or {}
        message = f"{record.get('kind')}: {record.get('message')}"
        if record.get("node_path"):
            message += f" (at {record['node_path']})"
        raise click.ClickException(message)
    return outcome


def _default_output(input_file: Path, suffix: str) -> Path:
    stem = input_file.name
    for ext in [".scene.yaml", ".scene.yml", ".yaml", ".yml"]:
        if stem.endswith(ext):
            stem = stem[: -len(ext)]
            break
    return input_file.parent / f"{stem}{suffix}"


@click.group()
@click.version_option(version=__version__, prog_name="solidtree")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def main(verbose: bool = False) -> None:
    """solidtree: evaluate declarative CSG scenes into closed triangle meshes."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path. Defaults to the input name with the format's extension.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["glb", "json"]),
    default="glb",
    show_default=True,
    help="Output format. 2D-only scenes can only be written as json.",
)
@_evaluation_options
def build(
    input_file: Path,
    output: Path | None,
    output_format: str = "glb",
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
    jobs: int = 1,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Evaluate a scene file and write the resulting mesh."""
    policy = _build_warning_policy(warn_as_error, suppress_warning)
    scene = _load(input_file)
    outcome = _evaluate(scene, _resolution(scene, fn, fa, fs), jobs, policy)

    if output is None:
        output = _default_output(input_file, f".{output_format}")

    try:
        if outcome.mesh is None:
            if output_format != "json":
                raise click.ClickException("scene only contains 2D profiles; use --format json")
            export_json(outcome.profiles or [], output)
        elif output_format == "json":
            export_json(outcome.mesh, output)
        else:
            export_glb(outcome.mesh, output, name=input_file.stem)
    except SolidTreeError as e:
        raise click.ClickException(str(e))
    click.echo(f"Built: {output}")


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=str,
    default="-",
    show_default=True,
    help="Write the expanded tree to this path, or '-' for stdout.",
)
def expand(input_file: Path, output: str = "-") -> None:
    """Print the scene after module, loop and conditional expansion."""
    try:
        text = render_expanded_yaml(input_file)
    except SolidTreeError as e:
        raise click.ClickException(str(e))

    if output == "-":
        click.echo(text, nl=False)
        return
    try:
        Path(output).write_text(text, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot write expanded YAML to {output}: {e}") from e


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Inspection output format.",
)
@_evaluation_options
def inspect(
    input_file: Path,
    output_format: str = "text",
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
    jobs: int = 1,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Evaluate a scene and report mesh statistics without writing geometry."""
    policy = _build_warning_policy(warn_as_error, suppress_warning)
    scene = _load(input_file)
    resolution = _resolution(scene, fn, fa, fs)
    outcome = _evaluate(scene, resolution, jobs, policy)
    payload = _inspection_payload(scene, resolution, outcome)

    if output_format == "json":
        click.echo(json.dumps(payload, indent=2))
        return
    for key, value in payload.items():
        click.echo(f"{key}: {value}")


def _inspection_payload(scene: LoadedScene, resolution: ResolutionContext, outcome: Outcome) -> dict[str, Any]:
    fn, fa, fs = resolution.key()
    payload: dict[str, Any] = {
        "nodes": sum(1 for _ in scene.root.walk()),
        "digest": scene.root.digest,
        "resolution": {"fn": fn, "fa": fa, "fs": fs},
    }
    if outcome.mesh is None:
        profiles = outcome.profiles or []
        payload["profiles"] = len(profiles)
        payload["area"] = round(sum(p.area for p in profiles), 6)
        return payload

    mesh = outcome.mesh
    payload["vertices"] = len(mesh.vertices)
    payload["faces"] = len(mesh.faces)
    payload["closed"] = mesh.is_closed()
    payload["volume"] = round(mesh.volume(), 6)
    payload["area"] = round(mesh.area(), 6)
    box = mesh.bounds()
    if box is not None:
        payload["bounds"] = {"min": np.round(box[0], 6).tolist(), "max": np.round(box[1], 6).tolist()}
    return payload
