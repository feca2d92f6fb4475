from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from field_coverage.core.errors import CoverageError
from field_coverage.core.generator import generate_coverage
from field_coverage.core.geojson import to_feature_collection
from field_coverage.core.models import GenerationConfig, as_polygon
from field_coverage.geo.kernel import bounding_box
from field_coverage.providers.registry import build_provider


def _read_polygon(path: Path):
    data = json.loads(path.read_text(encoding="utf-8"))
    if data.get("type") == "FeatureCollection":
        data = next(
            (f for f in data.get("features", []) if (f.get("geometry") or {}).get("type") == "Polygon"),
            data,
        )
    return as_polygon(data)


def _save_json(path: Path, obj) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2), encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Generate coverage points for an area of interest")
    ap.add_argument("polygon", help="Path to a GeoJSON Polygon, Feature or FeatureCollection")
    ap.add_argument("--spacing", type=float, default=50.0, help="Distance between points")
    ap.add_argument("--units", default="meters", choices=["meters", "kilometers", "miles"])
    ap.add_argument("--pattern", default="rect", choices=["rect", "hex"])
    ap.add_argument("--rotation", type=float, default=0.0, help="Grid rotation in degrees [0, 360)")
    ap.add_argument("--margin", type=float, default=0.0, help="Inward margin in meters")
    ap.add_argument("--roads", action="store_true", help="Sample along the road network instead of a grid")
    ap.add_argument("--provider", default="overpass", help="Road provider: overpass | mock")
    ap.add_argument("--name", default=None, help="Project name stored in the output")
    ap.add_argument("--out", default=None, help="Write the resulting FeatureCollection here")
    ap.add_argument("--debug", action="store_true")
    return ap


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    console = Console()

    config = GenerationConfig(
        spacing=args.spacing,
        units=args.units,
        pattern=args.pattern,
        rotation_degrees=args.rotation,
        margin_meters=args.margin,
        use_road_network=args.roads,
    )
    provider = build_provider(args.provider) if args.roads else None

    try:
        polygon = _read_polygon(Path(args.polygon))
        coverage = asyncio.run(generate_coverage(polygon, config, provider))
    except CoverageError as e:
        console.print(f"[red]Generation failed:[/red] {e}")
        return 1

    bbox = bounding_box(polygon)
    table = Table(title=f"Coverage: {args.name or Path(args.polygon).stem}")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Mode", "roads" if args.roads else f"grid ({args.pattern})")
    table.add_row("Spacing", f"{args.spacing:g} {args.units}")
    if not args.roads:
        table.add_row("Rotation", f"{args.rotation:g} deg")
    table.add_row("Margin", f"{args.margin:g} m")
    table.add_row("BBox", ", ".join(f"{v:.5f}" for v in bbox))
    table.add_row("Points", str(len(coverage)))
    console.print(table)

    if args.out:
        out_path = Path(args.out)
        _save_json(out_path, to_feature_collection(polygon, coverage, config, name=args.name))
        console.print(f"Saved: {out_path.resolve()}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
