import argparse
from pathlib import Path
from typing import Any

from areaeffect.settings import build_solver_config, load_settings


def _add_inputs(p: argparse.ArgumentParser) -> None:
    p.add_argument("--points", required=True, help="Point file (CSV or any vector format geopandas reads)")
    p.add_argument("--coords", nargs=2, metavar=("X", "Y"), default=None, help="Coordinate columns of a CSV")
    p.add_argument("--crs", default=None, help="CRS to assign to a point file that has none (CSV coordinates use the support CRS)")
    p.add_argument("--point-id-col", default=None, help="Column identifying points (default: row number)")
    p.add_argument("--mask", default=None, help="Mask polygon file, or 'land' for the configured land mask")
    p.add_argument("--out", default=None, help="Output file (.csv, .json, or a vector format such as .geojson)")
    p.add_argument(
        "--local-projection",
        action="store_true",
        help="Treat inputs as lon/lat and project them to local meters before classifying",
    )


def _add_supports(p: argparse.ArgumentParser) -> None:
    _add_inputs(p)
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--support", help="Support polygon file")
    src.add_argument("--country", action="append", help="Country name or ISO code (repeatable)")
    p.add_argument("--support-id-col", default=None, help="Column identifying supports (default: row number)")
    p.add_argument("--method", default=None, choices=["buffer", "scale_affine", "stamp"], help="Expansion method")
    p.add_argument("--workers", type=int, default=None, help="Supports processed in parallel")


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default="config/default.yaml", help="Path to config YAML")
    common.add_argument("--scenario", default=None, help="Scenario name (config/scenarios/<name>.yaml)")

    parser = argparse.ArgumentParser(prog="areaeffect", description="Area-of-effect point classification", parents=[common])
    sub = parser.add_subparsers(dest="command", required=True)

    classify = sub.add_parser("classify", parents=[common], help="Classify points as core / halo per support")
    _add_supports(classify)
    target = classify.add_mutually_exclusive_group()
    target.add_argument("--scale", type=float, default=None, help="Linear scale s; AoE area is (1+s)^2 x support")
    target.add_argument("--area", type=float, default=None, help="Masked halo area as a multiple of the support")

    expand = sub.add_parser("expand", parents=[common], help="Expand each support until it captures N points")
    _add_supports(expand)
    expand.add_argument("--min-points", type=int, required=True, help="Points each support should capture")
    expand.add_argument("--max-area", type=float, default=None, help="Cap on halo area relative to the support")
    expand.add_argument("--max-dist", type=float, default=None, help="Cap on expansion distance (CRS units)")

    border = sub.add_parser("border", parents=[common], help="Classify points by side of a border line")
    _add_inputs(border)
    border.add_argument("--border", required=True, help="Border line file")
    core = border.add_mutually_exclusive_group(required=True)
    core.add_argument("--width", type=float, default=None, help="Core band width")
    core.add_argument("--area", type=float, default=None, help="Core band area per side")
    halo = border.add_mutually_exclusive_group()
    halo.add_argument("--halo-width", type=float, default=None, help="Halo band width (default: core width)")
    halo.add_argument("--halo-area", type=float, default=None, help="Halo band area per side")
    border.add_argument("--bbox", nargs=4, type=float, metavar=("XMIN", "YMIN", "XMAX", "YMAX"), default=None)
    border.add_argument("--side-names", nargs=2, metavar=("SIDE1", "SIDE2"), default=None)

    areas = sub.add_parser("areas", parents=[common], help="Print area statistics of a classification")
    _add_supports(areas)
    areas_target = areas.add_mutually_exclusive_group()
    areas_target.add_argument("--scale", type=float, default=None)
    areas_target.add_argument("--area", type=float, default=None)
    return parser


def _read_points(path: str, crs: str | None) -> Any:
    import geopandas as gpd
    import pandas as pd

    if Path(path).suffix.lower() == ".csv":
        return pd.read_csv(path)
    frame = gpd.read_file(path)
    return frame.set_crs(crs) if crs and frame.crs is None else frame


def _reference(settings: dict[str, Any], key: str) -> str:
    path = settings.get("reference", {}).get(key)
    if not path:
        raise SystemExit(f"reference.{key} is not configured")
    return path


def _support_args(args: argparse.Namespace, settings: dict[str, Any]) -> dict[str, Any]:
    import geopandas as gpd

    from areaeffect.reference.countries import load_countries

    kwargs: dict[str, Any] = {"support_id_col": args.support_id_col}
    if args.country:
        kwargs["support"] = args.country
        kwargs["countries"] = load_countries(_reference(settings, "countries_path"))
    else:
        kwargs["support"] = gpd.read_file(args.support)
    return kwargs


def _mask_args(args: argparse.Namespace, settings: dict[str, Any]) -> dict[str, Any]:
    import geopandas as gpd

    from areaeffect.reference.countries import load_land_mask

    if args.mask is None:
        return {"mask": None}
    if args.mask.lower() == "land":
        return {"mask": "land", "land": load_land_mask(_reference(settings, "land_path"))}
    return {"mask": gpd.read_file(args.mask)}


def _write_result(result: Any, out: str | None) -> None:
    from areaeffect.results.tables import describe, to_records

    if out is None:
        print(describe(result))
        return
    path = Path(out)
    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".json":
        path.write_text(to_records(result).model_dump_json(indent=2), encoding="utf-8")
    elif suffix == ".csv":
        table = result.table
        geom = table.geometry
        flat = table.drop(columns=[geom.name]).assign(x=geom.x, y=geom.y)
        flat.to_csv(path, index=False)
    else:
        result.table.to_file(path)
    print(describe(result))
    print(f"Wrote {len(result.table)} row(s) to {path}")


def _project_lonlat(args: argparse.Namespace, points: Any, coords: Any, frames: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
    import geopandas as gpd

    from areaeffect.geometry.crs import frame_reference_lat, project_frame
    from areaeffect.geometry.inputs import to_points_frame

    if getattr(args, "country", None) or (args.mask or "").lower() == "land":
        raise SystemExit("--local-projection needs explicit files for supports and masks")
    points = to_points_frame(points, coords=coords, crs="EPSG:4326")
    geo = {k: v for k, v in frames.items() if isinstance(v, gpd.GeoDataFrame)}
    for name, frame in {"points": points, **geo}.items():
        if frame.crs is not None and not frame.crs.is_geographic:
            raise SystemExit(f"--local-projection expects lon/lat input; {name} is already projected")
    reference_lat = frame_reference_lat([points, *geo.values()])
    projected = {k: project_frame(v, reference_lat_deg=reference_lat) for k, v in geo.items()}
    return project_frame(points, reference_lat_deg=reference_lat), {**frames, **projected}


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(Path(args.config), scenario=args.scenario)
    config = build_solver_config(settings)
    defaults = settings.get("defaults", {})
    points = _read_points(args.points, args.crs)
    coords = tuple(args.coords) if args.coords else None

    inputs = _mask_args(args, settings)
    if args.command == "border":
        import geopandas as gpd

        inputs["border"] = gpd.read_file(args.border)
    else:
        inputs.update(_support_args(args, settings))
    if args.local_projection:
        points, inputs = _project_lonlat(args, points, coords, inputs)
        coords = None

    if args.command in ("classify", "areas"):
        from areaeffect.classify.orchestrator import classify

        scale = args.scale
        if scale is None and args.area is None:
            scale = defaults.get("scale")
        result = classify(
            points,
            scale=scale,
            area=args.area,
            method=args.method or defaults.get("method", "buffer"),
            coords=coords,
            point_id_col=args.point_id_col,
            workers=args.workers,
            config=config,
            **inputs,
        )
        if args.command == "areas":
            from areaeffect.results.tables import area_statistics

            print(area_statistics(result).to_string(index=False))
            return
        _write_result(result, args.out)
        return

    if args.command == "expand":
        from areaeffect.expansion.adaptive import expand_to_count

        max_area = args.max_area
        if max_area is None:
            max_area = settings.get("search", {}).get("adaptive", {}).get("max_area", 2.0)
        result = expand_to_count(
            points,
            min_points=args.min_points,
            max_area=float(max_area),
            max_dist=args.max_dist,
            method=args.method or defaults.get("method", "buffer"),
            coords=coords,
            point_id_col=args.point_id_col,
            workers=args.workers,
            config=config,
            **inputs,
        )
        _write_result(result, args.out)
        return

    if args.command == "border":
        from areaeffect.classify.border import classify_by_border

        result = classify_by_border(
            points,
            width=args.width,
            area=args.area,
            halo_width=args.halo_width,
            halo_area=args.halo_area,
            bbox=tuple(args.bbox) if args.bbox else None,
            side_names=tuple(args.side_names or defaults.get("side_names", ("side_1", "side_2"))),
            coords=coords,
            point_id_col=args.point_id_col,
            config=config,
            **inputs,
        )
        _write_result(result, args.out)
        return

    raise SystemExit(f"Unknown command: {args.command}")
