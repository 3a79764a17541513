#!/usr/bin/env python3
"""
Panograph - order, link and preview panorama sequences

Usage:
    python -m panograph [POINTS.json] [options]

Options:
    --zoom Z          Map zoom used for polyline splitting (default: 16)
    --sequence S      Print the ordered ids of one sequence
    --links ID        Print the next/prev links of a point
    --pick ID         Pick forward/backward targets from a point (with --yaw)
    --yaw DEG         Viewer yaw for --pick (default: 0)
    --geojson FILE    Write sequence polylines as GeoJSON
    --html FILE       Write an interactive preview map
    --log FILE        Log file path
    --fetch URL       Load points from a bounding-box endpoint (with --bbox)
    --bbox BOX        MINLON,MINLAT,MAXLON,MAXLAT for --fetch
"""

import argparse
import json
from pathlib import Path

from .fetcher import FetchError, PanoramaFetcher, extract_items
from .index import IncrementalIndex
from .logger import Logger
from .models import BoundingBox


def load_records(path: str) -> list:
    """Point records from a JSON file: a list, {"points": [...]} or an API response"""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("points"), list):
        return data["points"]
    return extract_items(data)


def print_summary(index: IncrementalIndex, zoom: float):
    segments = index.get_segments(zoom=zoom)
    print(f"{len(index)} panoramas in {len(index.sequences())} sequences, "
          f"{len(segments)} polylines at zoom {zoom:g} (max hop {index.max_hop_for(zoom):.0f}m)")
    for sequence_id in index.sequences():
        order = index.get_sequence_order(sequence_id)
        runs = [s for s in segments if s.sequence_id == sequence_id]
        print(f"  {sequence_id}: {len(order)} points, {index.strategy_for(sequence_id)} order, "
              f"{len(runs)} polylines")


def print_link(label: str, link):
    if link is None:
        print(f"  {label}: -")
    else:
        distance = f", {link.distance:.1f}m" if link.distance is not None else ""
        print(f"  {label}: {link.to_id} (bearing {link.bearing:.1f}{distance})")


def main():
    parser = argparse.ArgumentParser(
        description="Panograph - order, link and preview panorama sequences"
    )
    parser.add_argument("points", nargs="?", metavar="POINTS.json",
                        help="JSON file of point records")
    parser.add_argument("--zoom", type=float, default=None,
                        help="Map zoom for polyline splitting (default: 16)")
    parser.add_argument("--sequence", metavar="S",
                        help="Print the ordered ids of a sequence")
    parser.add_argument("--links", metavar="ID",
                        help="Print the next/prev links of a point")
    parser.add_argument("--pick", metavar="ID",
                        help="Pick forward/backward targets from a point")
    parser.add_argument("--yaw", type=float, default=0.0,
                        help="Viewer yaw in degrees for --pick (default: 0)")
    parser.add_argument("--geojson", metavar="FILE",
                        help="Write sequence polylines as GeoJSON")
    parser.add_argument("--html", metavar="FILE",
                        help="Write an interactive preview map")
    parser.add_argument("--log", metavar="FILE",
                        help="Log file path")
    parser.add_argument("--fetch", metavar="URL",
                        help="Bounding-box endpoint to load points from")
    parser.add_argument("--bbox", metavar="BOX",
                        help="MINLON,MINLAT,MAXLON,MAXLAT for --fetch")

    args = parser.parse_args()

    if (args.fetch is None) != (args.bbox is None):
        parser.error("--fetch and --bbox must be used together")
    if args.points is None and args.fetch is None:
        parser.error("give a POINTS.json file or --fetch/--bbox")

    logger = Logger(log_path=args.log, echo=False)
    index = IncrementalIndex(config={"sequence_rebuild_debounce_ms": 0}, logger=logger)
    zoom = index.config["default_zoom"] if args.zoom is None else args.zoom

    try:
        if args.points:
            if not Path(args.points).exists():
                print(f"Points file not found: {args.points}")
                return 1
            report = index.merge(load_records(args.points))
            print(f"Loaded {args.points}: {report.summary()}")

        if args.fetch:
            try:
                bbox = BoundingBox.parse(args.bbox)
            except ValueError as e:
                parser.error(f"--bbox: {e}")
            fetcher = PanoramaFetcher(args.fetch, logger=logger)
            try:
                items = fetcher.fetch_bbox(bbox)
            except FetchError as e:
                print(f"Fetch failed: {e}")
                return 1
            report = index.merge(items)
            print(f"Fetched {len(items)} records: {report.summary()}")

        index.flush()
        print_summary(index, zoom)

        if args.sequence:
            order = index.get_sequence_order(args.sequence)
            if not order:
                print(f"Unknown sequence: {args.sequence}")
                return 1
            print(f"\nSequence {args.sequence} ({index.strategy_for(args.sequence)}):")
            for position, point_id in enumerate(order):
                print(f"  {position:4d}  {point_id}")

        if args.links:
            if args.links not in index:
                print(f"Unknown point: {args.links}")
                return 1
            links = index.get_links(args.links)
            print(f"\nLinks from {args.links}:")
            print_link("next", links.next)
            print_link("prev", links.prev)

        if args.pick:
            if args.pick not in index:
                print(f"Unknown point: {args.pick}")
                return 1
            result = index.pick_direction(args.pick, args.yaw)
            print(f"\nPick from {args.pick} at yaw {args.yaw:g}:")
            print_link("forward", result.forward)
            print_link("backward", result.backward)

        if args.geojson:
            from .preview import segments_to_geojson
            with open(args.geojson, "w") as f:
                json.dump(segments_to_geojson(index.get_segments(zoom=zoom)), f, indent=2)
            print(f"\nGeoJSON saved to: {args.geojson}")

        if args.html:
            from .preview import create_map
            try:
                m = create_map(index, zoom=zoom, current_id=args.pick or args.links)
            except ValueError as e:
                print(f"Error: {e}")
                return 1
            m.save(args.html)
            print(f"\nMap saved to: {args.html}")
            print(f"Open in browser: file://{Path(args.html).absolute()}")
    finally:
        index.close()
        logger.close()

    return 0


if __name__ == "__main__":
    exit(main())
