"""Map preview of an index: sequence polylines, panorama markers and GeoJSON export."""

import hashlib
from typing import Optional

import folium
from folium import plugins

from .models import Segment

PALETTE = [
    "#e6194b", "#3cb44b", "#4363d8", "#f58231", "#911eb4",
    "#42d4f4", "#f032e6", "#9a6324", "#800000", "#469990",
]


def sequence_color(sequence_id: str) -> str:
    """Stable color per sequence (same id, same color across runs)"""
    digest = hashlib.md5(sequence_id.encode()).hexdigest()
    return PALETTE[int(digest[:8], 16) % len(PALETTE)]


def segments_to_geojson(segments: list[Segment]) -> dict:
    """FeatureCollection with one MultiLineString per sequence.

    Coordinates are [lon, lat] as GeoJSON requires.
    """
    lines: dict[str, list] = {}
    counts: dict[str, int] = {}
    for segment in segments:
        lines.setdefault(segment.sequence_id, []).append(
            [[lon, lat] for lat, lon in segment.coords]
        )
        counts[segment.sequence_id] = counts.get(segment.sequence_id, 0) + len(segment)

    features = []
    for sequence_id in sorted(lines):
        features.append({
            "type": "Feature",
            "properties": {
                "sequence": sequence_id,
                "segments": len(lines[sequence_id]),
                "points": counts[sequence_id],
                "color": sequence_color(sequence_id),
            },
            "geometry": {"type": "MultiLineString", "coordinates": lines[sequence_id]},
        })
    return {"type": "FeatureCollection", "features": features}


def create_map(index, zoom: Optional[float] = None, current_id: Optional[str] = None,
               show_points: bool = True) -> folium.Map:
    """Interactive map of everything the index currently knows"""
    snapshot = index.snapshot
    if len(snapshot) == 0:
        raise ValueError("Index has no points to show")

    zoom = index.config["default_zoom"] if zoom is None else zoom
    segments = index.get_segments(zoom=zoom)

    if current_id is not None and current_id in snapshot:
        center = snapshot.get_node_location(current_id)
    else:
        lats = [p.lat for p in snapshot.points.values()]
        lons = [p.lon for p in snapshot.points.values()]
        center = ((min(lats) + max(lats)) / 2, (min(lons) + max(lons)) / 2)

    m = folium.Map(
        location=list(center),
        zoom_start=int(zoom),
        tiles="CartoDB positron"
    )
    folium.TileLayer("OpenStreetMap", name="OpenStreetMap").add_to(m)
    folium.TileLayer("CartoDB dark_matter", name="Dark Mode").add_to(m)

    line_layer = folium.FeatureGroup(name="Sequences", show=True)
    point_layer = folium.FeatureGroup(name="Panoramas", show=show_points)

    for segment in segments:
        popup_text = f"""
            <b>{segment.sequence_id}</b><br>
            Ordering: {index.strategy_for(segment.sequence_id)}<br>
            Points: {len(segment)}
        """
        folium.PolyLine(
            [list(c) for c in segment.coords],
            weight=4,
            color=sequence_color(segment.sequence_id),
            opacity=0.8,
            popup=folium.Popup(popup_text, max_width=200)
        ).add_to(line_layer)

    for point_id in sorted(snapshot.points):
        point = snapshot.points[point_id]
        folium.CircleMarker(
            [point.lat, point.lon],
            radius=3,
            color=sequence_color(point.sequence_id),
            fill=True,
            fill_opacity=0.9,
            tooltip=point.name or point.id,
        ).add_to(point_layer)

    line_layer.add_to(m)
    point_layer.add_to(m)

    if current_id is not None and current_id in snapshot:
        folium.Marker(
            list(snapshot.get_node_location(current_id)),
            popup=f"Current: {current_id}",
            icon=folium.Icon(color="blue", icon="camera")
        ).add_to(m)

    folium.LayerControl().add_to(m)

    legend_html = f"""
    <div style="
        position: fixed;
        bottom: 50px;
        left: 50px;
        z-index: 1000;
        background-color: white;
        padding: 10px;
        border-radius: 5px;
        border: 2px solid grey;
        font-family: Arial;
        font-size: 12px;
    ">
        <b>Panograph</b><br>
        <hr style="margin: 5px 0">
        Panoramas: {len(snapshot)}<br>
        Sequences: {len(snapshot.sequences)}<br>
        Polylines: {len(segments)} (max hop {index.max_hop_for(zoom):.0f}m)
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))

    plugins.Fullscreen().add_to(m)

    return m
