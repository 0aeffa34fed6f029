from __future__ import annotations

from dataclasses import replace
import html
import json
import logging
from pathlib import Path
from typing import Optional

import folium
import requests

from bikeflow.config.models import MapSettings, RenderSettings
from bikeflow.render.sync import HoverHandler, MarkerAttrs


logger = logging.getLogger(__name__)


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    if len(value) != 6:
        raise ValueError(f"Expected a #rrggbb color, got {color!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def mix_color(departures_color: str, arrivals_color: str, departure_share: float) -> str:
    """Blend the two flow colors; share 1.0 is pure departures, 0.0 pure arrivals."""
    t = min(max(float(departure_share), 0.0), 1.0)
    dep = _hex_to_rgb(departures_color)
    arr = _hex_to_rgb(arrivals_color)
    r, g, b = (round(d * t + a * (1 - t)) for d, a in zip(dep, arr))
    return f"#{r:02x}{g:02x}{b:02x}"


class FoliumMarkerSink:
    """
    Graphics sink that collects marker state and renders it as a Leaflet map via folium.

    Screen positions received through `move` are kept for inspection only; Leaflet
    places markers from their geographic location.
    """

    def __init__(self, *, map_settings: MapSettings = MapSettings(), render_settings: RenderSettings = RenderSettings()) -> None:
        self._map = map_settings
        self._render = render_settings
        self._markers: dict[str, MarkerAttrs] = {}
        self._positions: dict[str, tuple[float, float]] = {}
        self._hover: Optional[HoverHandler] = None

    # -- GraphicsSink -------------------------------------------------------

    def create(self, key: str, attrs: MarkerAttrs) -> None:
        self._markers[key] = attrs

    def update(self, key: str, attrs: MarkerAttrs, *, transition_ms: int) -> None:
        # Static output: transitions only apply in live renderers.
        self._markers[key] = attrs

    def restyle(self, key: str, *, stroke_width: float, opacity: float) -> None:
        current = self._markers.get(key)
        if current is None:
            return
        self._markers[key] = replace(current, stroke_width=stroke_width, opacity=opacity)

    def move(self, key: str, x: float, y: float) -> None:
        self._positions[key] = (x, y)

    def remove(self, key: str) -> None:
        self._markers.pop(key, None)
        self._positions.pop(key, None)

    def bind_hover(self, handler: HoverHandler) -> None:
        self._hover = handler

    # -----------------------------------------------------------------------

    @property
    def markers(self) -> dict[str, MarkerAttrs]:
        return dict(self._markers)

    def position(self, key: str) -> Optional[tuple[float, float]]:
        return self._positions.get(key)

    def fire_hover(self, key: str, entered: bool) -> None:
        if self._hover is not None:
            self._hover(key, entered)

    def fill_color(self, attrs: MarkerAttrs) -> str:
        return mix_color(self._render.departures_color, self._render.arrivals_color, attrs.flow_step)

    def render(self, *, title: Optional[str] = None) -> folium.Map:
        m = folium.Map(
            location=[self._map.center_lat, self._map.center_lon],
            zoom_start=self._map.zoom,
            min_zoom=self._map.min_zoom,
            max_zoom=self._map.max_zoom,
            tiles=self._map.tiles,
            prefer_canvas=True,
        )

        for overlay in self._map.overlays:
            # folium downloads the GeoJSON here; a missing overlay must not cost us the map.
            try:
                layer = folium.GeoJson(
                    overlay.url,
                    name=overlay.name,
                    style_function=lambda _feature, o=overlay: {
                        "color": o.color,
                        "weight": o.weight,
                        "opacity": o.opacity,
                    },
                )
            except (requests.RequestException, ValueError) as e:
                logger.warning("Skipping overlay %s: %s", overlay.name, e)
                continue
            layer.add_to(m)

        names: list[str] = []
        skipped = 0
        for key, attrs in self._markers.items():
            if attrs.lat is None or attrs.lon is None:
                skipped += 1
                continue
            marker = folium.CircleMarker(
                location=[attrs.lat, attrs.lon],
                radius=attrs.radius,
                color=attrs.stroke,
                weight=attrs.stroke_width,
                opacity=attrs.opacity,
                fill=True,
                fill_color=self.fill_color(attrs),
                fill_opacity=attrs.opacity,
                tooltip=folium.Tooltip(html.escape(attrs.tooltip).replace("\n", "<br>")),
            )
            marker.add_to(m)
            names.append(marker.get_name())

        if skipped:
            logger.info("Left %s markers without coordinates off the map", skipped)

        m.get_root().html.add_child(folium.Element(self._overlay_html(names, title)))
        return m

    def _overlay_html(self, marker_names: list[str], title: Optional[str]) -> str:
        r = self._render
        title_html = f'<div id="traffic-title">{html.escape(title)}</div>' if title else ""
        return f"""
<style>
#traffic-title {{
  position: absolute; top: 12px; left: 50%; transform: translateX(-50%);
  background: rgba(255,255,255,0.95); padding: 6px 16px; border-radius: 999px;
  font-size: 14px; font-weight: 600; z-index: 1300; box-shadow: 0 1px 4px rgba(0,0,0,0.2);
}}
#traffic-legend {{
  position: absolute; bottom: 24px; left: 16px; background: rgba(255,255,255,0.95);
  padding: 8px 12px; border-radius: 10px; font-size: 12px; z-index: 1200;
}}
.legend-dot {{ width: 10px; height: 10px; border-radius: 50%; display: inline-block; margin-right: 6px; }}
</style>
{title_html}
<div id="traffic-legend">
  <div><span class="legend-dot" style="background:{r.departures_color}"></span> more departures</div>
  <div><span class="legend-dot" style="background:{mix_color(r.departures_color, r.arrivals_color, 0.5)}"></span> balanced</div>
  <div><span class="legend-dot" style="background:{r.arrivals_color}"></span> more arrivals</div>
</div>
<script>
document.addEventListener("DOMContentLoaded", () => {{
  for (const name of {json.dumps(marker_names)}) {{
    const layer = window[name];
    if (!layer) continue;
    layer.on("mouseover", () => layer.setStyle({{weight: {r.hover_stroke_width}, opacity: {r.hover_opacity}, fillOpacity: {r.hover_opacity}}}));
    layer.on("mouseout", () => layer.setStyle({{weight: {r.stroke_width}, opacity: {r.opacity}, fillOpacity: {r.opacity}}}));
  }}
}});
</script>
"""

    def render_html(self, *, title: Optional[str] = None) -> str:
        return self.render(title=title).get_root().render()

    def save(self, path: str | Path, *, title: Optional[str] = None) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(self.render_html(title=title), encoding="utf-8")
        return out
